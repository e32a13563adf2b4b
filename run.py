# run.py
import os
from storefront import create_app

config_name = os.getenv('FLASK_ENV') or 'default'
app = create_app(config_name)

# --- Flask CLI Commands ---
@app.shell_context_processor
def make_shell_context():
    """Makes variables available in the 'flask shell' context."""
    from storefront import get_db
    from storefront.models import User
    from bson import ObjectId
    return {'get_db': get_db, 'User': User, 'ObjectId': ObjectId, 'app': app}

@app.cli.command('seed_admin')
def seed_admin_command():
    """Creates the admin user from ADMIN_NAME / ADMIN_EMAIL / ADMIN_PASSWORD if missing."""
    from storefront.auth import seed_admin
    user, created = seed_admin()
    if created:
        print(f'Admin user created: {user.email}')
    else:
        print(f'Admin user already exists: {user.email}')


if __name__ == '__main__':
    # Use app.run() for development only. Use Gunicorn/WSGI for production.
    is_production = os.getenv('FLASK_ENV') == 'production'
    if not is_production:
        app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)),
                debug=app.config.get('DEBUG', False),
                use_reloader=app.config.get('DEBUG', False))
