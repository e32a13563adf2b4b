# storefront/__init__.py
import os
from flask import Flask, g, current_app, jsonify, send_from_directory
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from config import config_by_name
from pymongo import MongoClient, ASCENDING
from werkzeug.exceptions import HTTPException

bcrypt = Bcrypt()

# --- MongoDB Helpers ---
def get_db():
    """Returns the database handle for the current app context, opening it on first use."""
    if 'db' not in g:
        client = current_app.extensions.get('mongo_client')
        if client is None:
            raise ValueError("MONGO_URI not set in the configuration")
        db_name = current_app.config.get('MONGO_DB_NAME')
        if not db_name:
            raise ValueError("MONGO_DB_NAME not set in the configuration")
        g.db = client[db_name]
    return g.db

def close_db(e=None):
    """Drops the per-request database handle. The client pool lives with the app."""
    g.pop('db', None)

def ensure_indexes(db):
    """Creates the indexes the handlers rely on for uniqueness."""
    db.users.create_index([('email', ASCENDING)], unique=True)
    db.categories.create_index([('name', ASCENDING), ('parent', ASCENDING)], unique=True)
    db.products.create_index([('createdAt', ASCENDING)])
    db.orders.create_index([('user', ASCENDING), ('createdAt', ASCENDING)])


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'success': False, 'message': 'Route not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'success': False, 'message': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return jsonify({'success': False, 'message': 'Uploaded payload is too large'}), 413

    @app.errorhandler(Exception)
    def unhandled_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'message': e.description}), e.code
        app.logger.error(f"Unhandled error: {e}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


def create_app(config_name=None, mongo_client=None):
    """Application Factory Function

    ``mongo_client`` lets callers (tests, scripts) inject an already built
    client; otherwise one is created from ``MONGO_URI``.
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_by_name[config_name])

    try:
        os.makedirs(app.instance_path)
    except OSError:
        pass # Already exists

    # Initialize extensions
    bcrypt.init_app(app)

    CORS(
        app,
        origins=app.config['CORS_ORIGINS'],
        supports_credentials=False,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"]
    )

    # One client (and connection pool) per application
    if mongo_client is None and app.config.get('MONGO_URI'):
        mongo_client = MongoClient(app.config['MONGO_URI'])
    app.extensions['mongo_client'] = mongo_client

    app.teardown_appcontext(close_db)
    register_error_handlers(app)

    with app.app_context():
        try:
            db = get_db()
            ensure_indexes(db)
            current_app.logger.info("MongoDB indexes ensured.")
        except Exception as e:
            current_app.logger.error(f"MongoDB connection check failed: {e}")

        from .routes import main_bp
        from .auth import auth_bp
        from .users import users_bp
        from .categories import categories_bp
        from .products import products_bp
        from .orders import orders_bp
        from .stats import stats_bp
        from .uploads import uploads_bp

        app.register_blueprint(main_bp, url_prefix='/api')
        app.register_blueprint(auth_bp, url_prefix='/api/auth')
        app.register_blueprint(users_bp, url_prefix='/api/users')
        app.register_blueprint(categories_bp, url_prefix='/api/categories')
        app.register_blueprint(products_bp, url_prefix='/api/products')
        app.register_blueprint(orders_bp, url_prefix='/api/orders')
        app.register_blueprint(stats_bp, url_prefix='/api/stats')
        app.register_blueprint(uploads_bp, url_prefix='/api/upload')

    @app.route('/uploads/<path:filename>')
    def serve_uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    return app
