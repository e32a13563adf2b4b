# storefront/auth.py
import secrets
import jwt
from flask import Blueprint, request, jsonify, current_app, g
from pymongo.errors import DuplicateKeyError
from . import get_db
from .models import User, is_email, utcnow
from .decorators import token_required

auth_bp = Blueprint('auth', __name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only hashes the first 72 bytes
MAX_PASSWORD_BYTES = 72


def password_problem(password):
    """Returns a client-facing complaint about a new password, or None."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
    if len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        return f'Password must be at most {MAX_PASSWORD_BYTES} bytes'
    return None


def generate_token(user):
    """Issues a signed, time-bound access token for a User."""
    token_payload = {
        'user_id': str(user.id),
        'email': user.email,
        'role': user.role,
        'exp': utcnow() + current_app.config['JWT_EXPIRATION_DELTA']
    }
    return jwt.encode(token_payload, current_app.config['SECRET_KEY'], algorithm="HS256")


def auth_success_payload(user):
    return {
        '_id': str(user.id),
        'name': user.name,
        'email': user.email,
        'role': user.role,
        'token': generate_token(user),
    }


def find_user_by_email(db, email):
    user_data = db.users.find_one({'email': email.strip().lower()})
    return User.from_document(user_data) if user_data else None


def create_user(db, name, email, password, role='customer'):
    user = User(name=name.strip(), email=email.strip().lower(), role=role)
    user.set_password(password)
    doc = user.to_document()
    result = db.users.insert_one(doc)
    user.id = result.inserted_id
    return user


def seed_admin():
    """Ensures the configured admin account exists. Returns (user, created)."""
    config = current_app.config
    if not config.get('ADMIN_PASSWORD'):
        raise ValueError("ADMIN_PASSWORD must be set to seed the admin user")

    db = get_db()
    existing = find_user_by_email(db, config['ADMIN_EMAIL'])
    if existing:
        return existing, False

    user = create_user(db, config['ADMIN_NAME'], config['ADMIN_EMAIL'], config['ADMIN_PASSWORD'], role='admin')
    current_app.logger.info(f"Admin user {user.email} seeded.")
    return user, True


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    name = data.get('name')
    email = data.get('email')
    password = data.get('password')

    if not isinstance(name, str) or not name.strip() or not is_email(email) or not isinstance(password, str):
        return jsonify({'success': False, 'message': 'Name, email and password are required'}), 400
    problem = password_problem(password)
    if problem:
        return jsonify({'success': False, 'message': problem}), 400

    try:
        db = get_db()
        if find_user_by_email(db, email):
            return jsonify({'success': False, 'message': 'User already exists'}), 400

        user = create_user(db, name, email, password)
        current_app.logger.info(f"User {user.email} registered successfully.")
        return jsonify({'success': True, 'data': auth_success_payload(user)}), 201
    except DuplicateKeyError:
        return jsonify({'success': False, 'message': 'User already exists'}), 400
    except Exception as e:
        current_app.logger.error(f"Error creating user: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')

    if not is_email(email) or not isinstance(password, str) or not password:
        return jsonify({'success': False, 'message': 'Email and password are required'}), 400

    try:
        user = find_user_by_email(get_db(), email)
        if user is None or not user.check_password(password):
            current_app.logger.warning(f'Failed login attempt for email: {email}')
            return jsonify({'success': False, 'message': 'Invalid email or password'}), 401

        current_app.logger.info(f'User {user.email} logged in successfully.')
        return jsonify({'success': True, 'data': auth_success_payload(user)}), 200
    except Exception as e:
        current_app.logger.error(f"Error during login: {e}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


def _social_login(provider):
    """Finds or creates the user for a profile posted by an OAuth provider widget.

    The posted profile is trusted as-is; provider tokens are not verified here.
    """
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    name = data.get('name')

    if not is_email(email) or not isinstance(name, str) or not name.strip():
        return jsonify({'success': False, 'message': 'Email and name are required'}), 400

    try:
        db = get_db()
        user = find_user_by_email(db, email)
        if user is None:
            # Social accounts get an unguessable password they never use
            user = create_user(db, name, email, secrets.token_urlsafe(24))
            current_app.logger.info(f"User {user.email} created via {provider} login.")
        return jsonify({'success': True, 'data': auth_success_payload(user)}), 200
    except Exception as e:
        current_app.logger.error(f"Error during {provider} login: {e}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@auth_bp.route('/google', methods=['POST'])
def google_auth():
    return _social_login('google')


@auth_bp.route('/facebook', methods=['POST'])
def facebook_auth():
    return _social_login('facebook')


@auth_bp.route('/me', methods=['GET'])
@token_required
def get_me():
    """Returns the currently authenticated user."""
    return jsonify({'success': True, 'data': g.current_user.to_dict()}), 200
