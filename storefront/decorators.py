# storefront/decorators.py
import jwt
from functools import wraps
from flask import request, jsonify, current_app, g
from bson import ObjectId
from bson.errors import InvalidId
from . import get_db
from .models import User


def _unauthorized(message):
    return jsonify({'success': False, 'message': message}), 401


def token_required(f):
    """
    Decorator to ensure a valid JWT token is present in the Authorization header.
    Re-loads the user from the database and attaches it to flask.g.current_user,
    so the stored role (not the one embedded in the token) is what gets checked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = None
        auth_header = request.headers.get('Authorization')

        if auth_header and auth_header.startswith('Bearer '):
            parts = auth_header.split(' ')
            if len(parts) == 2 and parts[1]:
                token = parts[1]

        if not token:
            return _unauthorized('Not authorized, no token provided')

        try:
            secret_key = current_app.config['SECRET_KEY']
            data = jwt.decode(token, secret_key, algorithms=["HS256"])

            user_id = data.get('user_id')
            if not user_id:
                return _unauthorized('Not authorized, invalid token')

            db = get_db()
            user_data = db.users.find_one({'_id': ObjectId(user_id)})

            if user_data is None:
                # The user was deleted after the token was issued
                return _unauthorized('Not authorized, user not found')

            g.current_user = User.from_document(user_data)

        except jwt.ExpiredSignatureError:
            return _unauthorized('Not authorized, token expired')
        except jwt.InvalidTokenError as e:
            current_app.logger.warning(f"Invalid token received: {e}")
            return _unauthorized('Not authorized, invalid token')
        except (InvalidId, TypeError):
            current_app.logger.warning(f"Invalid user identifier in token: {data.get('user_id')}")
            return _unauthorized('Not authorized, invalid token')
        except Exception as e:
            current_app.logger.error(f"Error during token validation: {e}")
            return jsonify({'success': False, 'message': 'Server error'}), 500

        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """
    Decorator to ensure the user is an admin. Wraps @token_required, so a
    missing or bad token still yields 401 and only a valid non-admin gets 403.
    """
    @wraps(f)
    @token_required
    def decorated_function(*args, **kwargs):
        user = getattr(g, 'current_user', None)
        if user is None or not user.is_admin:
            current_app.logger.warning(
                f"Non-admin user access attempt: User ID {user.id if user else 'Unknown'}")
            return jsonify({'success': False, 'message': 'Not authorized as admin'}), 403
        return f(*args, **kwargs)
    return decorated_function
