# storefront/users.py
from flask import Blueprint, jsonify, current_app, request, g
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError
from . import get_db
from .auth import password_problem
from .models import User, USER_ROLES, is_email, serialize_doc, parse_pagination, page_count, utcnow
from .decorators import token_required, admin_required

users_bp = Blueprint('users', __name__)

DEFAULT_PAGE_SIZE = 10
PUBLIC_PROJECTION = {'password_hash': 0}


# === Self-service Routes ===

@users_bp.route('/profile', methods=['PUT'])
@token_required
def update_profile():
    """Updates the caller's own name and location."""
    data = request.get_json(silent=True) or {}
    user = g.current_user

    update_fields = {}
    if 'name' in data:
        name = data['name']
        if not isinstance(name, str) or not name.strip():
            return jsonify({'success': False, 'message': 'Name cannot be empty'}), 400
        update_fields['name'] = name.strip()
    if 'location' in data:
        location = data['location']
        if location is not None and not isinstance(location, str):
            return jsonify({'success': False, 'message': 'Location must be a string'}), 400
        update_fields['location'] = location

    try:
        update_fields['updatedAt'] = utcnow()
        get_db().users.update_one({'_id': user.id}, {'$set': update_fields})
        for field, value in update_fields.items():
            setattr(user, field, value)
        current_app.logger.info(f"User {user.id} updated profile fields: {list(update_fields.keys())}")
        return jsonify({'success': True, 'data': user.to_dict()}), 200
    except Exception as e:
        current_app.logger.error(f"Error updating profile for {user.id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@users_bp.route('/password', methods=['PUT'])
@token_required
def change_password():
    data = request.get_json(silent=True) or {}
    user = g.current_user
    current_password = data.get('currentPassword')
    new_password = data.get('newPassword')

    if not isinstance(new_password, str):
        return jsonify({'success': False, 'message': 'New password is required'}), 400
    problem = password_problem(new_password)
    if problem:
        return jsonify({'success': False, 'message': problem}), 400
    if not user.check_password(current_password):
        return jsonify({'success': False, 'message': 'Current password is incorrect'}), 400

    try:
        user.set_password(new_password)
        get_db().users.update_one(
            {'_id': user.id},
            {'$set': {'password_hash': user.password_hash, 'updatedAt': utcnow()}}
        )
        current_app.logger.info(f"User {user.id} changed their password.")
        return jsonify({'success': True, 'message': 'Password changed successfully'}), 200
    except Exception as e:
        current_app.logger.error(f"Error changing password for {user.id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


# === Admin User Management Routes ===

@users_bp.route('', methods=['GET'])
@users_bp.route('/', methods=['GET'])
@admin_required
def get_users():
    """Paginated list of users (no password hashes), newest first."""
    page, limit = parse_pagination(request.args, DEFAULT_PAGE_SIZE)
    try:
        db = get_db()
        users = list(db.users.find({}, PUBLIC_PROJECTION)
                     .sort('createdAt', -1)
                     .skip((page - 1) * limit)
                     .limit(limit))
        total = db.users.count_documents({})
        return jsonify({
            'success': True,
            'count': len(users),
            'total': total,
            'page': page,
            'pages': page_count(total, limit),
            'data': serialize_doc(users),
        }), 200
    except Exception as e:
        current_app.logger.error(f"Error fetching all users: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@users_bp.route('/<string:user_id>', methods=['GET'])
@admin_required
def get_user(user_id):
    try:
        user = get_db().users.find_one({'_id': ObjectId(user_id)}, PUBLIC_PROJECTION)
        if not user:
            return jsonify({'success': False, 'message': 'User not found'}), 404
        return jsonify({'success': True, 'data': serialize_doc(user)}), 200
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid User ID format'}), 400
    except Exception as e:
        current_app.logger.error(f"Error fetching user {user_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@users_bp.route('/<string:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    """Updates a user's name, email and role."""
    data = request.get_json(silent=True) or {}
    admin_user = g.current_user

    try:
        user_oid = ObjectId(user_id)
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid User ID format'}), 400

    update_fields = {}
    validation_errors = []

    if 'name' in data:
        name = data['name']
        if not isinstance(name, str) or not name.strip():
            validation_errors.append('Name must be a non-empty string.')
        else:
            update_fields['name'] = name.strip()

    email = data.get('email')
    if email is not None:
        if not is_email(email):
            validation_errors.append('Invalid email format provided.')
        else:
            update_fields['email'] = email.strip().lower()

    role = data.get('role')
    if role is not None:
        if role not in USER_ROLES:
            validation_errors.append(f"Role must be one of: {', '.join(USER_ROLES)}.")
        elif user_oid == admin_user.id and role != 'admin':
            return jsonify({'success': False,
                            'message': 'Admin cannot remove their own admin role'}), 403
        else:
            update_fields['role'] = role

    if validation_errors:
        return jsonify({'success': False, 'message': 'Validation failed', 'errors': validation_errors}), 400

    try:
        db = get_db()
        if 'email' in update_fields and db.users.find_one(
                {'email': update_fields['email'], '_id': {'$ne': user_oid}}, {'_id': 1}):
            return jsonify({'success': False, 'message': 'Email is already taken by another user'}), 400

        update_fields['updatedAt'] = utcnow()
        result = db.users.update_one({'_id': user_oid}, {'$set': update_fields})
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'User not found'}), 404

        updated = User.from_document(db.users.find_one({'_id': user_oid}))
        current_app.logger.info(
            f"Admin {admin_user.id} updated user {user_id} fields: {list(update_fields.keys())}")
        return jsonify({'success': True, 'data': updated.to_dict()}), 200
    except DuplicateKeyError:
        return jsonify({'success': False, 'message': 'Email is already taken by another user'}), 400
    except Exception as e:
        current_app.logger.error(f"Error updating user {user_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500


@users_bp.route('/<string:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    admin_user = g.current_user
    try:
        user_oid = ObjectId(user_id)
    except InvalidId:
        return jsonify({'success': False, 'message': 'Invalid User ID format'}), 400

    if user_oid == admin_user.id:
        return jsonify({'success': False, 'message': 'Admin cannot delete their own account'}), 403

    try:
        db = get_db()
        user_to_delete = db.users.find_one({'_id': user_oid}, {'email': 1})
        if not user_to_delete:
            return jsonify({'success': False, 'message': 'User not found'}), 404

        db.users.delete_one({'_id': user_oid})
        current_app.logger.info(
            f"Admin {admin_user.id} deleted user {user_to_delete.get('email', 'Unknown')} ({user_id})")
        return jsonify({'success': True, 'message': 'User deleted successfully'}), 200
    except Exception as e:
        current_app.logger.error(f"Error deleting user {user_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Server error'}), 500
