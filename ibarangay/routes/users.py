"""
iBarangay - User Management Routes (Admin only)
"""
from flask import Blueprint, request, jsonify

from ibarangay import db
from ibarangay.models.user import User, ROLES, ROLE_ADMIN
from ibarangay.utils.auth import roles_required
from ibarangay.utils.directory_sync import DuplicateEmail, NotFound, create_staff_account, update_user
from ibarangay.utils.security import error_400, error_404, error_409, error_500
from ibarangay.utils.validators import ValidationError

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('', methods=['GET'])
@roles_required(ROLE_ADMIN)
def list_users(current_user):
    try:
        role = request.args.get('role')
        query = User.query
        if role:
            if role not in ROLES:
                return error_400(f"Invalid role. Allowed: {', '.join(ROLES)}")
            query = query.filter(User.role == role)
        users = query.order_by(User.name).all()
        return jsonify({'users': [u.to_dict() for u in users], 'count': len(users)}), 200
    except Exception as e:
        return error_500('Failed to get users', e)


@users_bp.route('/<int:user_id>', methods=['GET'])
@roles_required(ROLE_ADMIN)
def get_user(user_id, current_user):
    user = db.session.get(User, user_id)
    if not user:
        return error_404('User not found')
    return jsonify(user.to_dict(include_resident=True)), 200


@users_bp.route('', methods=['POST'])
@roles_required(ROLE_ADMIN)
def create_user(current_user):
    """Create an official's account; residents are registered via /api/residents."""
    try:
        data = request.get_json(silent=True) or {}
        user = create_staff_account(data, actor=current_user)
        return jsonify({'message': 'User created', 'user': user.to_dict()}), 201
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except DuplicateEmail as e:
        db.session.rollback()
        return error_409(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to create user', e)


@users_bp.route('/<int:user_id>', methods=['PUT'])
@roles_required(ROLE_ADMIN)
def edit_user(user_id, current_user):
    try:
        data = request.get_json(silent=True) or {}
        if user_id == current_user.id and data.get('is_active') is False:
            return error_400('You cannot deactivate your own account')
        user = update_user(user_id, data, actor=current_user)
        return jsonify({'message': 'User updated', 'user': user.to_dict(include_resident=True)}), 200
    except NotFound as e:
        db.session.rollback()
        return error_404(str(e))
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except DuplicateEmail as e:
        db.session.rollback()
        return error_409(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update user', e)
