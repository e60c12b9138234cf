"""
iBarangay - Authentication Routes
Login, current-user profile, profile photo and password change.

Security: login and password change are rate limited to slow down brute
force attempts.
"""
from datetime import timedelta

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token
from sqlalchemy import func

from ibarangay import db, limiter
from ibarangay.models.user import User, ROLE_RESIDENT
from ibarangay.utils.auth import login_required
from ibarangay.utils.directory_sync import NotFound, DuplicateEmail, update_resident, update_user
from ibarangay.utils.security import (
    error_400,
    error_401,
    error_404,
    error_409,
    error_500,
    error_502,
    hash_password,
    verify_password,
)
from ibarangay.utils.supabase_storage import SupabaseStorageError, upload_profile_picture, upload_staff_avatar
from ibarangay.utils.time import utc_now
from ibarangay.utils.validators import ValidationError, validate_password

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

RESIDENT_PROFILE_FIELDS = ('first_name', 'last_name', 'purok', 'birthdate', 'household_number')


def _limit(limit_string):
    """Apply rate limit if limiter is available."""
    def decorator(f):
        if limiter:
            return limiter.limit(limit_string)(f)
        return f
    return decorator


def _profile(user: User) -> dict:
    return user.to_dict(include_resident=True)


@auth_bp.route('/login', methods=['POST'])
@_limit("10 per minute")
def login():
    """Exchange email and password for an access token."""
    try:
        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip().lower()
        password = data.get('password')

        if not email or not password:
            return jsonify({'error': 'Email and password are required'}), 400

        user = User.query.filter(func.lower(User.email) == email).first()
        if not user or not verify_password(password, user.password_hash):
            return jsonify({'error': 'Invalid credentials'}), 401

        if not user.is_active:
            return jsonify({'error': 'Account is deactivated'}), 403

        user.last_login = utc_now()
        db.session.commit()

        access_token = create_access_token(
            identity=str(user.id),
            expires_delta=timedelta(hours=8),
            additional_claims={'role': user.role},
        )
        current_app.logger.info("User %s logged in", user.id)
        return jsonify({
            'message': 'Login successful',
            'access_token': access_token,
            'user': _profile(user),
        }), 200

    except Exception as e:
        db.session.rollback()
        return error_500('Login failed', e)


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_me(current_user):
    return jsonify(_profile(current_user)), 200


@auth_bp.route('/me', methods=['PUT'])
@login_required
def update_me(current_user):
    """
    Update the signed-in user's own profile.

    Residents edit their resident record (the account name follows); staff
    edit their account name and email. Nothing is saved unless every field
    is accepted.
    """
    try:
        data = request.get_json(silent=True) or {}

        if current_user.role == ROLE_RESIDENT and current_user.resident_id:
            fields = {k: data[k] for k in RESIDENT_PROFILE_FIELDS if k in data}
            update_resident(current_user.resident_id, fields, actor=current_user, commit=False)
            if 'email' in data:
                update_user(current_user.id, {'email': data['email']}, actor=current_user, commit=False)
        else:
            fields = {k: data[k] for k in ('name', 'email') if k in data}
            update_user(current_user.id, fields, actor=current_user, commit=False)
        db.session.commit()

        db.session.refresh(current_user)
        return jsonify({'message': 'Profile updated successfully', 'user': _profile(current_user)}), 200

    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except DuplicateEmail as e:
        db.session.rollback()
        return error_409(str(e))
    except NotFound as e:
        db.session.rollback()
        return error_404(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update profile', e)


@auth_bp.route('/me/photo', methods=['POST'])
@login_required
def upload_my_photo(current_user):
    """Upload or replace the signed-in user's profile photo."""
    try:
        f = request.files.get('file')
        if f is None or not getattr(f, 'filename', ''):
            return error_400('No file uploaded')

        if current_user.resident_id:
            url = upload_profile_picture(f, current_user.resident_id)
            update_resident(current_user.resident_id, {'avatar_url': url}, actor=current_user)
        else:
            url = upload_staff_avatar(f, current_user.id)
            update_user(current_user.id, {'avatar_url': url}, actor=current_user)

        db.session.refresh(current_user)
        return jsonify({'message': 'Profile photo updated', 'user': _profile(current_user)}), 200

    except ValidationError as e:
        return error_400(str(e))
    except SupabaseStorageError as e:
        db.session.rollback()
        return error_502("Failed to store profile photo", e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to upload profile photo', e)


@auth_bp.route('/change-password', methods=['POST'])
@_limit("5 per hour")
@login_required
def change_password(current_user):
    try:
        data = request.get_json(silent=True) or {}
        current_password = data.get('current_password')
        new_password = data.get('new_password')

        if not current_password or not new_password:
            return error_400('Current password and new password are required')

        if not verify_password(current_password, current_user.password_hash):
            return error_401('Current password is incorrect')

        current_user.password_hash = hash_password(validate_password(new_password))
        db.session.commit()
        return jsonify({'message': 'Password changed successfully'}), 200

    except ValidationError as e:
        return error_400(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to change password', e)
