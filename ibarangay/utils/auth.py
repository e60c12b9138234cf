"""Authentication and role helpers for route handlers."""
from functools import wraps

from flask import jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ibarangay import db
from ibarangay.models.user import User, STAFF_ROLES


def get_current_user():
    """Return the active User behind the request's JWT, or None."""
    identity = get_jwt_identity()
    if identity is None:
        return None
    try:
        user = db.session.get(User, int(identity))
    except (TypeError, ValueError):
        return None
    if not user or not user.is_active:
        return None
    return user


def roles_required(*roles):
    """
    Require a valid JWT whose user holds one of ``roles``.

    The resolved user is passed to the view as the ``current_user`` keyword.
    """
    allowed = set(roles)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user = get_current_user()
            if not user:
                return jsonify({'error': 'Unauthorized'}), 401
            if allowed and user.role not in allowed:
                return jsonify({'error': 'You do not have access to this resource'}), 403
            return fn(*args, current_user=user, **kwargs)
        return wrapper
    return decorator


def staff_required(fn):
    """Shortcut for any barangay official role."""
    return roles_required(*STAFF_ROLES)(fn)


def login_required(fn):
    """Any authenticated, active user."""
    return roles_required()(fn)
