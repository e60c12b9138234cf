"""API Routes - Import all blueprints here."""

from .auth import auth_bp
from .residents import residents_bp
from .users import users_bp
from .documents import documents_bp
from .reports import reports_bp
from .dashboard import dashboard_bp
from .settings import settings_bp

__all__ = [
    'auth_bp',
    'residents_bp',
    'users_bp',
    'documents_bp',
    'reports_bp',
    'dashboard_bp',
    'settings_bp',
]
