"""
iBarangay - Database Models
Import all models here for Flask-Migrate to detect them
"""
from ibarangay import db

Base = db.Model

from .user import User
from .resident import Resident
from .document import DocumentRequest, TrackingCounter
from .barangay_config import BarangayConfig
from .audit import AuditLog

__all__ = [
    'User',
    'Resident',
    'DocumentRequest',
    'TrackingCounter',
    'BarangayConfig',
    'AuditLog',
]
