"""Audit log model.

Tracks staff and system actions across entities (residents, users, document
requests, settings) for unified audit browsing.
"""
from ibarangay import db
from ibarangay.utils.time import utc_now, isoformat_or_none
from sqlalchemy import Index


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # e.g., 'document_request', 'resident', 'user', 'barangay_config'
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)

    action = db.Column(db.String(50), nullable=False)  # e.g., 'create','update','approve','release'
    actor_role = db.Column(db.String(30), nullable=True)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    user = db.relationship('User', backref=db.backref('audit_logs', lazy='dynamic'))

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_created_at', 'created_at'),
        Index('idx_audit_user', 'user_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'action': self.action,
            'actor_role': self.actor_role,
            'old_values': self.old_values,
            'new_values': self.new_values,
            'notes': self.notes,
            'created_at': isoformat_or_none(self.created_at),
        }
