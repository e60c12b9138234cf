"""User account model."""
from ibarangay import db
from ibarangay.utils.time import utc_now, isoformat_or_none
from sqlalchemy import Index


ROLE_ADMIN = 'Admin'
ROLE_CAPTAIN = 'Barangay Captain'
ROLE_SECRETARY = 'Secretary'
ROLE_TREASURER = 'Treasurer'
ROLE_RESIDENT = 'Resident'

ROLES = (ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY, ROLE_TREASURER, ROLE_RESIDENT)
STAFF_ROLES = (ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY, ROLE_TREASURER)


class User(db.Model):
    __tablename__ = 'users'

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Identity
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    avatar_url = db.Column(db.String(500), nullable=True)

    # Authorization
    role = db.Column(db.String(30), nullable=False, default=ROLE_RESIDENT)

    # Paired resident profile (Resident role only)
    resident_id = db.Column(db.Integer, db.ForeignKey('residents.id', use_alter=True), nullable=True)

    # Status
    is_active = db.Column(db.Boolean, default=True)
    last_login = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    resident = db.relationship('Resident', foreign_keys=[resident_id], post_update=True)

    __table_args__ = (
        Index('idx_user_role', 'role'),
    )

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def to_dict(self, include_resident=False):
        """Convert user to dictionary. Never includes the password hash."""
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'avatar_url': self.avatar_url,
            'role': self.role,
            'resident_id': self.resident_id,
            'is_active': self.is_active,
            'last_login': isoformat_or_none(self.last_login),
            'created_at': isoformat_or_none(self.created_at),
        }
        if include_resident and self.resident:
            data['resident'] = self.resident.to_dict()
        return data
