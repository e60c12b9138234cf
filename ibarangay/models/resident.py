"""Resident profile model."""
from ibarangay import db
from ibarangay.utils.time import utc_now, isoformat_or_none
from sqlalchemy import Index


# Display IDs start at R-1001 for the first resident
DISPLAY_ID_OFFSET = 1000


class Resident(db.Model):
    __tablename__ = 'residents'

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Owning account
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, unique=True)

    # Demographics
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    purok = db.Column(db.String(100), nullable=True)
    address = db.Column(db.String(255), nullable=False)
    birthdate = db.Column(db.Date, nullable=False)
    household_number = db.Column(db.String(50), nullable=False)
    avatar_url = db.Column(db.String(500), nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    user = db.relationship('User', foreign_keys=[user_id])
    requests = db.relationship('DocumentRequest', backref='resident', lazy='dynamic')

    __table_args__ = (
        Index('idx_resident_name', 'last_name', 'first_name'),
        Index('idx_resident_household', 'household_number'),
    )

    def __repr__(self):
        return f'<Resident {self.display_id}>'

    @property
    def display_id(self):
        if self.id is None:
            return None
        return f'R-{DISPLAY_ID_OFFSET + self.id}'

    @property
    def full_name(self) -> str:
        return f'{self.first_name} {self.last_name}'

    def to_dict(self):
        return {
            'id': self.id,
            'display_id': self.display_id,
            'user_id': self.user_id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'purok': self.purok,
            'address': self.address,
            'birthdate': isoformat_or_none(self.birthdate),
            'household_number': self.household_number,
            'avatar_url': self.avatar_url,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at),
        }
