"""Barangay settings (single row keyed 'main')."""
from ibarangay import db
from ibarangay.utils.time import utc_now, isoformat_or_none


DEFAULT_BARANGAY_NAME = 'Barangay Mina De Oro'
DEFAULT_BARANGAY_ADDRESS = 'Bongabong, Oriental Mindoro, Philippines'


class BarangayConfig(db.Model):
    __tablename__ = 'barangay_config'

    id = db.Column(db.String(20), primary_key=True, default='main')
    name = db.Column(db.String(150), nullable=False, default=DEFAULT_BARANGAY_NAME)
    address = db.Column(db.String(255), nullable=False, default=DEFAULT_BARANGAY_ADDRESS)
    seal_logo_url = db.Column(db.String(500), nullable=True)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    @classmethod
    def get_main(cls):
        """Return the settings row, creating it with defaults on first access."""
        config = db.session.get(cls, 'main')
        if config is None:
            config = cls(
                id='main',
                name=DEFAULT_BARANGAY_NAME,
                address=DEFAULT_BARANGAY_ADDRESS,
            )
            db.session.add(config)
            db.session.flush()
        return config

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'seal_logo_url': self.seal_logo_url,
            'updated_at': isoformat_or_none(self.updated_at),
        }
