"""Document request models."""
from ibarangay import db
from ibarangay.utils.time import utc_now, isoformat_or_none
from sqlalchemy import Index


STATUS_PENDING = 'Pending'
STATUS_APPROVED = 'Approved'
STATUS_PAID = 'Paid'
STATUS_RELEASED = 'Released'
STATUS_REJECTED = 'Rejected'

STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_PAID, STATUS_RELEASED, STATUS_REJECTED)

# Fixed fee per document type
DOCUMENT_FEES = {
    'Barangay Clearance': 50.00,
    'Certificate of Residency': 75.00,
    'Certificate of Indigency': 0.00,
    'Business Permit': 250.00,
    'Good Moral Character Certificate': 100.00,
    'Solo Parent Certificate': 0.00,
}

DOCUMENT_TYPES = tuple(DOCUMENT_FEES)


class DocumentRequest(db.Model):
    __tablename__ = 'document_requests'

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Tracking / payment matching identifiers
    tracking_number = db.Column(db.String(30), unique=True, nullable=False)
    reference_number = db.Column(db.String(20), unique=True, nullable=False)

    # Requester (name denormalized at creation)
    resident_id = db.Column(db.Integer, db.ForeignKey('residents.id'), nullable=False)
    resident_name = db.Column(db.String(200), nullable=False)

    # Document Information
    document_type = db.Column(db.String(100), nullable=False)
    request_date = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # Status
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)
    rejection_reason = db.Column(db.Text, nullable=True)

    # Payment details (self-reported by the resident, verified by staff)
    payment_method = db.Column(db.String(30), nullable=True)
    payment_transaction_id = db.Column(db.String(100), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=True)
    payment_submitted_at = db.Column(db.DateTime, nullable=True)

    # Captured once at approval, used for certificate generation
    resident_snapshot = db.Column(db.JSON, nullable=True)

    # Lifecycle stamps
    approval_date = db.Column(db.DateTime, nullable=True)
    release_date = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        Index('idx_doc_request_resident', 'resident_id'),
        Index('idx_doc_request_status', 'status'),
        Index('idx_doc_request_created_at', 'created_at'),
    )

    def __repr__(self):
        return f'<DocumentRequest {self.tracking_number}>'

    @property
    def payment_details(self):
        if not (self.payment_method or self.payment_transaction_id):
            return None
        return {
            'method': self.payment_method,
            'transaction_id': self.payment_transaction_id,
            'payment_date': isoformat_or_none(self.payment_date),
            'submitted_at': isoformat_or_none(self.payment_submitted_at),
        }

    def to_dict(self):
        """Convert document request to dictionary."""
        return {
            'id': self.id,
            'tracking_number': self.tracking_number,
            'reference_number': self.reference_number,
            'resident_id': self.resident_id,
            'resident_name': self.resident_name,
            'document_type': self.document_type,
            'request_date': isoformat_or_none(self.request_date),
            'amount': float(self.amount) if self.amount is not None else 0.00,
            'status': self.status,
            'rejection_reason': self.rejection_reason,
            'payment_details': self.payment_details,
            'resident_snapshot': self.resident_snapshot,
            'approval_date': isoformat_or_none(self.approval_date),
            'release_date': isoformat_or_none(self.release_date),
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at),
        }


class TrackingCounter(db.Model):
    """Monotonic sequence backing tracking numbers."""
    __tablename__ = 'tracking_counters'

    name = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f'<TrackingCounter {self.name}={self.value}>'
