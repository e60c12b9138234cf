"""
Document request lifecycle.

Requests move along Pending -> Approved -> Paid -> Released, and may be
Rejected while Pending or Approved. Entering Approved captures the resident
snapshot and approval date; entering Released stamps the release date. Each
stamp is written once and never replaced.

Payment details are self-reported by the resident while the request is
Approved; the status only becomes Paid when a staff member verifies them.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from ibarangay import db
from ibarangay.models.document import (
    DocumentRequest,
    TrackingCounter,
    DOCUMENT_FEES,
    STATUSES,
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_PAID,
    STATUS_RELEASED,
    STATUS_REJECTED,
)
from ibarangay.models.resident import Resident
from ibarangay.models.user import (
    User,
    ROLE_ADMIN,
    ROLE_CAPTAIN,
    ROLE_SECRETARY,
    ROLE_TREASURER,
    ROLE_RESIDENT,
)
from ibarangay.utils.admin_audit import log_generic_action
from ibarangay.utils.time import utc_now, utc_today
from ibarangay.utils.validators import ValidationError

logger = logging.getLogger(__name__)

TRACKING_PREFIX = 'IBGY'
TRACKING_COUNTER_NAME = 'document_requests'
REFERENCE_DIGITS = 10

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED},
    STATUS_APPROVED: {STATUS_PAID, STATUS_REJECTED},
    STATUS_PAID: {STATUS_RELEASED},
    STATUS_RELEASED: set(),
    STATUS_REJECTED: set(),
}

# Target statuses each role may set
ROLE_TARGETS = {
    ROLE_ADMIN: set(STATUSES),
    ROLE_CAPTAIN: {STATUS_APPROVED, STATUS_REJECTED, STATUS_RELEASED},
    ROLE_SECRETARY: {STATUS_APPROVED, STATUS_REJECTED, STATUS_RELEASED},
    ROLE_TREASURER: {STATUS_PAID},
    ROLE_RESIDENT: set(),
}

STATUS_ACTIONS = {
    STATUS_APPROVED: 'approve',
    STATUS_PAID: 'verify_payment',
    STATUS_RELEASED: 'release',
    STATUS_REJECTED: 'reject',
}


class LifecycleError(Exception):
    """Base class for request lifecycle failures."""
    code = 'LIFECYCLE_ERROR'


class InvalidTransition(LifecycleError):
    code = 'INVALID_TRANSITION'

    def __init__(self, current: str, target: str):
        super().__init__(f'Invalid transition from {current} to {target}')
        self.current = current
        self.target = target


class TransitionNotPermitted(LifecycleError):
    code = 'TRANSITION_NOT_PERMITTED'

    def __init__(self, role: str, target: str):
        super().__init__(f'{role} cannot set status {target}')
        self.role = role
        self.target = target


class PaymentNotAllowed(LifecycleError):
    code = 'PAYMENT_NOT_ALLOWED'


class ResidentNotFound(LifecycleError):
    code = 'RESIDENT_NOT_FOUND'


def normalize_status(value) -> Optional[str]:
    """Map a case-insensitive status name onto its canonical spelling."""
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for status in STATUSES:
        if status.lower() == wanted:
            return status
    return None


def fee_for(document_type: str) -> float:
    try:
        return DOCUMENT_FEES[document_type]
    except KeyError:
        raise ValidationError(
            'document_type',
            f"Unknown document type. Allowed: {', '.join(DOCUMENT_FEES)}"
        )


def can_advance(role: str, target_status: str) -> bool:
    return target_status in ROLE_TARGETS.get(role, set())


# =============================================================================
# Identifiers
# =============================================================================

def _next_tracking_sequence() -> int:
    """
    Advance the tracking counter inside the current transaction.

    The counter is seeded from the number of existing requests on first use,
    so numbering continues from the existing collection.
    """
    counter = db.session.get(TrackingCounter, TRACKING_COUNTER_NAME)
    if counter is None:
        existing = db.session.scalar(select(func.count(DocumentRequest.id))) or 0
        db.session.add(TrackingCounter(name=TRACKING_COUNTER_NAME, value=existing))
        db.session.flush()

    db.session.execute(
        update(TrackingCounter)
        .where(TrackingCounter.name == TRACKING_COUNTER_NAME)
        .values(value=TrackingCounter.value + 1)
        .execution_options(synchronize_session=False)
    )
    return db.session.scalar(
        select(TrackingCounter.value).where(TrackingCounter.name == TRACKING_COUNTER_NAME)
    )


def format_tracking_number(sequence: int, on_date=None) -> str:
    on_date = on_date or utc_today()
    return f"{TRACKING_PREFIX}-{on_date.strftime('%y%m%d')}{sequence:03d}"


def generate_reference_number() -> str:
    """Random numeric reference residents quote when paying."""
    for _ in range(5):
        candidate = ''.join(secrets.choice('0123456789') for _ in range(REFERENCE_DIGITS))
        exists = DocumentRequest.query.filter_by(reference_number=candidate).first()
        if not exists:
            return candidate
    raise RuntimeError("Unable to generate unique reference number")


# =============================================================================
# Operations
# =============================================================================

def submit_request(resident: Resident, document_type: str) -> DocumentRequest:
    """Create a Pending request for ``resident`` and persist it."""
    if resident is None:
        raise ResidentNotFound('Resident not found')

    amount = fee_for(document_type)

    def _build():
        req = DocumentRequest(
            resident_id=resident.id,
            resident_name=resident.full_name,
            document_type=document_type,
            request_date=utc_today(),
            amount=amount,
            status=STATUS_PENDING,
            tracking_number=format_tracking_number(_next_tracking_sequence()),
            reference_number=generate_reference_number(),
        )
        db.session.add(req)
        return req

    try:
        req = _build()
        db.session.commit()
    except IntegrityError:
        # Counter row, tracking or reference number taken by a concurrent writer
        db.session.rollback()
        logger.warning("Identifier collision while submitting request; retrying once")
        req = _build()
        db.session.commit()

    logger.info("Request %s submitted for resident %s", req.tracking_number, resident.id)
    return req


def build_resident_snapshot(resident: Resident) -> dict:
    return {
        'first_name': resident.first_name,
        'last_name': resident.last_name,
        'address': resident.address,
        'birthdate': resident.birthdate.isoformat() if resident.birthdate else None,
    }


def advance_request(
    req: DocumentRequest,
    target_status: str,
    actor: Optional[User] = None,
    reason: Optional[str] = None,
) -> bool:
    """
    Move ``req`` to ``target_status``, applying derived-field side effects.

    Returns False when the request is already in ``target_status`` (nothing
    is written), True when the transition was applied.

    Raises:
        InvalidTransition: target is unknown or not reachable from the current status
        TransitionNotPermitted: ``actor``'s role may not set the target
        ResidentNotFound: approving a request whose resident no longer exists
    """
    current = req.status or STATUS_PENDING
    target = normalize_status(target_status)
    if target is None:
        raise InvalidTransition(current, target_status)

    if actor is not None and not can_advance(actor.role, target):
        raise TransitionNotPermitted(actor.role, target)

    if target == current:
        return False

    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target)

    now = utc_now()
    if target == STATUS_APPROVED:
        if req.resident_snapshot is None:
            resident = db.session.get(Resident, req.resident_id)
            if resident is None:
                raise ResidentNotFound(f'Resident {req.resident_id} not found')
            req.resident_snapshot = build_resident_snapshot(resident)
        if req.approval_date is None:
            req.approval_date = now
    elif target == STATUS_RELEASED:
        if req.release_date is None:
            req.release_date = now
    elif target == STATUS_REJECTED and reason:
        req.rejection_reason = reason

    req.status = target

    log_generic_action(
        user_id=actor.id if actor else None,
        entity_type='document_request',
        entity_id=req.id,
        action=STATUS_ACTIONS.get(target, f'status_{target.lower()}'),
        actor_role=actor.role if actor else None,
        old_values={'status': current},
        new_values={'status': target},
        notes=reason,
    )
    db.session.commit()

    logger.info("Request %s moved %s -> %s", req.tracking_number, current, target)
    return True


def _parse_payment_date(value) -> datetime:
    if value is None or value == '':
        return utc_now()
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError('payment_date', 'payment_date must be an ISO 8601 timestamp')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def submit_payment(
    req: DocumentRequest,
    method: str,
    transaction_id: str,
    payment_date=None,
    actor: Optional[User] = None,
) -> DocumentRequest:
    """Attach self-reported payment details; the status stays Approved."""
    if req.status != STATUS_APPROVED:
        raise PaymentNotAllowed('Payment can only be submitted for approved requests')
    if float(req.amount or 0) <= 0:
        raise PaymentNotAllowed('This document has no fee')

    method = (method or '').strip()
    transaction_id = (transaction_id or '').strip()
    if not method:
        raise ValidationError('method', 'Payment method is required')
    if not transaction_id:
        raise ValidationError('transaction_id', 'Transaction ID is required')

    old = req.payment_details
    req.payment_method = method[:30]
    req.payment_transaction_id = transaction_id[:100]
    req.payment_date = _parse_payment_date(payment_date)
    req.payment_submitted_at = utc_now()

    log_generic_action(
        user_id=actor.id if actor else None,
        entity_type='document_request',
        entity_id=req.id,
        action='submit_payment',
        actor_role=actor.role if actor else None,
        old_values=old,
        new_values=req.payment_details,
    )
    db.session.commit()
    return req


# =============================================================================
# Queries
# =============================================================================

def visible_requests(user: User):
    """Base query of the requests ``user`` may see."""
    query = DocumentRequest.query
    if user.role == ROLE_RESIDENT:
        if not user.resident_id:
            return query.filter(db.false())
        return query.filter(DocumentRequest.resident_id == user.resident_id)
    return query


def filter_requests(query, status: Optional[str] = None, search: Optional[str] = None):
    """Apply the status tab and the name / tracking number search box."""
    if status and status.lower() != 'all':
        canonical = normalize_status(status)
        if canonical is None:
            raise ValidationError('status', f'Unknown status: {status}')
        query = query.filter(DocumentRequest.status == canonical)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(DocumentRequest.resident_name).like(like),
            func.lower(DocumentRequest.tracking_number).like(like),
        ))
    return query


def awaiting_payment_verification():
    """Approved requests whose resident has reported a payment."""
    return (
        DocumentRequest.query
        .filter(DocumentRequest.status == STATUS_APPROVED)
        .filter(DocumentRequest.payment_submitted_at.isnot(None))
        .order_by(DocumentRequest.payment_submitted_at.asc())
    )
