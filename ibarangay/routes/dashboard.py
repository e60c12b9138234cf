"""
iBarangay - Dashboard Routes
Headline numbers for officials and for residents.
"""
from collections import Counter

from flask import Blueprint, jsonify
from sqlalchemy import func

from ibarangay import db
from ibarangay.models.document import (
    DocumentRequest,
    STATUS_APPROVED,
    STATUS_PAID,
    STATUS_RELEASED,
)
from ibarangay.models.resident import Resident
from ibarangay.models.user import ROLE_RESIDENT
from ibarangay.utils.auth import login_required
from ibarangay.utils.security import error_500

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

RECENT_LIMIT = 5


def _resident_stats(user):
    query = DocumentRequest.query.filter(DocumentRequest.resident_id == user.resident_id)
    return {
        'total_requests': query.count(),
        'completed_requests': query.filter(DocumentRequest.status == STATUS_RELEASED).count(),
    }


def _staff_stats():
    approved = DocumentRequest.query.filter(
        DocumentRequest.status.in_((STATUS_APPROVED, STATUS_PAID, STATUS_RELEASED))
    ).count()
    revenue = db.session.query(func.coalesce(func.sum(DocumentRequest.amount), 0)).filter(
        DocumentRequest.status.in_((STATUS_PAID, STATUS_RELEASED))
    ).scalar()

    per_month = Counter(
        d.strftime('%Y-%m')
        for (d,) in db.session.query(DocumentRequest.request_date).all()
        if d is not None
    )
    recent = DocumentRequest.query.order_by(
        DocumentRequest.created_at.desc(), DocumentRequest.id.desc()
    ).limit(RECENT_LIMIT).all()

    return {
        'total_residents': Resident.query.count(),
        'approved_requests': approved,
        'total_revenue': float(revenue or 0),
        'requests_per_month': [
            {'month': month, 'requests': count} for month, count in sorted(per_month.items())
        ],
        'recent_requests': [r.to_dict() for r in recent],
    }


@dashboard_bp.route('', methods=['GET'])
@login_required
def get_dashboard(current_user):
    try:
        if current_user.role == ROLE_RESIDENT:
            return jsonify(_resident_stats(current_user)), 200
        return jsonify(_staff_stats()), 200
    except Exception as e:
        return error_500('Failed to load dashboard', e)
