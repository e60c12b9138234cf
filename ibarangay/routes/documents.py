"""
iBarangay - Document Request Routes
Submission, listing, status workflow, payment submission and certificates.
"""
from io import BytesIO

from flask import Blueprint, request, jsonify, current_app, send_file

from ibarangay import db
from ibarangay.models.barangay_config import BarangayConfig
from ibarangay.models.document import DocumentRequest, DOCUMENT_FEES
from ibarangay.models.resident import Resident
from ibarangay.models.user import ROLE_ADMIN, ROLE_RESIDENT, ROLE_TREASURER
from ibarangay.utils.auth import login_required, roles_required, staff_required
from ibarangay.utils.pdf_generator import CertificateError, certificate_filename, generate_certificate_pdf
from ibarangay.utils.request_lifecycle import (
    InvalidTransition,
    PaymentNotAllowed,
    ResidentNotFound,
    TransitionNotPermitted,
    advance_request,
    awaiting_payment_verification,
    filter_requests,
    submit_payment,
    submit_request,
    visible_requests,
)
from ibarangay.utils.security import error_400, error_403, error_404, error_500
from ibarangay.utils.validators import ValidationError

documents_bp = Blueprint('documents', __name__, url_prefix='/api/documents')


def _get_visible_request(user, request_id):
    """Return the request if ``user`` may see it, else None."""
    return visible_requests(user).filter(DocumentRequest.id == request_id).first()


@documents_bp.route('/types', methods=['GET'])
def get_document_types():
    """List requestable documents with their fees."""
    return jsonify({
        'types': [{'name': name, 'amount': amount} for name, amount in DOCUMENT_FEES.items()]
    }), 200


@documents_bp.route('/payment-info', methods=['GET'])
@login_required
def get_payment_info(current_user):
    """GCash account residents pay into."""
    return jsonify({
        'method': 'GCash',
        'account_number': current_app.config.get('GCASH_NUMBER'),
        'account_name': current_app.config.get('GCASH_ACCOUNT_NAME'),
    }), 200


@documents_bp.route('/requests', methods=['POST'])
@login_required
def create_request(current_user):
    """Submit a document request.

    Residents always request for themselves; officials pass ``resident_id``
    to file on behalf of a resident.
    """
    try:
        data = request.get_json(silent=True) or {}
        document_type = data.get('document_type')
        if not document_type:
            return error_400('document_type is required')

        if current_user.role == ROLE_RESIDENT:
            resident_id = current_user.resident_id
        else:
            resident_id = data.get('resident_id')
            if not resident_id:
                return error_400('resident_id is required')

        try:
            resident = db.session.get(Resident, int(resident_id)) if resident_id else None
        except (TypeError, ValueError):
            return error_400('resident_id must be an integer')
        if resident is None:
            return error_404('Resident not found')

        req = submit_request(resident, document_type)
        return jsonify({'message': 'Request submitted', 'request': req.to_dict()}), 201

    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to submit request', e)


@documents_bp.route('/requests', methods=['GET'])
@login_required
def list_requests(current_user):
    try:
        page = request.args.get('page', 1, type=int)
        per_page = min(request.args.get('per_page', 50, type=int), 200)

        query = filter_requests(
            visible_requests(current_user),
            status=request.args.get('status'),
            search=request.args.get('q'),
        )
        requests_page = query.order_by(
            DocumentRequest.request_date.desc(), DocumentRequest.id.desc()
        ).paginate(page=page, per_page=per_page, error_out=False)

        return jsonify({
            'requests': [r.to_dict() for r in requests_page.items],
            'pagination': {
                'page': page,
                'per_page': per_page,
                'total': requests_page.total,
                'pages': requests_page.pages,
            }
        }), 200

    except ValidationError as e:
        return error_400(str(e))
    except Exception as e:
        return error_500('Failed to get requests', e)


@documents_bp.route('/requests/<int:request_id>', methods=['GET'])
@login_required
def get_request(request_id, current_user):
    req = _get_visible_request(current_user, request_id)
    if not req:
        return error_404('Request not found')
    resident = db.session.get(Resident, req.resident_id)
    if not resident:
        return error_404('Resident not found')

    data = req.to_dict()
    data['resident'] = resident.to_dict()
    return jsonify(data), 200


@documents_bp.route('/requests/<int:request_id>/status', methods=['PUT'])
@staff_required
def update_request_status(request_id, current_user):
    """Advance a request along its lifecycle."""
    try:
        data = request.get_json(silent=True) or {}
        target = data.get('status')
        if not target:
            return error_400('status is required')

        req = db.session.get(DocumentRequest, request_id)
        if not req:
            return error_404('Request not found')

        changed = advance_request(
            req,
            target,
            actor=current_user,
            reason=data.get('rejection_reason'),
        )
        if not changed:
            return jsonify({'message': 'Status unchanged', 'request': req.to_dict()}), 200
        return jsonify({'message': f'Request {req.status.lower()}', 'request': req.to_dict()}), 200

    except InvalidTransition as e:
        db.session.rollback()
        return error_400(str(e), code=e.code)
    except TransitionNotPermitted as e:
        db.session.rollback()
        return error_403(str(e), code=e.code)
    except ResidentNotFound as e:
        db.session.rollback()
        return error_404(str(e), code=e.code)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update request status', e)


@documents_bp.route('/requests/<int:request_id>/payment', methods=['POST'])
@login_required
def submit_request_payment(request_id, current_user):
    """Resident reports the GCash payment made for an approved request."""
    try:
        req = _get_visible_request(current_user, request_id)
        if not req:
            return error_404('Request not found')
        if current_user.role not in (ROLE_RESIDENT, ROLE_ADMIN):
            return error_403('Only the requesting resident can submit payment details')

        data = request.get_json(silent=True) or {}
        submit_payment(
            req,
            method=data.get('method') or 'GCash',
            transaction_id=data.get('transaction_id'),
            payment_date=data.get('payment_date'),
            actor=current_user,
        )
        return jsonify({'message': 'Payment submitted for verification', 'request': req.to_dict()}), 200

    except PaymentNotAllowed as e:
        db.session.rollback()
        return error_400(str(e), code=e.code)
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to submit payment', e)


@documents_bp.route('/payments/pending', methods=['GET'])
@roles_required(ROLE_ADMIN, ROLE_TREASURER)
def list_pending_payments(current_user):
    """Approved requests whose payment awaits verification."""
    try:
        pending = awaiting_payment_verification().all()
        return jsonify({'requests': [r.to_dict() for r in pending], 'count': len(pending)}), 200
    except Exception as e:
        return error_500('Failed to get pending payments', e)


@documents_bp.route('/requests/<int:request_id>/certificate', methods=['GET'])
@login_required
def download_certificate(request_id, current_user):
    try:
        req = _get_visible_request(current_user, request_id)
        if not req:
            return error_404('Request not found')

        pdf_bytes = generate_certificate_pdf(req, BarangayConfig.get_main())
        db.session.commit()
        return send_file(
            BytesIO(pdf_bytes),
            mimetype='application/pdf',
            as_attachment=True,
            download_name=certificate_filename(req),
        )

    except CertificateError as e:
        db.session.rollback()
        return error_400(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to generate certificate', e)
