"""
iBarangay - Resident Directory Routes
Staff-facing resident registry: list, view, register, edit, delete, photo.
"""
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func, or_

from ibarangay import db
from ibarangay.models.resident import Resident
from ibarangay.models.user import ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY
from ibarangay.utils.auth import roles_required, staff_required
from ibarangay.utils.directory_sync import (
    DuplicateEmail,
    NotFound,
    create_resident_account,
    delete_resident,
    update_resident,
)
from ibarangay.utils.security import error_400, error_404, error_409, error_500, error_502
from ibarangay.utils.supabase_storage import SupabaseStorageError, upload_profile_picture
from ibarangay.utils.validators import ValidationError

residents_bp = Blueprint('residents', __name__, url_prefix='/api/residents')

# Officials who maintain the registry
REGISTRY_EDITORS = (ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY)


@residents_bp.route('', methods=['GET'])
@staff_required
def list_residents(current_user):
    """List residents, optionally filtered by name/household search and purok."""
    try:
        page = request.args.get('page', 1, type=int)
        per_page = min(request.args.get('per_page', 50, type=int), 200)
        search = (request.args.get('q') or '').strip().lower()
        purok = (request.args.get('purok') or '').strip()

        query = Resident.query
        if search:
            like = f"%{search}%"
            query = query.filter(or_(
                func.lower(Resident.first_name + ' ' + Resident.last_name).like(like),
                func.lower(Resident.household_number).like(like),
            ))
        if purok:
            query = query.filter(Resident.purok == purok)

        residents = query.order_by(Resident.last_name, Resident.first_name).paginate(
            page=page, per_page=per_page, error_out=False
        )
        return jsonify({
            'residents': [r.to_dict() for r in residents.items],
            'pagination': {
                'page': page,
                'per_page': per_page,
                'total': residents.total,
                'pages': residents.pages,
            }
        }), 200

    except Exception as e:
        return error_500('Failed to get residents', e)


@residents_bp.route('/<int:resident_id>', methods=['GET'])
@staff_required
def get_resident(resident_id, current_user):
    resident = db.session.get(Resident, resident_id)
    if not resident:
        return error_404('Resident not found')
    data = resident.to_dict()
    data['request_count'] = resident.requests.count()
    return jsonify(data), 200


@residents_bp.route('', methods=['POST'])
@roles_required(*REGISTRY_EDITORS)
def register_resident(current_user):
    """Create a resident together with its login account."""
    try:
        data = request.get_json(silent=True) or {}
        resident, user = create_resident_account(data, actor=current_user)
        return jsonify({
            'message': 'Resident registered successfully',
            'resident': resident.to_dict(),
            'user': user.to_dict(),
        }), 201

    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except DuplicateEmail as e:
        db.session.rollback()
        return error_409(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to register resident', e)


@residents_bp.route('/<int:resident_id>', methods=['PUT'])
@roles_required(*REGISTRY_EDITORS)
def edit_resident(resident_id, current_user):
    try:
        data = request.get_json(silent=True) or {}
        resident = update_resident(resident_id, data, actor=current_user)
        return jsonify({'message': 'Resident updated', 'resident': resident.to_dict()}), 200

    except NotFound as e:
        db.session.rollback()
        return error_404(str(e))
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to update resident', e)


@residents_bp.route('/<int:resident_id>', methods=['DELETE'])
@roles_required(ROLE_ADMIN)
def remove_resident(resident_id, current_user):
    try:
        delete_resident(resident_id, actor=current_user)
        current_app.logger.info("Resident %s deleted by %s", resident_id, current_user.id)
        return jsonify({'message': 'Resident deleted'}), 200

    except NotFound as e:
        db.session.rollback()
        return error_404(str(e))
    except ValidationError as e:
        db.session.rollback()
        return error_400(str(e))
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to delete resident', e)


@residents_bp.route('/<int:resident_id>/photo', methods=['POST'])
@roles_required(*REGISTRY_EDITORS)
def upload_resident_photo(resident_id, current_user):
    try:
        if not db.session.get(Resident, resident_id):
            return error_404('Resident not found')

        f = request.files.get('file')
        if f is None or not getattr(f, 'filename', ''):
            return error_400('No file uploaded')

        url = upload_profile_picture(f, resident_id)
        resident = update_resident(resident_id, {'avatar_url': url}, actor=current_user)
        return jsonify({'message': 'Profile photo updated', 'resident': resident.to_dict()}), 200

    except ValidationError as e:
        return error_400(str(e))
    except SupabaseStorageError as e:
        db.session.rollback()
        return error_502('Failed to store profile photo', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to upload profile photo', e)
