"""
iBarangay - Barangay Settings Routes
"""
from flask import Blueprint, request, jsonify

from ibarangay import db
from ibarangay.models.barangay_config import BarangayConfig
from ibarangay.models.user import ROLE_ADMIN
from ibarangay.utils.admin_audit import log_generic_action
from ibarangay.utils.auth import login_required, roles_required
from ibarangay.utils.security import error_400, error_500, error_502
from ibarangay.utils.supabase_storage import SupabaseStorageError, upload_seal
from ibarangay.utils.validators import ValidationError, sanitize_string

settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


@settings_bp.route('', methods=['GET'])
@login_required
def get_settings(current_user):
    try:
        config = BarangayConfig.get_main()
        db.session.commit()
        return jsonify(config.to_dict()), 200
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to get settings', e)


@settings_bp.route('', methods=['PUT'])
@roles_required(ROLE_ADMIN)
def update_settings(current_user):
    try:
        data = request.get_json(silent=True) or {}
        config = BarangayConfig.get_main()
        old = {'name': config.name, 'address': config.address}

        if 'name' in data:
            name = sanitize_string(data['name'], 150)
            if not name:
                return error_400('Barangay name is required')
            config.name = name
        if 'address' in data:
            address = sanitize_string(data['address'], 255)
            if not address:
                return error_400('Barangay address is required')
            config.address = address

        log_generic_action(
            user_id=current_user.id,
            entity_type='barangay_config',
            action='update',
            actor_role=current_user.role,
            old_values=old,
            new_values={'name': config.name, 'address': config.address},
        )
        db.session.commit()
        return jsonify({'message': 'Settings saved', 'settings': config.to_dict()}), 200

    except Exception as e:
        db.session.rollback()
        return error_500('Failed to save settings', e)


@settings_bp.route('/seal', methods=['POST'])
@roles_required(ROLE_ADMIN)
def upload_barangay_seal(current_user):
    try:
        f = request.files.get('file')
        if f is None or not getattr(f, 'filename', ''):
            return error_400('No file uploaded')

        url = upload_seal(f)
        config = BarangayConfig.get_main()
        old_url = config.seal_logo_url
        config.seal_logo_url = url

        log_generic_action(
            user_id=current_user.id,
            entity_type='barangay_config',
            action='upload_seal',
            actor_role=current_user.role,
            old_values={'seal_logo_url': old_url},
            new_values={'seal_logo_url': url},
        )
        db.session.commit()
        return jsonify({'message': 'Seal uploaded', 'settings': config.to_dict()}), 200

    except ValidationError as e:
        return error_400(str(e))
    except SupabaseStorageError as e:
        db.session.rollback()
        return error_502('Failed to store seal', e)
    except Exception as e:
        db.session.rollback()
        return error_500('Failed to upload seal', e)
