"""
iBarangay - Reports & AI Routes
Fixed PDF/Excel exports and AI-assisted custom reports and insights.
"""
import json
from io import BytesIO

from flask import Blueprint, request, jsonify, current_app, send_file
from pydantic import ValidationError as PydanticValidationError

from ibarangay.models.document import DocumentRequest
from ibarangay.models.resident import Resident
from ibarangay.models.user import ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY, ROLE_TREASURER
from ibarangay.utils.ai_flows import AIServiceError, generate_custom_report, generate_insights
from ibarangay.utils.auth import roles_required
from ibarangay.utils.reports import REPORTS, ReportError
from ibarangay.utils.security import error_400, error_404, error_500, error_502

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')

REPORT_VIEWERS = (ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY, ROLE_TREASURER)
AI_USERS = (ROLE_ADMIN, ROLE_CAPTAIN, ROLE_SECRETARY)


def _serialize_directory() -> dict:
    """Current residents and requests as the JSON strings the AI flows take."""
    residents = [r.to_dict() for r in Resident.query.order_by(Resident.id).all()]
    requests_ = [r.to_dict() for r in DocumentRequest.query.order_by(DocumentRequest.id).all()]
    return {
        'resident_data': json.dumps(residents, default=str),
        'document_request_data': json.dumps(requests_, default=str),
    }


def _validation_message(exc: PydanticValidationError) -> str:
    first = exc.errors()[0]
    field = '.'.join(str(p) for p in first.get('loc', ()))
    return f"{field}: {first.get('msg')}" if field else first.get('msg', 'Invalid input')


@reports_bp.route('/<string:report_name>', methods=['GET'])
@roles_required(*REPORT_VIEWERS)
def export_report(report_name, current_user):
    """Download a fixed report as ?format=pdf or ?format=excel."""
    exporter = REPORTS.get(report_name)
    if exporter is None:
        return error_404('Report not found')
    try:
        content, mimetype, filename = exporter(request.args.get('format', 'pdf'))
        current_app.logger.info("Report %s exported by %s", filename, current_user.id)
        return send_file(BytesIO(content), mimetype=mimetype, as_attachment=True, download_name=filename)
    except ReportError as e:
        return error_400(str(e))
    except Exception as e:
        return error_500('Failed to generate report', e)


@reports_bp.route('/ai/custom', methods=['POST'])
@roles_required(*AI_USERS)
def ai_custom_report(current_user):
    """Generate a custom report from a description of what to analyze."""
    try:
        data = request.get_json(silent=True) or {}
        payload = _serialize_directory()
        payload.update({k: v for k, v in data.items() if v is not None})
        if isinstance(payload.get('report_parameters'), (dict, list)):
            payload['report_parameters'] = json.dumps(payload['report_parameters'])

        result = generate_custom_report(payload)
        return jsonify(result.model_dump()), 200

    except PydanticValidationError as e:
        return error_400(_validation_message(e))
    except AIServiceError as e:
        return error_502(str(e), e, code='AI_SERVICE_ERROR')
    except Exception as e:
        return error_500('Failed to generate report', e)


@reports_bp.route('/ai/insights', methods=['POST'])
@roles_required(*AI_USERS)
def ai_insights(current_user):
    try:
        data = request.get_json(silent=True) or {}
        payload = _serialize_directory()
        params = data.get('parameters')
        if params:
            payload['parameters'] = params if isinstance(params, str) else json.dumps(params)

        result = generate_insights(payload)
        return jsonify(result.model_dump()), 200

    except PydanticValidationError as e:
        return error_400(_validation_message(e))
    except AIServiceError as e:
        return error_502(str(e), e, code='AI_SERVICE_ERROR')
    except Exception as e:
        return error_500('Failed to generate insights', e)
