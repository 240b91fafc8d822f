"""
Study API Routes
Report status queries, report queueing and doctor assignment
"""
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from radreport.exceptions import ApiError, NotFound
from radreport.models import ReportStatus
from radreport.services import study_status_service, get_enqueue_coordinator
from radreport.utils.decorators import require_role, get_current_user_id
import logging

logger = logging.getLogger(__name__)

studies_bp = Blueprint('studies', __name__, url_prefix='/api/studies')


def _pagination_args():
    """Read page/limit query params, clamped to sane bounds"""
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 50, type=int)
    if page is None or page < 1:
        page = 1
    if limit is None or limit < 1:
        limit = 50
    if limit > 100:
        limit = 100
    return page, limit


def _parse_status(value):
    try:
        return ReportStatus.parse(value)
    except ValueError:
        valid = ', '.join(s.value for s in ReportStatus)
        return jsonify({
            'success': False,
            'error': f'Invalid status. Must be one of: {valid}'
        }), 400


@studies_bp.route('', methods=['GET'])
@jwt_required()
def list_studies():
    """
    List study records with pagination

    Query params:
        status: Filter by report status (e.g. Queued, ReportGenerated)
        page: Page number (default: 1)
        limit: Items per page (default: 50, max: 100)
    """
    try:
        page, limit = _pagination_args()

        status = None
        if request.args.get('status'):
            status = _parse_status(request.args['status'])
            if not isinstance(status, ReportStatus):
                return status

        result = study_status_service.list_studies(status=status, page=page, limit=limit)
        return jsonify({
            'success': True,
            'data': result
        })

    except Exception as e:
        logger.error(f"Error listing studies: {e}", exc_info=True)
        error_msg = 'Failed to list studies' if not current_app.debug else str(e)
        return jsonify({
            'success': False,
            'error': error_msg
        }), 500


@studies_bp.route('/by-status/<status>', methods=['GET'])
@jwt_required()
def list_studies_by_status(status):
    """List study records in one report status"""
    parsed = _parse_status(status)
    if not isinstance(parsed, ReportStatus):
        return parsed

    page, limit = _pagination_args()
    result = study_status_service.list_by_status(parsed, page=page, limit=limit)
    return jsonify({
        'success': True,
        'data': result
    })


@studies_bp.route('/<archive_study_id>/status', methods=['GET'])
@jwt_required()
def get_study_status(archive_study_id):
    """Get report status of a study by archive (Orthanc) id"""
    record = study_status_service.get_by_archive_id(archive_study_id)
    if not record:
        raise NotFound(f"Study with archive ID {archive_study_id} not found.")

    return jsonify({
        'success': True,
        'data': record.to_dict()
    })


@studies_bp.route('/<archive_study_id>/history', methods=['GET'])
@jwt_required()
def get_study_history(archive_study_id):
    """Status changes and uploads recorded for a study, oldest first"""
    if not study_status_service.get_by_archive_id(archive_study_id):
        raise NotFound(f"Study with archive ID {archive_study_id} not found.")

    events = study_status_service.list_events(archive_study_id)
    return jsonify({
        'success': True,
        'data': [event.to_dict() for event in events]
    })


@studies_bp.route('/<archive_study_id>/queue-report', methods=['POST'])
@jwt_required()
@require_role('admin', 'doctor')
def queue_study_report(archive_study_id):
    """
    Queue every instance of a study for AI report generation

    Returns 202 when the study moved to Queued, 200 when it was already queued
    and nothing changed.
    """
    user_id = get_current_user_id()
    try:
        record, enqueued, already_queued = get_enqueue_coordinator().queue_study(
            archive_study_id, requester_id=user_id)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error queueing study {archive_study_id}: {e}", exc_info=True)
        error_msg = 'Failed to queue study for report generation' if not current_app.debug else str(e)
        return jsonify({
            'success': False,
            'error': error_msg
        }), 500

    if already_queued:
        message = 'Study is already queued for report generation'
        status_code = 200
    else:
        message = f'Queued {enqueued} instance(s) for report generation'
        status_code = 202

    return jsonify({
        'success': True,
        'message': message,
        'data': {
            'study': record.to_dict(),
            'enqueued': enqueued
        }
    }), status_code


@studies_bp.route('/<archive_study_id>/assign-doctor/<doctor_id>', methods=['POST'])
@jwt_required()
@require_role('admin')
def assign_doctor(archive_study_id, doctor_id):
    """Assign a reviewing doctor to a study"""
    record = study_status_service.assign_doctor(archive_study_id, doctor_id, actor_id=get_current_user_id())

    return jsonify({
        'success': True,
        'message': 'Doctor assigned successfully',
        'data': record.to_dict()
    })
