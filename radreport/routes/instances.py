"""
Instance API Routes
Single-instance report queueing and DICOM upload
"""
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from radreport.exceptions import BadRequest
from radreport.services import (
    get_enqueue_coordinator,
    get_pacs_client,
    upload_instance,
    bulk_upload,
)
from radreport.utils.decorators import require_role, get_current_user_id
import logging

logger = logging.getLogger(__name__)

instances_bp = Blueprint('instances', __name__, url_prefix='/api/instances')


def _flag(name):
    value = request.form.get(name) or request.args.get(name) or ''
    return value.lower() in ('1', 'true', 'yes', 'on')


@instances_bp.route('/<instance_id>/queue-report', methods=['POST'])
@jwt_required()
@require_role('admin', 'doctor')
def queue_instance_report(instance_id):
    """Queue one instance for AI report generation"""
    get_enqueue_coordinator().queue_instance(instance_id)
    return jsonify({
        'success': True,
        'message': f'Instance {instance_id} queued for report generation'
    }), 202


@instances_bp.route('/upload', methods=['POST'])
@jwt_required()
@require_role('admin', 'doctor', 'technician')
def upload_dicom():
    """
    Upload one DICOM file to the PACS

    Form data:
        file: DICOM file (required)
        generate_report: queue the instance for report generation (default: false)
    """
    file = request.files.get('file')
    if file is None or not file.filename:
        raise BadRequest('DICOM file is required')

    result = upload_instance(
        file.read(),
        get_pacs_client(),
        requester_id=get_current_user_id(),
        generate_report=_flag('generate_report'),
        coordinator=get_enqueue_coordinator(),
        filename=file.filename,
    )

    return jsonify({
        'success': True,
        'message': 'DICOM file uploaded successfully',
        'data': result
    }), 201


@instances_bp.route('/bulk-upload', methods=['POST'])
@jwt_required()
@require_role('admin', 'doctor', 'technician')
def bulk_upload_dicom():
    """
    Upload several DICOM files to the PACS

    Form data:
        files: DICOM files (at least one)
        generate_report: queue each uploaded instance for report generation (default: false)
    """
    uploads = [f for f in request.files.getlist('files') if f and f.filename]
    if not uploads:
        raise BadRequest('At least one DICOM file is required')

    result = bulk_upload(
        [(f.filename, f.read()) for f in uploads],
        get_pacs_client(),
        requester_id=get_current_user_id(),
        generate_report=_flag('generate_report'),
        coordinator=get_enqueue_coordinator(),
    )

    return jsonify({
        'success': True,
        'message': result['message'],
        'data': result
    })
