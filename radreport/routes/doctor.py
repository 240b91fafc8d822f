"""
Doctor API Routes
Assigned studies and report review
"""
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from radreport.exceptions import BadRequest
from radreport.services import study_status_service, review_report, get_pacs_client
from radreport.utils.decorators import require_role, get_current_user_id
import logging

logger = logging.getLogger(__name__)

doctor_bp = Blueprint('doctor', __name__, url_prefix='/api/doctor')


@doctor_bp.route('/my-studies', methods=['GET'])
@jwt_required()
@require_role('doctor')
def my_studies():
    """Studies assigned to the current doctor, newest first"""
    records = study_status_service.list_assigned_to_doctor(get_current_user_id())
    return jsonify({
        'success': True,
        'data': [record.to_dict() for record in records],
        'count': len(records)
    })


@doctor_bp.route('/review-study/<archive_study_id>', methods=['POST'])
@jwt_required()
@require_role('doctor')
def review_study(archive_study_id):
    """
    Submit the reviewed report for an assigned study

    Body:
        findings: Findings text
        impression: Impression text ('impressions' is accepted too)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')

    impression = data.get('impression')
    if impression is None:
        impression = data.get('impressions')

    record = review_report(
        archive_study_id,
        get_current_user_id(),
        data.get('findings'),
        impression,
        get_pacs_client(),
    )

    return jsonify({
        'success': True,
        'message': 'Report reviewed successfully',
        'data': record.to_dict()
    })
