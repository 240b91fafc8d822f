"""
Health check endpoints for monitoring and load balancers
"""
from flask import Blueprint, jsonify
from radreport.extensions import db
from datetime import datetime

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
@health_bp.route('/ping', methods=['GET'])
def health_check():
    """Basic health check - no external connections"""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat(),
        'service': 'radreport'
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness check - database and PACS"""
    from radreport.services import get_pacs_client

    try:
        db.session.execute(db.text('SELECT 1'))
        db_status = 'connected'
    except Exception as e:
        db_status = f'error: {str(e)}'

    orthanc_status = 'connected' if get_pacs_client().is_available() else 'unreachable'
    ready = db_status == 'connected' and orthanc_status == 'connected'

    return jsonify({
        'status': 'ready' if ready else 'not_ready',
        'database': db_status,
        'orthanc': orthanc_status,
        'timestamp': datetime.utcnow().isoformat()
    }), 200 if ready else 503


@health_bp.route('/worker', methods=['GET'])
def worker_health_check():
    """Report worker health check"""
    from radreport.services import get_report_worker

    status = get_report_worker().status()
    return jsonify({
        'status': 'healthy' if status.get('running') else 'degraded',
        'worker': status,
        'timestamp': datetime.utcnow().isoformat()
    }), 200 if status.get('running') else 503
