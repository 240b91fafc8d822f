from flask import Flask, jsonify, request
from .extensions import db, migrate, jwt
from .exceptions import ApiError
import logging
import os

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_SECRET_KEY = 'dev-secret-key-change-in-production'


def _setup_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.getLogger().setLevel(level)

    if app.debug or app.testing:
        return

    from logging.handlers import RotatingFileHandler

    log_file = app.config.get('LOG_FILE', 'logs/app.log')
    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10240000,
        backupCount=10
    )
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s [in %(pathname)s:%(lineno)d]'
    ))
    file_handler.setLevel(level)
    # Root handler so service and worker loggers land in the file too
    logging.getLogger().addHandler(file_handler)
    app.logger.info('Application startup')


def _register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.__class__.__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Endpoint not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed'
        }), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({
            'success': False,
            'error': 'Uploaded file is too large'
        }), 413

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal Server Error: {error}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'Internal server error. Check server logs for details.'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        from werkzeug.exceptions import HTTPException
        if isinstance(e, HTTPException):
            return jsonify({
                'success': False,
                'error': e.description
            }), e.code
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        error_msg = 'Internal server error. Check server logs for details.' if not app.debug else str(e)
        return jsonify({
            'success': False,
            'error': error_msg
        }), 500


def _init_report_pipeline(app):
    """Build the queue, the PACS/inference clients and the worker for this app"""
    from radreport.services import WorkQueue, PacsClient, InferenceClient, ReportWorker

    queue = WorkQueue()
    pacs = PacsClient.from_config(app.config)
    inference = InferenceClient.from_config(app.config)
    worker = ReportWorker(
        app, queue, pacs, inference,
        poll_interval=app.config.get('REPORT_WORKER_POLL_INTERVAL', 1.0),
    )

    app.extensions['report_queue'] = queue
    app.extensions['pacs_client'] = pacs
    app.extensions['inference_client'] = inference
    app.extensions['report_worker'] = worker
    return worker


def create_app(config_name=None):
    """Create Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    if config_name:
        from radreport.config import config
        app.config.from_object(config.get(config_name, config['default']))
    else:
        from radreport.config import get_config
        app.config.from_object(get_config())

    # Ensure production mode if FLASK_ENV is production
    if (config_name or os.getenv('FLASK_ENV')) == 'production' and not app.testing:
        app.config['DEBUG'] = False
        if app.config.get('SECRET_KEY') == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be set in production environment")

    _setup_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # Initialize CORS
    from radreport.utils.cors import init_cors
    init_cors(app)

    _register_error_handlers(app)

    # Security headers middleware
    @app.after_request
    def set_security_headers(response):
        """Add security headers to all responses"""
        if not app.debug:
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'DENY'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            if request.is_secure:
                response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({
            'success': False,
            'error': 'Authentication required'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({
            'success': False,
            'error': f'Invalid token: {reason}'
        }), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({
            'success': False,
            'error': 'Token has expired'
        }), 401

    worker = _init_report_pipeline(app)

    with app.app_context():
        from .models import StudyRecord, StudyEvent  # noqa: F401 (registers tables)

        # Register blueprints
        from .routes import health_bp, studies_bp, instances_bp, doctor_bp
        app.register_blueprint(health_bp)  # Register health check first
        app.register_blueprint(studies_bp)
        app.register_blueprint(instances_bp)
        app.register_blueprint(doctor_bp)

        if app.config.get('AUTO_CREATE_TABLES'):
            db.create_all()

    # Auto-start the report worker unless disabled. Skip in CI and tests.
    in_ci = os.getenv('CI', '').lower() == 'true' or os.getenv('GITHUB_ACTIONS', '').lower() == 'true'
    if app.testing or in_ci or not app.config.get('AUTO_START_REPORT_WORKER', True):
        logger.info("Report worker auto-start disabled")
    else:
        try:
            worker.start()
        except Exception as e:
            logger.error(f"Failed to auto-start report worker: {e}", exc_info=True)
            logger.warning("Queued reports will not be processed until the worker is started")

    return app
