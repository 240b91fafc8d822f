"""
Development server entry point
Run the Flask application with: python run.py
"""
from radreport import create_app
import os

# Create Flask app instance
app = create_app()

if __name__ == '__main__':
    # Get host and port from environment or use defaults
    host = os.getenv('FLASK_HOST', '0.0.0.0')
    port = int(os.getenv('FLASK_PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    print(f"""
    ========================================
    Starting Report Generation Server
    ========================================
    Host: {host}
    Port: {port}
    Debug: {debug}
    Environment: {os.getenv('FLASK_ENV', 'development')}
    ========================================

    Orthanc: {app.config['ORTHANC_BASE_URL']}
    Inference: {app.config['INFERENCE_ENDPOINT_URL']}
    Report worker auto-start: {app.config['AUTO_START_REPORT_WORKER']}
    ========================================
    """)

    # Run the Flask app
    app.run(
        host=host,
        port=port,
        debug=debug,
        use_reloader=False,  # the reloader would start a second report worker
        threaded=True  # Allow multiple requests
    )
