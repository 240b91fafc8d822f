import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or SECRET_KEY

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///radreport.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }
    AUTO_CREATE_TABLES = os.getenv('AUTO_CREATE_TABLES', 'true').lower() == 'true'

    # Orthanc (PACS archive)
    ORTHANC_BASE_URL = os.getenv('ORTHANC_BASE_URL', 'http://orthanc:8042')
    ORTHANC_USERNAME = os.getenv('ORTHANC_USERNAME')
    ORTHANC_PASSWORD = os.getenv('ORTHANC_PASSWORD')
    ORTHANC_TIMEOUT = float(os.getenv('ORTHANC_TIMEOUT', '30'))  # seconds

    # AI inference endpoint
    INFERENCE_ENDPOINT_URL = os.getenv('INFERENCE_ENDPOINT_URL', 'http://localhost:8000/generate_report_dicom')
    INFERENCE_TIMEOUT = float(os.getenv('INFERENCE_TIMEOUT', '120'))  # seconds
    INFERENCE_REPORT_KEY = os.getenv('INFERENCE_REPORT_KEY', 'generated_report')

    # Report worker
    REPORT_WORKER_POLL_INTERVAL = float(os.getenv('REPORT_WORKER_POLL_INTERVAL', '1.0'))  # seconds
    AUTO_START_REPORT_WORKER = os.getenv('AUTO_START_REPORT_WORKER', 'true').lower() == 'true'

    # Uploads
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', '104857600'))  # 100MB

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False
    AUTO_CREATE_TABLES = os.getenv('AUTO_CREATE_TABLES', 'false').lower() == 'true'

    # Database connection pool for production
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': 20,
        'max_overflow': 40,
    }

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True
    SECRET_KEY = 'testing-secret-key-with-enough-length-for-hs256'
    JWT_SECRET_KEY = SECRET_KEY
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    AUTO_CREATE_TABLES = True
    AUTO_START_REPORT_WORKER = False
    REPORT_WORKER_POLL_INTERVAL = 0.01
    ORTHANC_BASE_URL = 'http://orthanc.test:8042'
    INFERENCE_ENDPOINT_URL = 'http://inference.test/generate_report_dicom'


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on FLASK_ENV"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
