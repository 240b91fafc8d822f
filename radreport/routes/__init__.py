from .health import health_bp
from .studies import studies_bp
from .instances import instances_bp
from .doctor import doctor_bp

__all__ = ['health_bp', 'studies_bp', 'instances_bp', 'doctor_bp']
