"""
Application error kinds
Raised by services, rendered as JSON by the handlers registered in create_app
"""


class ApiError(Exception):
    """Base class for errors that map to an HTTP response"""
    status_code = 500

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {
            'success': False,
            'error': self.message
        }


class NotFound(ApiError):
    """Archive object or study record absent"""
    status_code = 404


class Unauthorized(ApiError):
    """Caller is not allowed to act on the resource (e.g. doctor not assigned)"""
    status_code = 401


class BadRequest(ApiError):
    """Malformed or unsupported input"""
    status_code = 400


class UpstreamUnavailable(ApiError):
    """PACS or inference endpoint unreachable, timed out or failing"""
    status_code = 502


class UpstreamProtocolError(ApiError):
    """Unexpected response status or shape from an upstream service"""
    status_code = 502
