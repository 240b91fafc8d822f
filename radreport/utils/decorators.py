from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity, get_jwt


def get_current_user_id():
    """Identity (user id) carried by the access token, as a string."""
    identity = get_jwt_identity()
    return str(identity) if identity is not None else None


def get_current_role():
    """Role claim carried by the access token."""
    return get_jwt().get("role")


def require_role(*roles):
    """
    Decorator to require specific roles
    Usage: @require_role('doctor', 'admin')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            """
            Require that the current JWT-authenticated user has one of the given roles.
            Must be used together with @jwt_required() on the route.
            Users are managed by the identity service; the role travels in the token.
            """
            if not get_current_user_id():
                return jsonify({
                    'success': False,
                    'error': 'Authentication required'
                }), 401

            role = get_current_role()
            if role not in roles:
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(roles)}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
