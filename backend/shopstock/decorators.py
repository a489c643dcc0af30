# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import AuthenticationRequired, PermissionDenied
from .extensions import db
from .models import User


def _resolve_actor() -> User | None:
    raw = request.headers.get("X-User-Id", "").strip()
    if not raw.isdigit():
        return None
    user = db.session.get(User, int(raw))
    if user is None or not user.is_active:
        return None
    return user


def require_actor(f):
    """
    Establish the acting user for the request.

    Identity is issued upstream; the gateway forwards the authenticated user id
    in the X-User-Id header. Sets g.current_user.

    Returns 401 when the header is missing or names an unknown/inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _resolve_actor()
        if user is None:
            err = AuthenticationRequired("Authentication required")
            return jsonify(err.to_dict()), err.status

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require the acting user to hold one of roles.

    Implies require_actor, so routes only stack this one decorator.
    """
    def decorator(f):
        @wraps(f)
        @require_actor
        def decorated_function(*args, **kwargs):
            if g.current_user.role not in roles:
                err = PermissionDenied(
                    f"Requires one of: {', '.join(roles)}",
                    details={"required_roles": list(roles)},
                )
                return jsonify(err.to_dict()), err.status
            return f(*args, **kwargs)

        return decorated_function
    return decorator
