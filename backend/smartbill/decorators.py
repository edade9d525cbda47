# Overview: Request decorators for API routes: caller identity and error envelopes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services.record_store import StoreError
from .validation import ConflictError, NotFoundError, ValidationError

USER_HEADER = "X-User-Id"


def require_user(f):
    """
    Establish the caller's shop user id.

    Authentication happens upstream; by the time a request reaches these
    routes the session layer has put the authenticated user id in the
    X-User-Id header. Sets g.user_id.

    Returns 401 if the header is missing or not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = (request.headers.get(USER_HEADER) or "").strip()
        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"success": False, "error": "Authentication required"}), 401
        g.user_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function


def service_errors(message: str):
    """
    Translate service exceptions into the JSON error envelope.

    ValidationError -> 400, NotFoundError -> 404, ConflictError -> 409.
    Anything else is logged with traceback and answered with a generic 500
    carrying `message`.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"success": False, "error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"success": False, "error": str(e)}), 404
            except ConflictError as e:
                return jsonify({"success": False, "error": str(e)}), 409
            except StoreError:
                current_app.logger.exception("%s %s failed", request.method, request.path)
                return jsonify({"success": False, "error": message}), 500

        return decorated_function

    return decorator
