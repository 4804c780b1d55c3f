# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .validation import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def require_user(f):
    """
    Require the acting user id header (X-User-ID by default).

    Authentication happens upstream; this only attributes the request.
    Sets g.current_user_id. Returns 401 when the header is missing or blank
    and 400 when it is not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config["USER_HEADER"]
        raw = (request.headers.get(header) or "").strip()
        if not raw:
            return jsonify({"error": f"{header} header required"}), 401
        if not (raw.isascii() and raw.isdigit()):
            return jsonify({"error": f"{header} must be an integer"}), 400
        g.current_user_id = int(raw)
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: Exception, status: int):
    body = {"error": str(exc)}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    category = getattr(exc, "category", None)
    if category:
        body["category"] = category
    return jsonify(body), status


def handle_service_errors(action: str):
    """
    Map the service error taxonomy onto HTTP statuses.

    ValidationError / InvalidStateError -> 400, NotFoundError -> 404,
    ConflictError (incl. InsufficientStockError) -> 409, anything else -> 500
    after logging with the action name.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except (ValidationError, InvalidStateError) as e:
                return error_response(e, 400)
            except NotFoundError as e:
                return error_response(e, 404)
            except ConflictError as e:
                return error_response(e, 409)
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
