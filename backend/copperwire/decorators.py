# Overview: Request-context and error-mapping decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import LedgerError


DEFAULT_ACTOR = "system"


def with_request_context(f):
    """
    Establish request-scoped context.

    Sets the following Flask g attributes:
    - g.actor: who is performing the action, from the X-Actor header
      (recorded as performed_by on ledger rows)

    Nothing about the caller is kept outside the request.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get("X-Actor") or "").strip()
        g.actor = actor[:120] or DEFAULT_ACTOR
        return f(*args, **kwargs)

    return decorated_function


def ledger_errors(action: str):
    """
    Map ledger errors to JSON responses.

    - LedgerError subclasses -> their http_status with kind + details
    - anything else -> logged with traceback, generic 500
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except LedgerError as e:
                return jsonify(e.to_dict()), e.http_status
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function
    return decorator
