# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, current_app

from .validation import ValidationError, NotFoundError, ConflictError


def json_errors(action: str):
    """
    Translate service-layer errors into JSON responses.

    - ValidationError -> 400
    - NotFoundError -> 404
    - ConflictError (insufficient points, duplicate membership, bad state) -> 409
    - anything else is logged and returned as a generic 500
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e.args[0]) if e.args else "Not found"}), 404
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator


def require_json(*fields: str):
    """Reject requests whose JSON body is missing any of `fields`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({"error": "Invalid JSON payload"}), 400
            missing = [name for name in fields if data.get(name) is None]
            if missing:
                return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400
            return f(*args, **kwargs)

        return decorated_function

    return decorator
