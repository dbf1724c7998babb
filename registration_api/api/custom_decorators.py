from functools import wraps
import hmac
import time
from typing import Optional

from flask import current_app, jsonify, make_response, request

from registration_api.utils.logger import logger


ADMIN_KEY_HEADER = "X-Admin-Key"
ADMIN_KEY_PARAM = "key"


def log_request(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.monotonic()
        response = make_response(func(*args, **kwargs))
        elapsed_time = time.monotonic() - start_time

        logger.info(
            f"{request.method} {request.path} -> {response.status_code} "
            f"({elapsed_time * 1000:.1f} ms)"
        )
        return response
    return wrapper


def keys_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of the provided admin key against the configured one."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def admin_required(func):
    @wraps(func)
    def decorator(*args, **kwargs):
        provided = request.headers.get(ADMIN_KEY_HEADER) or request.args.get(ADMIN_KEY_PARAM)
        expected = current_app.config["SETTINGS"].admin_key

        if not provided:
            logger.info(f"Admin key missing for {request.path}")
            return jsonify({"error": "Forbidden: Admin key required"}), 403

        if not keys_match(provided, expected):
            logger.info(f"Invalid admin key provided for {request.path}")
            return jsonify({"error": "Forbidden: Invalid admin key"}), 403

        return func(*args, **kwargs)
    return decorator
