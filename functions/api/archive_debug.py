"""
Archive Debug Endpoint - GET /archive/debug?email=

Operator-only JSON dump of every lookup the entitlement resolver made for
an address. Disabled (404) unless ARCHIVE_DEBUG_ENABLED=true.
"""

import logging
import os
import time

from shared.entitlements import get_entitlement_resolver
from shared.errors import APIError
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import is_valid_email
from shared.response_utils import error_response, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def debug_enabled() -> bool:
    return (os.environ.get("ARCHIVE_DEBUG_ENABLED") or "").lower() == "true"


def handler(event, context):
    """Lambda handler for GET /archive/debug."""
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    response = _debug(event)

    log_api_request(
        logger,
        "GET",
        "/archive/debug",
        response["statusCode"],
        (time.time() - start_time) * 1000,
    )
    return response


def _debug(event: dict) -> dict:
    if not debug_enabled():
        return error_response(404, "not_found", "Not found")

    params = event.get("queryStringParameters") or {}
    email = (params.get("email") or "").strip().lower()
    if not is_valid_email(email):
        return error_response(400, "invalid_email", "Query parameter 'email' must be a valid address")

    try:
        result = get_entitlement_resolver().resolve_detailed(email)
    except APIError as e:
        return e.to_response()
    except Exception as e:
        logger.error(f"Archive debug lookup failed: {e}", exc_info=True)
        return error_response(500, "internal_error", "An internal error occurred")

    return success_response(
        {
            "email": email,
            "session_keys": result.session_keys,
            "channel": result.channel,
            "trace": result.trace,
        }
    )
