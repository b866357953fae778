"""
Archive Verify Endpoint - POST /archive/verify

Request body (form-encoded or JSON):
    idToken: Firebase ID token from email-link sign-in
    email:   plain address, accepted only when Firebase is not configured

Returns an HTML page: the archived sessions the address is entitled to,
or an error page. Each check counts against a per-address sliding
window; denied checks do not consume a slot.
"""

import logging
import time
from typing import Optional

from shared.catalog import get_catalog
from shared.entitlements import get_entitlement_resolver
from shared.errors import (
    APIError,
    IdentityTokenError,
    InternalError,
    ProviderUnavailableError,
    RateLimitedError,
    ValidationError,
)
from shared.identity import resolve_identity
from shared.logging_utils import configure_structured_logging, log_api_request, mask_email, set_request_id
from shared.metrics import emit_entitlement_metric
from shared.pages import render_archive_page, render_error_page
from shared.request_utils import is_valid_email, parse_body
from shared.response_utils import html_response
from shared.state import get_archive_rate_limiter

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

NOT_FOUND_MESSAGE = (
    "No purchase was found for this email address. "
    "Please sign in with the address you used at checkout."
)


def _error_page(error: APIError) -> dict:
    headers = {}
    if isinstance(error, RateLimitedError):
        headers["Retry-After"] = str(error.retry_after_seconds)
    return html_response(render_error_page(error.message), error.status_code, headers)


def handler(event, context):
    """Lambda handler for POST /archive/verify."""
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    email: Optional[str] = None
    try:
        response, email = _verify(event)
    except APIError as e:
        response = _error_page(e)
    except Exception as e:
        logger.error(f"Unexpected error verifying archive access: {e}", exc_info=True)
        response = _error_page(InternalError())

    log_api_request(
        logger,
        "POST",
        event.get("path") or "/archive/verify",
        response["statusCode"],
        (time.time() - start_time) * 1000,
        identity=email,
    )
    return response


def _verify(event: dict) -> tuple[dict, Optional[str]]:
    try:
        body = parse_body(event)
    except ValueError as e:
        logger.warning(f"Unparseable archive request body: {e}")
        raise ValidationError("Invalid request") from e

    try:
        email = resolve_identity(body.get("idToken"), body.get("email"))
    except IdentityTokenError as e:
        return _error_page(e), None

    if not is_valid_email(email):
        return _error_page(ValidationError()), None

    limiter = get_archive_rate_limiter()
    if not limiter.allow(email):
        logger.warning(f"Archive check rate limited for {mask_email(email)}")
        emit_entitlement_metric("rate_limited")
        error = RateLimitedError(limiter.limit, int(limiter.window_seconds))
        return _error_page(error), email

    try:
        result = get_entitlement_resolver().resolve_detailed(email)
    except ProviderUnavailableError as e:
        emit_entitlement_metric("provider_unavailable")
        return _error_page(e), email

    if not result.granted:
        emit_entitlement_metric("not_found")
        return html_response(render_error_page(NOT_FOUND_MESSAGE)), email

    emit_entitlement_metric("granted", result.channel)
    return html_response(render_archive_page(result.session_keys, get_catalog())), email
