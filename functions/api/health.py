"""
Health Check Endpoint - GET /health

Liveness probe for the webhook and archive functions.
No authentication required.
"""

import logging
import time
from datetime import datetime, timezone

from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.response_utils import success_response
from shared.state import state_backend

logger = logging.getLogger(__name__)

SERVICE_NAME = "eventpass"
VERSION = "1.0.0"


def handler(event, context):
    """
    Lambda handler for health check.

    Returns:
        200 with status information, 503 if the state backend is misconfigured
    """
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    body = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    status_code = 200
    try:
        body["state_backend"] = state_backend()
    except ValueError as e:
        logger.error(str(e))
        body["status"] = "unhealthy"
        status_code = 503

    response = success_response(body, status_code=status_code, headers={"Cache-Control": "no-cache"})

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", "/health", status_code, latency_ms)

    return response
