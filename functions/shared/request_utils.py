"""Shared request utilities for API handlers."""

import base64
import json
import re
from urllib.parse import parse_qs

# Email validation regex
EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def get_header(event: dict, name: str) -> str | None:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def get_raw_body(event: dict) -> str:
    """Request body exactly as received (decoded if API Gateway base64-encoded it)."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body).decode("utf-8")
    return body


def parse_body(event: dict) -> dict:
    """Parse a JSON or form-encoded body into a flat dict of strings.

    Raises:
        ValueError: body is not valid JSON / form data
    """
    raw = get_raw_body(event)
    if not raw:
        return {}

    content_type = (get_header(event, "content-type") or "").lower()
    if "application/json" in content_type or raw.lstrip().startswith("{"):
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return {k: v for k, v in data.items() if isinstance(v, str)}

    return {k: v[0] for k, v in parse_qs(raw, keep_blank_values=True).items()}


def is_valid_email(email: str) -> bool:
    return bool(email) and len(email) <= 254 and bool(EMAIL_REGEX.match(email))
