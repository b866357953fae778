"""Secrets Manager access with a per-ARN TTL cache."""

import json
import logging
import time
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager

logger = logging.getLogger(__name__)

SECRET_CACHE_TTL = 300  # 5 minutes

_cache: dict[tuple[str, str], tuple[str, float]] = {}


def read_secret(arn: Optional[str], json_field: str) -> Optional[str]:
    """Read a secret stored either as a plain string or as JSON {json_field: value}.

    Returns None when the ARN is unset or the secret cannot be read.
    """
    if not arn:
        return None

    cache_key = (arn, json_field)
    cached = _cache.get(cache_key)
    if cached and (time.time() - cached[1]) < SECRET_CACHE_TTL:
        return cached[0]

    try:
        response = get_secretsmanager().get_secret_value(SecretId=arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {json_field}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
        value = secret_json.get(json_field) if isinstance(secret_json, dict) else None
        value = value or secret_value
    except json.JSONDecodeError:
        value = secret_value

    if value:
        _cache[cache_key] = (value, time.time())
    return value or None


def clear_secret_cache() -> None:
    """Used in tests for clean state."""
    _cache.clear()
