"""
CloudWatch Metrics Helper

Provides utilities for emitting custom metrics to CloudWatch.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from shared.aws_clients import get_cloudwatch

logger = logging.getLogger(__name__)

NAMESPACE = os.environ.get("CLOUDWATCH_NAMESPACE", "EventPass")


def emit_metric(
    metric_name: str,
    value: float = 1.0,
    unit: str = "Count",
    dimensions: Optional[Dict[str, str]] = None,
) -> None:
    """
    Emit a custom metric to CloudWatch.

    Args:
        metric_name: Name of the metric
        value: Metric value (default: 1.0)
        unit: Unit of measurement (Count, Seconds, Bytes, etc.)
        dimensions: Optional dimensions for filtering metrics

    Example:
        emit_metric("WebhookEvents", dimensions={"Outcome": "processed"})
    """
    try:
        metric_data = {
            "MetricName": metric_name,
            "Value": value,
            "Unit": unit,
            "Timestamp": datetime.now(timezone.utc),
        }

        if dimensions:
            metric_data["Dimensions"] = [
                {"Name": k, "Value": v} for k, v in dimensions.items()
            ]

        get_cloudwatch().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[metric_data],
        )

        logger.debug(
            f"Emitted metric: {metric_name}={value} {unit}",
            extra={"dimensions": dimensions},
        )

    except Exception as e:
        # Don't fail the Lambda if metrics fail
        logger.warning(f"Failed to emit metric {metric_name}: {e}")


def emit_webhook_metric(outcome: str, event_type: Optional[str] = None) -> None:
    """
    Emit webhook processing metric.

    Args:
        outcome: 'processed', 'duplicate', 'in_progress', 'rejected', 'failed'
        event_type: Provider event type (optional)
    """
    dimensions = {"Outcome": outcome}
    if event_type:
        dimensions["EventType"] = event_type[:50]
    emit_metric("WebhookEvents", dimensions=dimensions)


def emit_entitlement_metric(outcome: str, channel: Optional[str] = None) -> None:
    """Emit archive entitlement check metric."""
    dimensions = {"Outcome": outcome}
    if channel:
        dimensions["Channel"] = channel
    emit_metric("EntitlementChecks", dimensions=dimensions)
