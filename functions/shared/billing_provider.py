"""Read-only access to Stripe, the billing provider and source of truth.

Every list call fetches a single page bounded by an application limit.
Calls are logged with log_external_call and carry the client timeout
configured by configure_stripe().
"""

import logging
import os
import time
from typing import Any, Callable, Optional

import stripe

from shared.constants import (
    CUSTOMER_PAGE_LIMIT,
    DEFAULT_STRIPE_TIMEOUT,
    LINE_ITEM_PAGE_LIMIT,
    SESSION_PAGE_LIMIT,
    SUBSCRIPTION_PAGE_LIMIT,
)
from shared.logging_utils import log_external_call
from shared.secret_utils import read_secret

logger = logging.getLogger(__name__)

_configured_key: Optional[str] = None


def get_stripe_secrets() -> tuple[str | None, str | None]:
    """Retrieve Stripe API key and webhook secret from Secrets Manager (cached with TTL)."""
    api_key = read_secret(os.environ.get("STRIPE_SECRET_ARN"), "key")
    webhook_secret = read_secret(os.environ.get("STRIPE_WEBHOOK_SECRET_ARN"), "secret")
    return api_key, webhook_secret


def configure_stripe(api_key: str) -> None:
    """Set the module-level Stripe key and a bounded HTTP timeout."""
    global _configured_key
    stripe.api_key = api_key
    if _configured_key is None:
        timeout = float(os.environ.get("STRIPE_TIMEOUT_SECONDS") or DEFAULT_STRIPE_TIMEOUT)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = 1
    _configured_key = api_key


def field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or plain dict."""
    if obj is None:
        return default
    value = obj.get(name) if hasattr(obj, "get") else getattr(obj, name, None)
    return default if value is None else value


def buyer_email(session: Any) -> Optional[str]:
    """Buyer address of a checkout session (customer_details first)."""
    details = field(session, "customer_details")
    return field(details, "email") or field(session, "customer_email")


def price_id_of(line_item: Any) -> Optional[str]:
    return field(field(line_item, "price"), "id")


def product_id_of(item: Any) -> Optional[str]:
    product = field(field(item, "price"), "product")
    # Expanded products are objects; unexpanded ones are ids
    if product is not None and not isinstance(product, str):
        return field(product, "id")
    return product


class StripeBillingProvider:
    """Thin wrapper over the stripe module used by the webhook and resolver."""

    service = "stripe"

    def _call(self, operation: str, fn: Callable[..., Any], *args, **kwargs) -> list:
        start = time.time()
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            log_external_call(logger, self.service, operation, False, (time.time() - start) * 1000, str(e))
            raise
        log_external_call(logger, self.service, operation, True, (time.time() - start) * 1000)
        return list(field(result, "data", []))

    def construct_event(self, payload: str | bytes, sig_header: str, webhook_secret: str) -> Any:
        """Verify the signature and parse the event.

        Raises stripe.SignatureVerificationError or ValueError.
        """
        return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)

    def list_customers_by_email(self, email: str) -> list:
        return self._call("customers.list", stripe.Customer.list, email=email, limit=CUSTOMER_PAGE_LIMIT)

    def list_active_subscriptions(self, customer_id: str) -> list:
        return self._call(
            "subscriptions.list",
            stripe.Subscription.list,
            customer=customer_id,
            status="active",
            limit=SUBSCRIPTION_PAGE_LIMIT,
        )

    def list_completed_sessions(self, customer_id: Optional[str] = None) -> list:
        """Completed checkout sessions, most recent first."""
        params = {"status": "complete", "limit": SESSION_PAGE_LIMIT}
        if customer_id:
            params["customer"] = customer_id
        return self._call("checkout.sessions.list", stripe.checkout.Session.list, **params)

    def list_line_items(self, session_id: str) -> list:
        return self._call(
            "checkout.sessions.list_line_items",
            stripe.checkout.Session.list_line_items,
            session_id,
            limit=LINE_ITEM_PAGE_LIMIT,
        )
