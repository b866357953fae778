"""
Stripe Webhook Endpoint - POST /webhook

Verifies the Stripe signature, deduplicates deliveries by event id and,
for checkout.session.completed, emails the buyer the Zoom registration
links for what they bought. Other event types are acknowledged without
action.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import stripe

from shared.billing_provider import (
    StripeBillingProvider,
    buyer_email,
    configure_stripe,
    field as stripe_field,
    get_stripe_secrets,
    price_id_of,
)
from shared.catalog import Catalog, canonical_order, get_catalog
from shared.constants import CHECKOUT_COMPLETED, REGISTRATION_KEY_ORDER, SHARED_REGISTRATION_KEY
from shared.email_content import REGISTRATION_SUBJECT, build_registration_email
from shared.entitlements import BillingProvider
from shared.errors import DeliveryError, MissingBuyerEmailError, SignatureInvalidError
from shared.failure_log import FailureLog
from shared.idempotency import IdempotencyStore
from shared.logging_utils import (
    configure_structured_logging,
    log_api_request,
    mask_email,
    set_request_id,
)
from shared.metrics import emit_metric, emit_webhook_metric
from shared.notifications import NotificationDispatcher, build_transport
from shared.request_utils import get_header, get_raw_body
from shared.response_utils import error_response
from shared.state import get_failure_log, get_idempotency_store

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

SUPPORT_FORM_URL = os.environ.get("SUPPORT_FORM_URL", "")

STATUS_NOTIFIED = "notified"
STATUS_DELIVERY_FAILED = "delivery_failed"
STATUS_MISSING_EMAIL = "missing_email"
STATUS_NO_CATALOG_ITEMS = "no_catalog_items"


@dataclass
class CheckoutOutcome:
    """What the checkout action did for one completed session."""

    status: str
    recipient: Optional[str] = None
    display_name: Optional[str] = None
    registration_keys: list[str] = field(default_factory=list)


def _received(**extra) -> dict:
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"received": True, **extra}),
    }


class WebhookProcessor:
    """Signature check, idempotency gate and event dispatch."""

    def __init__(
        self,
        provider: BillingProvider,
        store: IdempotencyStore,
        catalog: Catalog,
        dispatcher: NotificationDispatcher,
        failure_log: FailureLog,
        support_url: str = SUPPORT_FORM_URL,
    ):
        self.provider = provider
        self.store = store
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.failure_log = failure_log
        self.support_url = support_url

    def process(self, payload: str, sig_header: Optional[str], webhook_secret: str) -> dict:
        """Handle one delivery and return the API Gateway response."""
        if not sig_header:
            logger.warning("Missing Stripe signature")
            emit_webhook_metric("rejected")
            return SignatureInvalidError("Missing Stripe signature", code="missing_signature").to_response()

        try:
            stripe_event = self.provider.construct_event(payload, sig_header, webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe signature: {e}")
            emit_webhook_metric("rejected")
            return SignatureInvalidError().to_response()
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {e}")
            emit_webhook_metric("rejected")
            return SignatureInvalidError("Invalid webhook payload", code="invalid_webhook_payload").to_response()

        event_id = stripe_field(stripe_event, "id")
        event_type = stripe_field(stripe_event, "type", "")
        livemode = bool(stripe_field(stripe_event, "livemode", False))
        data_object = stripe_field(stripe_field(stripe_event, "data"), "object")

        logger.info(f"Processing Stripe event: {event_type} (id={event_id})")

        if self.store.has_processed(event_id):
            logger.info(f"Skipping duplicate event {event_id}")
            emit_webhook_metric("duplicate", event_type)
            return _received(duplicate=True)

        if not self.store.claim(event_id, event_type):
            logger.info(f"Event {event_id} is being processed by another invocation")
            emit_webhook_metric("in_progress", event_type)
            return error_response(409, "event_in_progress", "Event is being processed, please retry")

        try:
            self.dispatch(event_type, data_object)
        except (stripe.InvalidRequestError, stripe.AuthenticationError) as e:
            # Permanent Stripe errors - retrying the delivery cannot succeed
            logger.error(f"Permanent Stripe error handling {event_type}: {e}")
            self.store.mark_processed(event_id, event_type, livemode)
            emit_webhook_metric("failed", event_type)
            return _received(processed=False)
        except Exception as e:
            # Transient or unknown - release claim so Stripe retry can re-process
            self.store.release(event_id)
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            emit_webhook_metric("failed", event_type)
            return error_response(500, "processing_failed", "Processing failed, please retry")

        try:
            self.store.mark_processed(event_id, event_type, livemode)
        except Exception as e:
            # Side effects are done; the lease expires if redelivered
            logger.error(f"Failed to mark event {event_id} processed: {e}", exc_info=True)
            emit_webhook_metric("failed", event_type)
            return error_response(500, "commit_failed", "Processing failed, please retry")

        emit_webhook_metric("processed", event_type)
        return _received()

    def dispatch(self, event_type: str, data_object: Any) -> Optional[CheckoutOutcome]:
        if event_type == CHECKOUT_COMPLETED:
            return self.handle_checkout_completed(data_object)
        logger.info(f"Unhandled event type: {event_type}")
        return None

    def handle_checkout_completed(self, session: Any) -> CheckoutOutcome:
        """Email registration links for a completed purchase.

        Line-item lookup errors propagate so the delivery is retried.
        A missing buyer address, a purchase with no catalog items and a
        notification that exhausts its retries are all final: they are
        logged (the last one also recorded) and the event is committed.
        """
        session_id = stripe_field(session, "id")

        try:
            recipient = self._recipient(session, session_id)
        except MissingBuyerEmailError as e:
            logger.error(f"{e}; no notification sent", extra={"session_id": session_id})
            return CheckoutOutcome(STATUS_MISSING_EMAIL)

        line_items = self.provider.list_line_items(session_id)

        display_name = None
        keys: set[str] = set()
        for item in line_items:
            price_id = price_id_of(item)
            entry = self.catalog.lookup(price_id)
            if entry is None:
                logger.warning(f"Price {price_id} is not in the catalog", extra={"session_id": session_id})
                continue
            display_name = entry.display_name
            keys.update(entry.registration_keys)

        if display_name is None:
            logger.warning(
                f"No catalog items in session {session_id}; no notification sent",
                extra={"session_id": session_id},
            )
            return CheckoutOutcome(STATUS_NO_CATALOG_ITEMS, recipient=recipient)

        keys.add(SHARED_REGISTRATION_KEY)
        registration_keys = canonical_order(keys, REGISTRATION_KEY_ORDER)
        content = build_registration_email(display_name, registration_keys, self.catalog, self.support_url)

        try:
            self.dispatcher.send(recipient, REGISTRATION_SUBJECT, content)
        except DeliveryError as e:
            logger.error(
                f"Registration email to {mask_email(recipient)} failed: {e}",
                extra={"session_id": session_id, "display_name": display_name},
            )
            self.failure_log.record(recipient, REGISTRATION_SUBJECT, str(e.last_error), context=display_name)
            emit_metric("NotificationFailures")
            return CheckoutOutcome(STATUS_DELIVERY_FAILED, recipient, display_name, registration_keys)

        logger.info(
            f"Registration links sent for {display_name}: {', '.join(registration_keys)}",
            extra={"session_id": session_id},
        )
        return CheckoutOutcome(STATUS_NOTIFIED, recipient, display_name, registration_keys)

    @staticmethod
    def _recipient(session: Any, session_id: str) -> str:
        email = (buyer_email(session) or "").strip()
        if not email:
            raise MissingBuyerEmailError(session_id)
        return email


_processor: Optional[WebhookProcessor] = None


def get_webhook_processor() -> WebhookProcessor:
    """Build the processor on first use; reused across warm invocations."""
    global _processor
    if _processor is None:
        _processor = WebhookProcessor(
            provider=StripeBillingProvider(),
            store=get_idempotency_store(),
            catalog=get_catalog(),
            dispatcher=NotificationDispatcher(build_transport()),
            failure_log=get_failure_log(),
        )
    return _processor


def reset_webhook_processor() -> None:
    """Used in tests for clean state."""
    global _processor
    _processor = None


def handler(event, context):
    """Lambda handler for Stripe webhooks."""
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    stripe_api_key, webhook_secret = get_stripe_secrets()
    if not stripe_api_key or not webhook_secret:
        logger.error("Stripe secrets not configured")
        return error_response(500, "stripe_not_configured", "Stripe not configured")

    configure_stripe(stripe_api_key)

    payload = get_raw_body(event)
    sig_header = get_header(event, "stripe-signature")

    response = get_webhook_processor().process(payload, sig_header, webhook_secret)

    log_api_request(
        logger,
        event.get("httpMethod") or "POST",
        event.get("path") or "/webhook",
        response["statusCode"],
        (time.time() - start_time) * 1000,
    )
    return response
