"""
Entitlement Resolver.

Given an email, decides which archived sessions the address may watch by
querying the billing provider through three channels, in order:

1. subscription: an active circle-membership subscription on any customer
   record grants every session.
2. registered purchase: completed, paid checkout sessions of every customer
   record, mapped through the catalog.
3. guest purchase: only when no customer record exists; the most recent
   completed sessions are filtered by buyer email.

Resolution stops at the first channel that grants anything. Each lookup is
isolated: a failing call is logged and skipped. If nothing is granted and
at least one channel failed, ProviderUnavailableError is raised instead of
reporting "no entitlement".

Nothing is cached; every call reflects the provider's current state.
"""

import logging
from dataclasses import dataclass, field as dc_field
from typing import Any, Optional, Protocol

from shared.billing_provider import (
    StripeBillingProvider,
    buyer_email,
    configure_stripe,
    field,
    get_stripe_secrets,
    price_id_of,
    product_id_of,
)
from shared.catalog import Catalog, canonical_order, get_catalog
from shared.constants import QUALIFYING_PAYMENT_STATUSES, SESSION_KEY_ORDER
from shared.errors import InternalError, ProviderUnavailableError
from shared.logging_utils import mask_email

logger = logging.getLogger(__name__)

CHANNEL_SUBSCRIPTION = "subscription"
CHANNEL_REGISTERED = "registered_purchase"
CHANNEL_GUEST = "guest_purchase"


class BillingProvider(Protocol):
    def construct_event(self, payload: str | bytes, sig_header: str, webhook_secret: str) -> Any: ...

    def list_customers_by_email(self, email: str) -> list: ...

    def list_active_subscriptions(self, customer_id: str) -> list: ...

    def list_completed_sessions(self, customer_id: Optional[str] = None) -> list: ...

    def list_line_items(self, session_id: str) -> list: ...


@dataclass
class ChannelOutcome:
    """Keys found by one channel and whether any of its lookups failed."""

    name: str
    keys: set[str] = dc_field(default_factory=set)
    errors: list[str] = dc_field(default_factory=list)
    attempted: bool = True

    @property
    def failed(self) -> bool:
        return bool(self.errors) and not self.keys


@dataclass
class EntitlementResult:
    session_keys: list[str]
    channel: Optional[str]
    trace: dict[str, Any]

    @property
    def granted(self) -> bool:
        return bool(self.session_keys)


def qualifies(session: Any) -> bool:
    return field(session, "payment_status") in QUALIFYING_PAYMENT_STATUSES


class EntitlementResolver:
    """resolve(email) -> ordered archive session keys."""

    def __init__(self, provider: BillingProvider, catalog: Catalog):
        self.provider = provider
        self.catalog = catalog

    def resolve(self, email: str) -> list[str]:
        return self.resolve_detailed(email).session_keys

    def resolve_detailed(self, email: str) -> EntitlementResult:
        email = email.strip().lower()
        trace: dict[str, Any] = {"email": email, "customers": [], "errors": []}

        customers, lookup_error = self._lookup_customers(email, trace)

        subscription = self._subscription_channel(customers, lookup_error, trace)
        outcomes = [subscription]
        if subscription.keys:
            return self._finish(email, subscription, outcomes, trace)

        registered = self._registered_channel(customers, lookup_error, trace)
        outcomes.append(registered)
        if registered.keys:
            return self._finish(email, registered, outcomes, trace)

        # Guest purchases only matter when no customer record exists; a failed
        # lookup cannot rule that out.
        if customers and not lookup_error:
            guest = ChannelOutcome(CHANNEL_GUEST, attempted=False)
        else:
            guest = self._guest_channel(email, trace)
        outcomes.append(guest)
        if guest.keys:
            return self._finish(email, guest, outcomes, trace)

        failed = [o.name for o in outcomes if o.failed]
        trace["channels"] = {o.name: self._describe(o) for o in outcomes}
        if failed:
            logger.error(
                f"Entitlement lookup failed for {mask_email(email)}",
                extra={"failed_channels": failed},
            )
            raise ProviderUnavailableError(failed)

        logger.info(f"No entitlement found for {mask_email(email)}")
        return EntitlementResult(session_keys=[], channel=None, trace=trace)

    def _finish(
        self,
        email: str,
        granted: ChannelOutcome,
        outcomes: list[ChannelOutcome],
        trace: dict[str, Any],
    ) -> EntitlementResult:
        keys = canonical_order(granted.keys, SESSION_KEY_ORDER)
        trace["channels"] = {o.name: self._describe(o) for o in outcomes}
        logger.info(
            f"Entitlement for {mask_email(email)} via {granted.name}: {', '.join(keys)}",
            extra={"channel": granted.name, "session_keys": keys},
        )
        return EntitlementResult(session_keys=keys, channel=granted.name, trace=trace)

    @staticmethod
    def _describe(outcome: ChannelOutcome) -> dict[str, Any]:
        return {
            "attempted": outcome.attempted,
            "keys": canonical_order(outcome.keys, SESSION_KEY_ORDER),
            "errors": list(outcome.errors),
        }

    def _lookup_customers(self, email: str, trace: dict) -> tuple[list, Optional[str]]:
        try:
            customers = self.provider.list_customers_by_email(email)
        except Exception as e:
            logger.error(f"Customer lookup failed: {e}")
            trace["errors"].append(f"customers.list: {e}")
            return [], str(e)
        trace["customers"] = [
            {"id": field(c, "id"), "email": field(c, "email")} for c in customers
        ]
        return customers, None

    def _subscription_channel(
        self, customers: list, lookup_error: Optional[str], trace: dict
    ) -> ChannelOutcome:
        outcome = ChannelOutcome(CHANNEL_SUBSCRIPTION)
        if lookup_error:
            outcome.errors.append(lookup_error)
            return outcome

        trace["subscriptions"] = []
        for customer in customers:
            customer_id = field(customer, "id")
            try:
                subscriptions = self.provider.list_active_subscriptions(customer_id)
            except Exception as e:
                logger.warning(f"Subscription lookup failed for customer {customer_id}: {e}")
                outcome.errors.append(f"subscriptions.list({customer_id}): {e}")
                continue

            for subscription in subscriptions:
                products = [product_id_of(i) for i in field(field(subscription, "items"), "data", [])]
                trace["subscriptions"].append(
                    {"id": field(subscription, "id"), "customer": customer_id, "products": products}
                )
                if self.catalog.circle_product_id in products:
                    outcome.keys.update(self.catalog.full_access_keys)
                    return outcome
        return outcome

    def _registered_channel(
        self, customers: list, lookup_error: Optional[str], trace: dict
    ) -> ChannelOutcome:
        outcome = ChannelOutcome(CHANNEL_REGISTERED)
        if lookup_error:
            outcome.errors.append(lookup_error)
            return outcome

        trace["sessions"] = []
        for customer in customers:
            customer_id = field(customer, "id")
            try:
                sessions = self.provider.list_completed_sessions(customer_id)
            except Exception as e:
                logger.warning(f"Session lookup failed for customer {customer_id}: {e}")
                outcome.errors.append(f"checkout.sessions.list({customer_id}): {e}")
                continue

            for session in sessions:
                self._collect_session(session, outcome, trace["sessions"], customer_id)
        return outcome

    def _guest_channel(self, email: str, trace: dict) -> ChannelOutcome:
        outcome = ChannelOutcome(CHANNEL_GUEST)
        try:
            sessions = self.provider.list_completed_sessions()
        except Exception as e:
            logger.warning(f"Recent session lookup failed: {e}")
            outcome.errors.append(f"checkout.sessions.list: {e}")
            return outcome

        trace["guest_sessions"] = []
        for session in sessions:
            if (buyer_email(session) or "").strip().lower() != email:
                continue
            self._collect_session(session, outcome, trace["guest_sessions"], None)
        return outcome

    def _collect_session(
        self,
        session: Any,
        outcome: ChannelOutcome,
        trace_entries: list,
        customer_id: Optional[str],
    ) -> None:
        session_id = field(session, "id")
        entry = {
            "id": session_id,
            "customer": customer_id,
            "payment_status": field(session, "payment_status"),
            "email": buyer_email(session),
            "price_ids": [],
        }
        trace_entries.append(entry)

        if not qualifies(session):
            return

        try:
            line_items = self.provider.list_line_items(session_id)
        except Exception as e:
            logger.warning(f"Line item lookup failed for session {session_id}: {e}")
            outcome.errors.append(f"list_line_items({session_id}): {e}")
            entry["error"] = str(e)
            return

        for item in line_items:
            price_id = price_id_of(item)
            entry["price_ids"].append(price_id)
            outcome.keys.update(self.catalog.archive_keys_for(price_id))


_resolver: Optional[EntitlementResolver] = None


def get_entitlement_resolver() -> EntitlementResolver:
    """Process-wide resolver backed by Stripe.

    Raises:
        InternalError: Stripe API key is not configured
    """
    global _resolver
    api_key, _ = get_stripe_secrets()
    if not api_key:
        logger.error("Stripe API key not configured")
        raise InternalError("Stripe not configured")
    configure_stripe(api_key)

    if _resolver is None:
        _resolver = EntitlementResolver(StripeBillingProvider(), get_catalog())
    return _resolver


def reset_entitlement_resolver() -> None:
    """Used in tests for clean state."""
    global _resolver
    _resolver = None
