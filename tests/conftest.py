"""
Shared pytest fixtures for EventPass tests.
"""

import os
import sys
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def service_env(monkeypatch):
    """Single-instance state and no Firebase unless a test opts in."""
    monkeypatch.setenv("STATE_BACKEND", "memory")
    monkeypatch.delenv("FIREBASE_SERVICE_ACCOUNT", raising=False)
    monkeypatch.delenv("ARCHIVE_DEBUG_ENABLED", raising=False)
    monkeypatch.delenv("REGISTRATION_LINKS", raising=False)


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests.

    CloudWatch starts as a stub so metric emission never leaves the
    process; metrics tests reset it inside mock_aws.
    """
    import shared.aws_clients as aws_clients

    aws_clients.reset_clients()
    aws_clients._cloudwatch = MagicMock()
    yield
    aws_clients.reset_clients()


@pytest.fixture(autouse=True)
def reset_process_state():
    """Drop cached catalog, secrets, state backends and handler singletons."""
    _reset_all()
    yield
    _reset_all()


def _reset_all():
    from shared.catalog import reset_catalog
    from shared.entitlements import reset_entitlement_resolver
    from shared.identity import reset_firebase_app
    from shared.secret_utils import clear_secret_cache
    from shared.state import reset_state

    reset_catalog()
    reset_entitlement_resolver()
    reset_firebase_app()
    clear_secret_cache()
    reset_state()

    try:
        from api.stripe_webhook import reset_webhook_processor
        reset_webhook_processor()
    except ImportError:
        pass


def create_dynamodb_tables(dynamodb):
    """Create the processed-events, failed-notifications and rate-limit tables.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    dynamodb.create_table(
        TableName="eventpass-processed-events",
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )

    dynamodb.create_table(
        TableName="eventpass-failed-notifications",
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},
            {"AttributeName": "sk", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )

    dynamodb.create_table(
        TableName="eventpass-rate-limits",
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


class FakeBillingProvider:
    """In-memory stand-in for StripeBillingProvider.

    Objects are plain dicts shaped like Stripe's. `failures` maps an
    operation name, or (operation, argument), to an exception to raise.
    """

    def __init__(self):
        self.customers: dict[str, list[dict]] = {}
        self.subscriptions: dict[str, list[dict]] = {}
        self.customer_sessions: dict[str, list[dict]] = {}
        self.recent_sessions: list[dict] = []
        self.line_items: dict[str, list[dict]] = {}
        self.failures: dict = {}
        self.calls: list[tuple] = []
        self.event = None

    # Builders

    def add_customer(self, email: str, customer_id: str) -> dict:
        customer = {"id": customer_id, "email": email}
        self.customers.setdefault(email.lower(), []).append(customer)
        return customer

    def add_subscription(self, customer_id: str, product_ids: list[str]) -> dict:
        subscription = {
            "id": f"sub_{customer_id}_{len(self.subscriptions.get(customer_id, []))}",
            "status": "active",
            "items": {"data": [{"price": {"id": f"price_{p}", "product": p}} for p in product_ids]},
        }
        self.subscriptions.setdefault(customer_id, []).append(subscription)
        return subscription

    def add_session(
        self,
        session_id: str,
        price_ids: list[str],
        email: str | None = None,
        customer_id: str | None = None,
        payment_status: str = "paid",
    ) -> dict:
        session = {
            "id": session_id,
            "object": "checkout.session",
            "customer": customer_id,
            "customer_details": {"email": email} if email else None,
            "customer_email": None,
            "payment_status": payment_status,
            "status": "complete",
        }
        self.line_items[session_id] = [{"id": f"li_{p}", "price": {"id": p}} for p in price_ids]
        if customer_id:
            self.customer_sessions.setdefault(customer_id, []).append(session)
        self.recent_sessions.insert(0, session)
        return session

    def checkout_event(self, event_id: str, session: dict) -> dict:
        self.event = {
            "id": event_id,
            "type": "checkout.session.completed",
            "livemode": False,
            "data": {"object": session},
        }
        return self.event

    # Provider interface

    def _record(self, operation: str, argument=None):
        self.calls.append((operation, argument))
        error = self.failures.get((operation, argument)) or self.failures.get(operation)
        if error is not None:
            raise error

    def construct_event(self, payload, sig_header, webhook_secret):
        self._record("construct_event")
        return self.event

    def list_customers_by_email(self, email):
        self._record("list_customers_by_email", email)
        return list(self.customers.get(email.lower(), []))

    def list_active_subscriptions(self, customer_id):
        self._record("list_active_subscriptions", customer_id)
        return list(self.subscriptions.get(customer_id, []))

    def list_completed_sessions(self, customer_id=None):
        self._record("list_completed_sessions", customer_id)
        if customer_id:
            return list(self.customer_sessions.get(customer_id, []))
        return list(self.recent_sessions)

    def list_line_items(self, session_id):
        self._record("list_line_items", session_id)
        return list(self.line_items.get(session_id, []))


@pytest.fixture
def fake_billing():
    """Fake billing provider with no data."""
    return FakeBillingProvider()


@pytest.fixture
def catalog():
    """Catalog built from the default (placeholder) price ids."""
    from shared.catalog import get_catalog

    return get_catalog()


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "POST",
        "path": "/",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "isBase64Encoded": False,
        "requestContext": {
            "requestId": "test-request-id",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }
