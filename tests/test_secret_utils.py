"""
Tests for Secrets Manager access and Stripe secret loading.
"""

import json
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws


@pytest.fixture
def secretsmanager():
    with mock_aws():
        yield boto3.client("secretsmanager", region_name="us-east-1")


class TestReadSecret:
    def test_unset_arn(self):
        from shared.secret_utils import read_secret

        assert read_secret(None, "key") is None
        assert read_secret("", "key") is None

    def test_json_secret(self, secretsmanager):
        from shared.secret_utils import read_secret

        arn = secretsmanager.create_secret(Name="stripe", SecretString=json.dumps({"key": "sk_test_1"}))["ARN"]

        assert read_secret(arn, "key") == "sk_test_1"

    def test_plain_secret(self, secretsmanager):
        from shared.secret_utils import read_secret

        arn = secretsmanager.create_secret(Name="webhook", SecretString="whsec_plain")["ARN"]

        assert read_secret(arn, "secret") == "whsec_plain"

    def test_missing_secret_returns_none(self, secretsmanager):
        from shared.secret_utils import read_secret

        assert read_secret("arn:aws:secretsmanager:us-east-1:123456789012:secret:missing", "key") is None

    def test_cached_within_ttl(self, secretsmanager):
        from shared.secret_utils import read_secret

        arn = secretsmanager.create_secret(Name="stripe", SecretString=json.dumps({"key": "sk_old"}))["ARN"]
        read_secret(arn, "key")
        secretsmanager.put_secret_value(SecretId=arn, SecretString=json.dumps({"key": "sk_new"}))

        assert read_secret(arn, "key") == "sk_old"

    def test_refreshed_after_ttl(self, secretsmanager):
        from shared.secret_utils import SECRET_CACHE_TTL, read_secret

        arn = secretsmanager.create_secret(Name="stripe", SecretString=json.dumps({"key": "sk_old"}))["ARN"]
        with patch("shared.secret_utils.time.time", return_value=1000.0):
            read_secret(arn, "key")
        secretsmanager.put_secret_value(SecretId=arn, SecretString=json.dumps({"key": "sk_new"}))

        with patch("shared.secret_utils.time.time", return_value=1000.0 + SECRET_CACHE_TTL + 1):
            assert read_secret(arn, "key") == "sk_new"


class TestGetStripeSecrets:
    def test_reads_both_secrets(self, secretsmanager, monkeypatch):
        from shared.billing_provider import get_stripe_secrets

        key_arn = secretsmanager.create_secret(Name="key", SecretString=json.dumps({"key": "sk_test"}))["ARN"]
        hook_arn = secretsmanager.create_secret(Name="hook", SecretString=json.dumps({"secret": "whsec"}))["ARN"]
        monkeypatch.setenv("STRIPE_SECRET_ARN", key_arn)
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET_ARN", hook_arn)

        assert get_stripe_secrets() == ("sk_test", "whsec")

    def test_unconfigured(self, monkeypatch):
        from shared.billing_provider import get_stripe_secrets

        monkeypatch.delenv("STRIPE_SECRET_ARN", raising=False)
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET_ARN", raising=False)

        assert get_stripe_secrets() == (None, None)
