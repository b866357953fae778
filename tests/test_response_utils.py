"""
Tests for response and request utilities.
"""

import base64
import json

import pytest


class TestResponses:
    def test_json_response(self):
        from shared.response_utils import json_response

        result = json_response(201, {"ok": True}, headers={"X-Test": "1"})

        assert result["statusCode"] == 201
        assert result["headers"] == {"Content-Type": "application/json", "X-Test": "1"}
        assert json.loads(result["body"]) == {"ok": True}

    def test_error_response(self):
        from shared.response_utils import error_response

        result = error_response(429, "rate_limited", "Slow down", details={"limit": 5}, retry_after=600)

        assert result["statusCode"] == 429
        assert result["headers"]["Retry-After"] == "600"
        assert json.loads(result["body"]) == {
            "error": {"code": "rate_limited", "message": "Slow down", "details": {"limit": 5}}
        }

    def test_html_response_is_not_cached(self):
        from shared.response_utils import html_response

        result = html_response("<p>hi</p>", 401)

        assert result["statusCode"] == 401
        assert result["headers"]["Content-Type"] == "text/html; charset=utf-8"
        assert result["headers"]["Cache-Control"] == "no-store"
        assert result["body"] == "<p>hi</p>"


class TestErrors:
    def test_api_error_to_response(self):
        from shared.errors import ValidationError

        result = ValidationError().to_response()

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "invalid_email"

    def test_rate_limited_carries_retry_after(self):
        from shared.errors import RateLimitedError

        result = RateLimitedError(5, 600).to_response()

        assert result["statusCode"] == 429
        assert result["headers"]["Retry-After"] == "600"

    def test_provider_unavailable_lists_channels(self):
        from shared.errors import ProviderUnavailableError

        body = json.loads(ProviderUnavailableError(["guest_purchase"]).to_response()["body"])

        assert body["error"]["details"] == {"failed_channels": ["guest_purchase"]}


class TestRequestUtils:
    def test_header_lookup_is_case_insensitive(self):
        from shared.request_utils import get_header

        event = {"headers": {"Stripe-Signature": "sig"}}

        assert get_header(event, "stripe-signature") == "sig"
        assert get_header({"headers": None}, "stripe-signature") is None

    def test_raw_body_decodes_base64(self):
        from shared.request_utils import get_raw_body

        event = {"body": base64.b64encode("{\"a\": 1}".encode()).decode(), "isBase64Encoded": True}

        assert get_raw_body(event) == '{"a": 1}'
        assert get_raw_body({"body": None}) == ""

    def test_parse_form_body(self):
        from shared.request_utils import parse_body

        event = {
            "headers": {"content-type": "application/x-www-form-urlencoded"},
            "body": "email=buyer%40example.com&idToken=",
        }

        assert parse_body(event) == {"email": "buyer@example.com", "idToken": ""}

    def test_parse_json_body_keeps_strings_only(self):
        from shared.request_utils import parse_body

        event = {"headers": {}, "body": json.dumps({"email": "a@example.com", "n": 1})}

        assert parse_body(event) == {"email": "a@example.com"}

    @pytest.mark.parametrize("body", ["{broken", "[1, 2]"])
    def test_parse_bad_json_raises(self, body):
        from shared.request_utils import parse_body

        with pytest.raises(ValueError):
            parse_body({"headers": {"Content-Type": "application/json"}, "body": body})

    @pytest.mark.parametrize(
        "email, valid",
        [
            ("buyer@example.com", True),
            ("first.last+tag@sub.example.co.jp", True),
            ("", False),
            ("no-at-sign", False),
            ("a@b", False),
            ("x" * 250 + "@example.com", False),
        ],
    )
    def test_is_valid_email(self, email, valid):
        from shared.request_utils import is_valid_email

        assert is_valid_email(email) is valid