"""
Tests for archive identity resolution and Firebase token verification.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from shared.errors import IdentityTokenError


class TestResolveIdentity:
    def test_email_field_without_firebase(self):
        from shared.identity import resolve_identity

        assert resolve_identity(None, "  Buyer@Example.com ") == "buyer@example.com"

    def test_missing_email_without_firebase(self):
        from shared.identity import resolve_identity

        assert resolve_identity(None, None) == ""

    def test_token_required_with_firebase(self, monkeypatch):
        from shared.identity import resolve_identity

        monkeypatch.setenv("FIREBASE_SERVICE_ACCOUNT", "{}")

        with pytest.raises(IdentityTokenError):
            resolve_identity(None, "buyer@example.com")

    def test_token_email_wins_over_field(self, monkeypatch):
        from shared.identity import resolve_identity

        monkeypatch.setenv("FIREBASE_SERVICE_ACCOUNT", "{}")
        with patch("shared.identity.verify_identity_token", return_value="verified@example.com"):
            assert resolve_identity("token", "other@example.com") == "verified@example.com"


class TestVerifyIdentityToken:
    @pytest.fixture(autouse=True)
    def firebase_app(self):
        with patch("shared.identity.get_firebase_app", return_value=MagicMock()):
            yield

    def test_returns_lowercased_email(self):
        from shared.identity import verify_identity_token

        with patch("firebase_admin.auth.verify_id_token", return_value={"email": "Buyer@Example.com"}):
            assert verify_identity_token("token") == "buyer@example.com"

    def test_invalid_token(self):
        from firebase_admin import auth as firebase_auth

        from shared.identity import verify_identity_token

        error = firebase_auth.InvalidIdTokenError("bad token")
        with patch("firebase_admin.auth.verify_id_token", side_effect=error):
            with pytest.raises(IdentityTokenError) as exc_info:
                verify_identity_token("token")

        assert exc_info.value.status_code == 401

    def test_malformed_token(self):
        from shared.identity import verify_identity_token

        with patch("firebase_admin.auth.verify_id_token", side_effect=ValueError("empty")):
            with pytest.raises(IdentityTokenError):
                verify_identity_token("")

    def test_token_without_email(self):
        from shared.identity import verify_identity_token

        with patch("firebase_admin.auth.verify_id_token", return_value={"uid": "abc"}):
            with pytest.raises(IdentityTokenError):
                verify_identity_token("token")


class TestGetFirebaseApp:
    def test_initializes_once(self, monkeypatch):
        from shared import identity

        monkeypatch.setenv("FIREBASE_SERVICE_ACCOUNT", json.dumps({"project_id": "aifes"}))
        with patch("firebase_admin.credentials.Certificate") as mock_cert, patch(
            "firebase_admin.initialize_app", return_value="app"
        ) as mock_init:
            assert identity.get_firebase_app() == "app"
            assert identity.get_firebase_app() == "app"

        mock_cert.assert_called_once_with({"project_id": "aifes"})
        mock_init.assert_called_once()
