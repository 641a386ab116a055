"""Unit tests for identity providers and session state."""

from __future__ import annotations

import os
import unittest
from typing import Any
from unittest.mock import patch

import requests

from quantpilot.core.auth.session import (
    LOCAL_ACCESS_TOKEN,
    LOCAL_USER_ID,
    LocalIdentityProvider,
    PlanType,
    SessionContext,
    SupabaseIdentityProvider,
    create_identity_provider,
)
from quantpilot.core.config import AuthConfig
from quantpilot.core.utils.errors import AuthError, IdentityServiceError


class _FakeResponse:
    """Minimal response stub for provider tests."""

    def __init__(self, status_code: int, payload: object = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self) -> object:
        if self._payload is None:
            raise ValueError("No JSON body.")
        return self._payload


class _FakeSession:
    """Scripted session stub recording each request."""

    def __init__(self, outcomes: list[object]) -> None:
        self._outcomes = outcomes
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self._outcomes:
            raise RuntimeError("No scripted outcomes left.")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        assert isinstance(outcome, _FakeResponse)
        return outcome


_USER = {
    "id": "user-1",
    "email": "ada@example.com",
    "user_metadata": {"full_name": "Ada", "plan": "pro"},
}


def _provider(outcomes: list[object]) -> tuple[SupabaseIdentityProvider, _FakeSession]:
    session = _FakeSession(outcomes)
    provider = SupabaseIdentityProvider(
        "https://project.supabase.co/", "anon-key", session=session  # type: ignore[arg-type]
    )
    return provider, session


class TestSupabaseIdentityProvider(unittest.TestCase):
    """Validate request shape and error mapping against scripted responses."""

    def test_sign_in_posts_password_grant(self) -> None:
        provider, session = _provider(
            [_FakeResponse(200, {"access_token": "tok-1", "user": _USER})]
        )
        auth_session = provider.sign_in("ada@example.com", "secret")

        self.assertEqual(auth_session.access_token, "tok-1")
        self.assertEqual(auth_session.user.full_name, "Ada")
        self.assertEqual(auth_session.user.plan, PlanType.PRO)
        request = session.requests[0]
        self.assertEqual(request["method"], "POST")
        self.assertEqual(request["url"], "https://project.supabase.co/auth/v1/token")
        self.assertEqual(request["params"], {"grant_type": "password"})
        self.assertEqual(request["headers"]["apikey"], "anon-key")
        self.assertEqual(request["json"]["email"], "ada@example.com")

    def test_sign_up_sends_full_name(self) -> None:
        provider, session = _provider(
            [_FakeResponse(200, {"access_token": "tok-2", "user": _USER})]
        )
        provider.sign_up("ada@example.com", "secret", "Ada")
        self.assertEqual(session.requests[0]["json"]["data"], {"full_name": "Ada"})

    def test_sign_up_without_session_raises(self) -> None:
        provider, _ = _provider([_FakeResponse(200, {"user": _USER})])
        with self.assertRaises(AuthError):
            provider.sign_up("ada@example.com", "secret", "Ada")

    def test_rejected_credentials_raise_auth_error(self) -> None:
        provider, _ = _provider(
            [_FakeResponse(400, {"error_description": "Invalid login credentials"})]
        )
        with self.assertRaisesRegex(AuthError, "Invalid login credentials"):
            provider.sign_in("ada@example.com", "wrong")

    def test_server_and_network_errors_raise_auth_error(self) -> None:
        provider, _ = _provider(
            [_FakeResponse(500, {"message": "down"}), requests.ConnectionError("refused")]
        )
        with self.assertRaises(AuthError):
            provider.sign_in("ada@example.com", "secret")
        with self.assertRaises(AuthError):
            provider.sign_in("ada@example.com", "secret")

    def test_get_session_uses_bearer_token(self) -> None:
        provider, session = _provider([_FakeResponse(200, _USER), _FakeResponse(401, {})])
        restored = provider.get_session("tok-1")
        self.assertIsNotNone(restored)
        self.assertEqual(restored.user.id, "user-1")
        self.assertEqual(session.requests[0]["headers"]["Authorization"], "Bearer tok-1")
        self.assertIsNone(provider.get_session("expired"))

    def test_get_session_treats_forbidden_as_signed_out(self) -> None:
        provider, _ = _provider([_FakeResponse(403, {"msg": "bad_jwt"})])
        self.assertIsNone(provider.get_session("tampered"))

    def test_get_session_propagates_provider_outage(self) -> None:
        provider, _ = _provider(
            [
                requests.ConnectionError("refused"),
                _FakeResponse(503, {"message": "maintenance"}),
                _FakeResponse(200, None),
            ]
        )
        with self.assertRaisesRegex(IdentityServiceError, "unreachable"):
            provider.get_session("tok-1")
        with self.assertRaises(IdentityServiceError):
            provider.get_session("tok-1")
        with self.assertRaisesRegex(IdentityServiceError, "invalid JSON"):
            provider.get_session("tok-1")

    def test_sign_out_accepts_no_content(self) -> None:
        provider, session = _provider([_FakeResponse(204)])
        provider.sign_out("tok-1")
        self.assertTrue(session.requests[0]["url"].endswith("/auth/v1/logout"))


class TestLocalIdentityProvider(unittest.TestCase):
    def test_any_credentials_yield_demo_user(self) -> None:
        provider = LocalIdentityProvider()
        auth_session = provider.sign_in("someone@example.com", "whatever")
        self.assertEqual(auth_session.user.id, LOCAL_USER_ID)
        self.assertEqual(auth_session.access_token, LOCAL_ACCESS_TOKEN)
        self.assertEqual(provider.get_session(LOCAL_ACCESS_TOKEN), auth_session)
        provider.sign_out(LOCAL_ACCESS_TOKEN)
        self.assertIsNone(provider.get_session(LOCAL_ACCESS_TOKEN))

    def test_empty_email_rejected(self) -> None:
        with self.assertRaises(AuthError):
            LocalIdentityProvider().sign_up("  ", "pw", "Nobody")


class TestProviderSelection(unittest.TestCase):
    def test_auto_without_env_simulates(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with self.assertLogs("quantpilot.core.auth.session", level="WARNING") as logs:
                provider = create_identity_provider(AuthConfig())
        self.assertIsInstance(provider, LocalIdentityProvider)
        self.assertIn("Auth will be simulated", logs.output[0])

    def test_auto_with_env_uses_supabase(self) -> None:
        env = {"SUPABASE_URL": "https://project.supabase.co", "SUPABASE_ANON_KEY": "anon"}
        with patch.dict(os.environ, env, clear=True):
            provider = create_identity_provider(AuthConfig())
        self.assertIsInstance(provider, SupabaseIdentityProvider)

    def test_forced_supabase_without_env_raises(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(AuthError):
                create_identity_provider(AuthConfig(provider="supabase"))


class TestSessionContext(unittest.TestCase):
    def test_lifecycle(self) -> None:
        context = SessionContext(LocalIdentityProvider())
        self.assertFalse(context.is_authenticated)
        with self.assertRaises(AuthError):
            context.require_user()

        context.sign_in("ada@example.com", "pw")
        self.assertTrue(context.is_authenticated)
        self.assertEqual(context.require_user().id, LOCAL_USER_ID)

        context.sign_out()
        self.assertIsNone(context.user)
        self.assertIsNone(context.restore(LOCAL_ACCESS_TOKEN))


if __name__ == "__main__":
    unittest.main()
