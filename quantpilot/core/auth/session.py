"""Identity providers and the explicit session handle."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

from quantpilot.core.config import AuthConfig
from quantpilot.core.utils.env import read_secret
from quantpilot.core.utils.errors import AuthError, IdentityServiceError
from quantpilot.core.utils.logging import get_logger

LOCAL_USER_ID = "mock-user-123"
LOCAL_ACCESS_TOKEN = "mock-token"
_REJECTED_STATUSES = frozenset({401, 403})
_LOGGER_NAME = "quantpilot.core.auth.session"


class _TokenRejectedError(AuthError):
    """The provider answered 401/403 for the presented credentials."""


class PlanType(str, Enum):
    FREE = "free"
    PRO = "pro"
    ELITE = "elite"


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user profile."""

    id: str
    email: str
    full_name: str
    plan: PlanType = PlanType.FREE


@dataclass(frozen=True)
class AuthSession:
    """Bearer token paired with its user."""

    access_token: str
    user: AuthUser


class IdentityProvider(ABC):
    """Interface of the identity collaborator."""

    @abstractmethod
    def get_session(self, access_token: str) -> AuthSession | None:
        """
        Return the session for ``access_token``, or ``None`` if it is not valid.

        Raises:
            IdentityServiceError: The provider could not answer.
        """

    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthSession:
        """Authenticate with email and password."""

    @abstractmethod
    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        """Register a new user and return a session for it."""

    @abstractmethod
    def sign_out(self, access_token: str) -> None:
        """Invalidate ``access_token``."""


class LocalIdentityProvider(IdentityProvider):
    """
    Simulated provider used when no hosted identity service is configured.

    Any credentials are accepted and every sign-in yields the same demo user
    id and token. Sessions live in memory for the lifetime of the provider.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, AuthSession] = {}

    def _issue(self, email: str, full_name: str) -> AuthSession:
        if not email.strip():
            raise AuthError("Email is required.")
        session = AuthSession(
            access_token=LOCAL_ACCESS_TOKEN,
            user=AuthUser(id=LOCAL_USER_ID, email=email.strip(), full_name=full_name),
        )
        self._sessions[session.access_token] = session
        return session

    def get_session(self, access_token: str) -> AuthSession | None:
        return self._sessions.get(access_token)

    def sign_in(self, email: str, password: str) -> AuthSession:
        _ = password
        return self._issue(email, "Demo User")

    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        _ = password
        return self._issue(email, full_name)

    def sign_out(self, access_token: str) -> None:
        self._sessions.pop(access_token, None)


class SupabaseIdentityProvider(IdentityProvider):
    """REST client for a Supabase (GoTrue) auth endpoint."""

    def __init__(
        self,
        url: str,
        api_key: str,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Initialize the provider.

        Args:
            url: Project URL, e.g. ``https://xyz.supabase.co``.
            api_key: Public anon key sent as the ``apikey`` header.
            session: Optional requests session for dependency injection.
            timeout_seconds: Request timeout in seconds.
        """
        if not url or not api_key:
            raise ValueError("Supabase url and api_key are required.")
        self._auth_url = f"{url.rstrip('/')}/auth/v1"
        self._api_key = api_key
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self._api_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        access_token: str | None = None,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """
        Send one request to the auth endpoint.

        4xx responses become :class:`AuthError` (``_TokenRejectedError`` for
        401/403); transport failures, 5xx and malformed bodies become
        :class:`IdentityServiceError`.
        """
        try:
            response = self._session.request(
                method,
                f"{self._auth_url}{path}",
                headers=self._headers(access_token),
                json=payload,
                params=params,
                timeout=self._timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise IdentityServiceError(f"Identity provider is unreachable: {exc}") from exc

        if response.status_code in _REJECTED_STATUSES:
            raise _TokenRejectedError(f"Authentication failed: {self._error_message(response)}")
        if 400 <= response.status_code < 500:
            raise AuthError(f"Authentication failed: {self._error_message(response)}")
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise IdentityServiceError(f"Identity provider error: {exc}") from exc
        if response.status_code == 204:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise IdentityServiceError("Identity provider returned invalid JSON.") from exc

    @staticmethod
    def _error_message(response: Any) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(
                body.get("error_description") or body.get("msg") or body.get("message") or body
            )
        return str(body)

    @staticmethod
    def _user_from_payload(payload: dict[str, Any]) -> AuthUser:
        metadata = payload.get("user_metadata") or {}
        plan = metadata.get("plan", PlanType.FREE.value)
        return AuthUser(
            id=str(payload["id"]),
            email=str(payload.get("email", "")),
            full_name=str(metadata.get("full_name", "")),
            plan=PlanType(plan) if plan in {p.value for p in PlanType} else PlanType.FREE,
        )

    def _session_from_payload(self, payload: Any) -> AuthSession:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthError("No session returned; the account may need email confirmation.")
        user = payload.get("user")
        if not isinstance(user, dict) or "id" not in user:
            raise AuthError("Identity provider returned a session without a user.")
        return AuthSession(
            access_token=str(payload["access_token"]),
            user=self._user_from_payload(user),
        )

    def get_session(self, access_token: str) -> AuthSession | None:
        """Resolve a token; only a 401/403 from ``/user`` means "no session"."""
        try:
            payload = self._request("GET", "/user", access_token=access_token)
        except _TokenRejectedError:
            return None
        if not isinstance(payload, dict) or "id" not in payload:
            raise IdentityServiceError("Identity provider returned a user without an id.")
        return AuthSession(access_token=access_token, user=self._user_from_payload(payload))

    def sign_in(self, email: str, password: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/token",
            payload={"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return self._session_from_payload(payload)

    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        payload = self._request(
            "POST",
            "/signup",
            payload={"email": email, "password": password, "data": {"full_name": full_name}},
        )
        return self._session_from_payload(payload)

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", access_token=access_token)


def create_identity_provider(config: AuthConfig | None = None) -> IdentityProvider:
    """
    Choose the identity provider for this process.

    With ``provider: auto`` the hosted provider is used when both its URL and
    key environment variables are set; otherwise authentication is simulated.
    """
    resolved = config or AuthConfig()
    logger = get_logger(_LOGGER_NAME)
    if resolved.provider == "local":
        return LocalIdentityProvider()

    url = read_secret(resolved.url_env)
    key = read_secret(resolved.key_env)
    if url and key:
        return SupabaseIdentityProvider(url, key, timeout_seconds=resolved.timeout_seconds)
    if resolved.provider == "supabase":
        raise AuthError(f"Supabase requires {resolved.url_env} and {resolved.key_env}.")
    logger.warning("Supabase not configured. Auth will be simulated.")
    return LocalIdentityProvider()


class SessionContext:
    """
    Explicit handle on one client's authentication state.

    The handle for non-HTTP clients that keep one session for their lifetime;
    the API resolves a session per request from the bearer token instead.

    Created at startup with a provider, populated by :meth:`sign_in` or
    :meth:`sign_up` (or :meth:`restore` from a stored token) and torn down by
    :meth:`sign_out`.
    """

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider
        self._session: AuthSession | None = None

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def user(self) -> AuthUser | None:
        return None if self._session is None else self._session.user

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def require_user(self) -> AuthUser:
        if self._session is None:
            raise AuthError("Not signed in.")
        return self._session.user

    def restore(self, access_token: str) -> AuthSession | None:
        self._session = self._provider.get_session(access_token)
        return self._session

    def sign_in(self, email: str, password: str) -> AuthSession:
        self._session = self._provider.sign_in(email, password)
        get_logger(_LOGGER_NAME).info("Signed in user %s", self._session.user.id)
        return self._session

    def sign_up(self, email: str, password: str, full_name: str) -> AuthSession:
        self._session = self._provider.sign_up(email, password, full_name)
        get_logger(_LOGGER_NAME).info("Registered user %s", self._session.user.id)
        return self._session

    def sign_out(self) -> None:
        if self._session is None:
            return
        token = self._session.access_token
        self._session = None
        self._provider.sign_out(token)
