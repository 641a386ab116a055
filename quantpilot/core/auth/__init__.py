"""Identity provider collaborator."""

from quantpilot.core.auth.session import (
    AuthSession,
    AuthUser,
    IdentityProvider,
    LocalIdentityProvider,
    SessionContext,
    SupabaseIdentityProvider,
    create_identity_provider,
)

__all__ = [
    "AuthSession",
    "AuthUser",
    "IdentityProvider",
    "LocalIdentityProvider",
    "SessionContext",
    "SupabaseIdentityProvider",
    "create_identity_provider",
]
