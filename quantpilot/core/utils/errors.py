"""Domain-specific error taxonomy for QuantPilot."""

from __future__ import annotations


class QuantPilotError(Exception):
    """Base QuantPilot error with CLI exit-code metadata."""

    exit_code: int = 1
    error_code: str = "quantpilot_error"


class ConfigLoadError(QuantPilotError, ValueError):
    """Configuration loading/validation error."""

    exit_code = 2
    error_code = "config_error"


class MissingCredentialError(ConfigLoadError):
    """Credential for an external collaborator is not configured."""

    exit_code = 3
    error_code = "missing_credential"


class AIServiceError(QuantPilotError, RuntimeError):
    """Generative-text service transport or response error."""

    exit_code = 4
    error_code = "ai_service_error"


class AuthError(QuantPilotError, PermissionError):
    """Identity provider rejected a request or a session is missing."""

    exit_code = 5
    error_code = "auth_error"


class IdentityServiceError(AuthError):
    """Identity provider could not be reached or answered with a server error."""

    exit_code = 9
    error_code = "identity_service_error"


class BacktestError(QuantPilotError, ValueError):
    """Backtest request could not be interpreted."""

    exit_code = 6
    error_code = "backtest_error"


class NotFoundError(QuantPilotError, LookupError):
    """Strategy, backtest or job lookup miss."""

    exit_code = 7
    error_code = "not_found"


class ArtifactError(QuantPilotError, RuntimeError):
    """Artifact write/read error."""

    exit_code = 8
    error_code = "artifact_error"


def exit_code_for_exception(exc: Exception) -> int:
    """
    Resolve process exit code for an exception.

    Args:
        exc: Raised exception.

    Returns:
        Integer process exit code.
    """
    return int(getattr(exc, "exit_code", 1))
