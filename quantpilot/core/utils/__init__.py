"""Utility helpers."""

from quantpilot.core.utils.env import load_dotenv, read_secret, require_secret
from quantpilot.core.utils.errors import (
    AIServiceError,
    ArtifactError,
    AuthError,
    BacktestError,
    ConfigLoadError,
    IdentityServiceError,
    MissingCredentialError,
    NotFoundError,
    QuantPilotError,
    exit_code_for_exception,
)
from quantpilot.core.utils.logging import configure_logging, get_logger

__all__ = [
    "AIServiceError",
    "ArtifactError",
    "AuthError",
    "BacktestError",
    "ConfigLoadError",
    "IdentityServiceError",
    "MissingCredentialError",
    "NotFoundError",
    "QuantPilotError",
    "configure_logging",
    "exit_code_for_exception",
    "get_logger",
    "load_dotenv",
    "read_secret",
    "require_secret",
]
