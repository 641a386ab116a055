"""Environment variable helpers."""

from __future__ import annotations

import os
from pathlib import Path

from quantpilot.core.utils.errors import MissingCredentialError


def _strip_wrapping_quotes(value: str) -> str:
    """Remove matching single or double wrapping quotes from a value."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def load_dotenv(path: Path = Path(".env"), override: bool = False) -> dict[str, str]:
    """
    Load environment variables from a ``.env`` file.

    Blank lines, ``#`` comments and ``export`` prefixes are accepted.

    Args:
        path: Dotenv file path.
        override: Whether loaded values should overwrite existing environment variables.

    Returns:
        Mapping of environment variables that were set in this call.
    """
    resolved_path = path.expanduser().resolve()
    if not resolved_path.is_file():
        return {}

    loaded: dict[str, str] = {}
    for line_number, raw_line in enumerate(
        resolved_path.read_text(encoding="utf-8").splitlines(), start=1
    ):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").strip()
        key, separator, raw_value = line.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"Invalid dotenv line at {resolved_path}:{line_number}")
        if not override and key in os.environ:
            continue
        value = _strip_wrapping_quotes(raw_value.strip())
        os.environ[key] = value
        loaded[key] = value

    return loaded


def read_secret(env_name: str, explicit: str | None = None) -> str | None:
    """Return an explicit secret or the value of ``env_name`` (blank counts as unset)."""
    value = explicit if explicit is not None else os.getenv(env_name)
    if value is None or not value.strip():
        return None
    return value.strip()


def require_secret(env_name: str, explicit: str | None = None) -> str:
    """
    Return a secret or fail fast.

    Args:
        env_name: Environment variable holding the secret.
        explicit: Value passed in code; takes precedence over the environment.

    Raises:
        MissingCredentialError: If neither source provides a value.
    """
    value = read_secret(env_name, explicit)
    if value is None:
        raise MissingCredentialError(
            f"{env_name} is not set. Export it or add it to your .env file."
        )
    return value
