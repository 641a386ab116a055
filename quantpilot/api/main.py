"""``quantpilot-api``: serve the QuantPilot app with uvicorn."""

from __future__ import annotations

import argparse
import os
import socket
from pathlib import Path

from quantpilot.api.app import CONFIG_ENV_VAR
from quantpilot.core.utils.logging import configure_logging, get_logger

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8030
HOST_ENV_VAR = "QUANTPILOT_API_HOST"
PORT_ENV_VAR = "QUANTPILOT_API_PORT"
LOG_LEVEL_ENV_VAR = "QUANTPILOT_API_LOG_LEVEL"
_LOGGER_NAME = "quantpilot.api.main"


def _port_error(port: int) -> str | None:
    if 1 <= port <= 65535:
        return None
    return f"port {port} is outside 1-65535"


def _default_port() -> int:
    """Port from QUANTPILOT_API_PORT, else 8030."""
    raw_value = os.getenv(PORT_ENV_VAR, "").strip() or str(DEFAULT_PORT)
    try:
        port = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{PORT_ENV_VAR} is not an integer: {raw_value!r}") from exc
    problem = _port_error(port)
    if problem:
        raise ValueError(f"{PORT_ENV_VAR}: {problem}")
    return port


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quantpilot-api",
        description="Serve the QuantPilot strategy and backtest API.",
    )
    parser.add_argument(
        "--host",
        default=os.getenv(HOST_ENV_VAR, DEFAULT_HOST),
        help=f"Interface to listen on [env {HOST_ENV_VAR}, default {DEFAULT_HOST}].",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=_default_port(),
        help=f"First port to try; busy ports are skipped [env {PORT_ENV_VAR}].",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv(LOG_LEVEL_ENV_VAR, "info"),
        help=f"uvicorn log level [env {LOG_LEVEL_ENV_VAR}].",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"App config YAML for engine, AI and auth settings [env {CONFIG_ENV_VAR}].",
    )
    args = parser.parse_args(argv)
    problem = _port_error(args.port)
    if problem:
        parser.error(f"--port: {problem}")
    return args


def _is_port_available(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _resolve_port(host: str, requested_port: int, max_attempts: int = 50) -> int:
    """Return the first bindable port at or after ``requested_port``."""
    last_candidate = min(65535, requested_port + max_attempts - 1)
    for candidate in range(requested_port, last_candidate + 1):
        if _is_port_available(host, candidate):
            return candidate
    raise RuntimeError(f"No free port between {requested_port} and {last_candidate}.")


def main(argv: list[str] | None = None) -> None:
    import uvicorn

    args = _parse_args(argv)
    configure_logging()
    if args.config is not None:
        os.environ[CONFIG_ENV_VAR] = str(args.config.resolve())
    port = _resolve_port(args.host, args.port)
    if port != args.port:
        get_logger(_LOGGER_NAME).warning("Port %s is busy; serving on %s.", args.port, port)
    uvicorn.run(
        "quantpilot.api.app:create_app",
        factory=True,
        host=args.host,
        port=port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
