"""Service-layer workflows for CLI and API orchestration."""

from quantpilot.core.services.workspace import (
    AD_HOC_STRATEGY_ID,
    ANONYMOUS_USER_ID,
    GeneratedCode,
    Strategy,
    Workspace,
    WorkspaceRegistry,
)

__all__ = [
    "AD_HOC_STRATEGY_ID",
    "ANONYMOUS_USER_ID",
    "GeneratedCode",
    "Strategy",
    "Workspace",
    "WorkspaceRegistry",
]
