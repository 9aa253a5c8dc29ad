"""Shared utilities for all CLI command modules.

Provides the Rich console instance, state formatting helpers, and the
runtime loader used by every command group.
"""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from .. import VMAGENT_HOME
from ..runtime import ControllerRuntime, get_runtime
from ..verification import VerificationState

console = Console()


def state_label(state: VerificationState, disabled: bool = False) -> str:
    """Map verification state to a Rich-formatted label.

    Args:
        state: Verification state of a template.
        disabled: Whether the administrator disabled the template.

    Returns:
        str: Rich markup string.
    """
    if disabled:
        return "[dim]DISABLED[/]"
    return {
        VerificationState.VERIFIED: "[bold green]VERIFIED[/]",
        VerificationState.UNVERIFIED: "[bold yellow]UNVERIFIED[/]",
        VerificationState.FAILED: "[bold red]FAILED[/]",
    }.get(state, "[dim]UNKNOWN[/]")


def load_runtime(home: str) -> ControllerRuntime:
    """Build a runtime for ``home`` with all stored templates loaded."""
    return get_runtime(Path(home).expanduser())


__all__ = ["VMAGENT_HOME", "console", "load_runtime", "state_label"]
