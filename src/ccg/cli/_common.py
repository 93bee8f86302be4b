"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the engine builder, and the error
reporter used by every command.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich.markup import escape

from .. import CCG_HOME
from ..config import build_engine
from ..engine import ColdStorageEngine
from ..errors import CCGError, RemoteStorageError

console = Console()


def fail(exc: CCGError) -> NoReturn:
    """Report a pipeline error on one line and exit with status 1."""
    console.print(f"[bold red]{type(exc).__name__}:[/] {escape(str(exc))}")
    if isinstance(exc, RemoteStorageError) and exc.status_code:
        console.print(f"  [dim]HTTP {exc.status_code}[/]")
    sys.exit(1)


def open_engine(home: str) -> ColdStorageEngine:
    """Build the engine for a command, exiting cleanly on bad config."""
    try:
        return build_engine(Path(home).expanduser())
    except CCGError as exc:
        fail(exc)
