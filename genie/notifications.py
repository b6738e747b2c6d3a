"""Fire‑and‑forget user notifications."""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from rich.console import Console

__all__ = ["Notifier", "ConsoleNotifier", "NullNotifier"]

LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, project: Any, message: str) -> None: ...


class ConsoleNotifier:
    """Prints notifications as a dimmed line on a ``rich`` console."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console(stderr=True)

    def notify(self, project: Any, message: str) -> None:
        LOGGER.debug("Notification for %s: %s", project, message)
        self._console.print(f"[dim]🔔 {message}[/]")


class NullNotifier:
    def notify(self, project: Any, message: str) -> None:
        LOGGER.debug("Notification for %s: %s", project, message)
