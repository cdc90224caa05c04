"""
UI helpers shared by the Sealdrop CLI.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from rich.console import Console, RenderableType
from rich.logging import RichHandler

from .language import render_message

LOG_FORMAT = "%(message)s"


class TerminalUI:
    """Thin wrapper around rich.Console to standardize CLI I/O."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console = console or Console(markup=True, highlight=False, soft_wrap=True)
        self._lock = threading.Lock()

    @property
    def console(self) -> Console:
        return self._console

    def print(self, message: RenderableType = "", *, end: str = "\n") -> None:
        # Status updates arrive from channel reader threads as well.
        with self._lock:
            self._console.print(
                message,
                end=end,
                soft_wrap=True,
            )
            try:
                self._console.file.flush()
            except Exception:  # noqa: BLE001
                pass

    def blank(self) -> None:
        self.print()


def show_message(
    ui: TerminalUI,
    key: str,
    language: str,
    *,
    tone: Optional[str] = None,
    **kwargs: object,
) -> None:
    """Helper to print a localized message with consistent styling."""

    ui.print(render_message(key, language, tone=tone, **kwargs))


def configure_logging(debug: bool, console: Optional[Console] = None) -> None:
    """Route `sealdrop` log records through Rich when debugging is on."""

    package_logger = logging.getLogger("sealdrop")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    if not debug:
        return
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)


__all__ = ["TerminalUI", "show_message", "configure_logging"]
