from __future__ import annotations

import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from sealdrop.transfer import TransferCoordinator
from sealdrop.ui import TerminalUI, configure_logging, show_message


def _ui() -> tuple[TerminalUI, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=120)
    return TerminalUI(console=console), buffer


def test_show_message_renders_localized_text() -> None:
    ui, buffer = _ui()

    show_message(ui, "status_sent", "en")
    show_message(ui, "status_sent", "zh")

    output = buffer.getvalue()
    assert "File sent successfully" in output
    assert "文件发送成功" in output


def test_show_message_formats_arguments() -> None:
    ui, buffer = _ui()

    show_message(ui, "status_receive_failed", "en", error="File integrity check failed")

    assert "Error receiving file: File integrity check failed" in buffer.getvalue()


def test_blank_prints_empty_line() -> None:
    ui, buffer = _ui()
    ui.blank()
    assert buffer.getvalue() == "\n"


def test_configure_logging_toggles_rich_handler() -> None:
    package_logger = logging.getLogger("sealdrop")
    previous_level = package_logger.level
    try:
        configure_logging(True, console=Console(file=io.StringIO()))
        rich_handlers = [h for h in package_logger.handlers if isinstance(h, RichHandler)]
        assert len(rich_handlers) == 1
        assert package_logger.level == logging.DEBUG

        # Reconfiguring does not stack handlers
        configure_logging(True, console=Console(file=io.StringIO()))
        assert len([h for h in package_logger.handlers if isinstance(h, RichHandler)]) == 1

        configure_logging(False)
        assert not [h for h in package_logger.handlers if isinstance(h, RichHandler)]
    finally:
        configure_logging(False)
        package_logger.setLevel(previous_level)


def test_debug_logging_reports_transfer_failures() -> None:
    buffer = io.StringIO()
    package_logger = logging.getLogger("sealdrop")
    previous_level = package_logger.level
    try:
        configure_logging(True, console=Console(file=buffer, width=200))
        TransferCoordinator().handle_message({"type": "file-incoming", "fileData": None})
    finally:
        configure_logging(False)
        package_logger.setLevel(previous_level)

    assert "Receiving file failed" in buffer.getvalue()
