"""
Command line entry point for Sealdrop.
"""

from __future__ import annotations

import argparse
import ipaddress
import os
import re
import sys
import threading
from pathlib import Path
from typing import Optional

from rich.text import Text

from . import __version__
from .channel import DEFAULT_TRANSFER_PORT, SocketChannel
from .config import AppConfig, load_config, resolve_download_dir, save_config
from .errors import ChannelError
from .language import LANGUAGES, MESSAGES, get_message, render_message
from .security import compute_file_sha256
from .transfer import (
    PendingFile,
    ReceivedFile,
    ReceiveState,
    SendState,
    TransferCoordinator,
    save_received_file,
)
from .ui import TerminalUI, configure_logging, show_message
from .utils import format_size, parse_size

DEBUG_ENV = "SEALDROP_DEBUG"


def emit_message(
    ui: TerminalUI,
    language: str,
    key: str,
    quiet: bool,
    *,
    error: bool = False,
    **kwargs: object,
) -> None:
    if quiet and not error:
        return
    show_message(ui, key, language, **kwargs)


def emit_print(
    ui: TerminalUI,
    message: Text | str,
    quiet: bool,
    *,
    error: bool = False,
) -> None:
    if quiet and not error:
        return
    ui.print(message)


class LocalizedArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that uses localized usage and error messages."""

    def __init__(self, *args, **kwargs) -> None:
        self._messages = kwargs.pop("messages", {})
        super().__init__(*args, **kwargs)

    def _render_usage(self) -> Optional[str]:
        template = self.usage or self._messages.get("cli_usage")
        if not template:
            return None
        try:
            body = template % {"prog": self.prog}
        except (KeyError, TypeError, ValueError):
            body = template
        prefix = self._messages.get("cli_usage_prefix")
        if prefix:
            return f"{prefix} {body}"
        return body

    def format_usage(self) -> str:
        rendered = self._render_usage()
        if rendered is not None:
            if not rendered.endswith("\n"):
                rendered += "\n"
            return rendered
        return super().format_usage()

    def print_usage(self, file=None) -> None:
        if file is None:
            file = sys.stderr
        self._print_message(self.format_usage(), file)

    def format_help(self) -> str:
        help_text = super().format_help()
        prefix = self._messages.get("cli_usage_prefix")
        if prefix and prefix != "usage:":
            help_text = help_text.replace("usage:", prefix, 1)
        help_text = re.sub(r"^\s+\{[^}]+}\n", "", help_text, flags=re.MULTILINE)
        return help_text

    def error(self, message: str) -> None:  # noqa: D401 - match argparse signature
        self.print_usage(sys.stderr)
        template = self._messages.get("cli_error", "Error: {error}")
        self.exit(2, template.format(error=message) + "\n")


def parse_target_spec(raw: str, default_port: int) -> Optional[dict[str, object]]:
    """Validate `host`, `host:port` or `[IPv6]:port` input."""

    text = raw.strip()
    if not text:
        return None
    port = default_port
    if text.startswith("["):
        closing = text.find("]")
        if closing == -1:
            return None
        host = text[1:closing].strip()
        remainder = text[closing + 1 :].strip()
        if remainder:
            if not remainder.startswith(":") or not remainder[1:].strip().isdigit():
                return None
            port = int(remainder[1:].strip())
        try:
            host = ipaddress.ip_address(host).compressed
        except ValueError:
            return None
    elif text.count(":") > 1:
        # Bare IPv6 address without a port.
        try:
            host = ipaddress.ip_address(text).compressed
        except ValueError:
            return None
    elif ":" in text:
        host, port_text = (part.strip() for part in text.rsplit(":", 1))
        if not host or not port_text.isdigit():
            return None
        port = int(port_text)
    else:
        host = text
    if not (1 <= port <= 65535):
        return None
    return {"host": host, "port": port, "display": text}


def _debug_requested(flag: bool) -> bool:
    if flag:
        return True
    return os.getenv(DEBUG_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def initialize_application(debug: bool) -> tuple[AppConfig, TerminalUI, str]:
    config = load_config()
    language = config.language if config.language in LANGUAGES else "en"
    ui = TerminalUI()
    configure_logging(debug)
    return config, ui, language


def run_send_command(
    target: str,
    file_path_arg: str,
    *,
    quiet: bool = False,
    debug: bool = False,
) -> int:
    config, ui, language = initialize_application(debug)

    file_path = Path(file_path_arg).expanduser()
    if not file_path.is_file():
        emit_message(ui, language, "send_path_invalid", quiet, error=True, path=str(file_path))
        return 1

    target_info = parse_target_spec(target, config.transfer_port or DEFAULT_TRANSFER_PORT)
    if target_info is None:
        emit_message(ui, language, "send_target_invalid", quiet, error=True, target=target)
        return 1
    host = str(target_info["host"])
    port = int(target_info["port"])  # type: ignore[arg-type]

    emit_message(ui, language, "send_connecting", quiet, target=target_info["display"])
    try:
        channel = SocketChannel.connect(host, port, max_payload_size=config.max_payload_size)
    except ChannelError as exc:
        emit_print(
            ui,
            render_message("send_connect_failed", language, target=target_info["display"], error=exc),
            quiet,
            error=True,
        )
        return 1

    def report_status(text: str) -> None:
        emit_print(ui, text, quiet, error=coordinator.send_state is SendState.SEND_FAILED)

    coordinator = TransferCoordinator(
        language=language,
        max_payload_size=config.max_payload_size,
        on_status_changed=report_status,
    )
    with channel, coordinator:
        coordinator.attach(channel)
        pending = PendingFile.from_path(file_path)
        emit_message(
            ui,
            language,
            "send_selected",
            quiet,
            name=pending.name,
            size=format_size(file_path.stat().st_size),
        )
        emit_message(ui, language, "security_notice", quiet)
        coordinator.select_file(pending)
        sent = coordinator.request_send()

    if not sent:
        return 1
    emit_message(ui, language, "send_digest", quiet, digest=compute_file_sha256(file_path))
    return 0


def run_receive_command(
    port_arg: Optional[str],
    dir_arg: Optional[str],
    *,
    once: bool = False,
    quiet: bool = False,
    debug: bool = False,
) -> int:
    config, ui, language = initialize_application(debug)

    if port_arg is not None:
        try:
            port = int(port_arg)
        except ValueError:
            emit_message(ui, language, "settings_port_invalid", quiet, error=True)
            return 1
        if not (0 <= port <= 65535):
            emit_message(ui, language, "settings_port_invalid", quiet, error=True)
            return 1
    else:
        port = config.transfer_port or DEFAULT_TRANSFER_PORT

    try:
        if dir_arg:
            destination = Path(dir_arg).expanduser()
            if not destination.is_absolute():
                destination = (Path.cwd() / destination).resolve()
            destination.mkdir(parents=True, exist_ok=True)
        else:
            destination = resolve_download_dir(config)
    except OSError as exc:
        emit_print(ui, render_message("receive_dir_error", language, error=exc), quiet, error=True)
        return 1
    emit_message(ui, language, "receive_dir_set", quiet, path=str(destination))

    got_file = threading.Event()

    def on_file_ready(_: ReceivedFile) -> None:
        received = coordinator.export_received()
        if received is None:
            return
        try:
            saved = save_received_file(received, destination)
        except OSError as exc:
            emit_print(
                ui,
                render_message("receive_save_failed", language, name=received.name, error=exc),
                quiet,
                error=True,
            )
            return
        emit_message(
            ui,
            language,
            "receive_saved",
            quiet,
            name=received.name,
            size=format_size(received.size),
            path=str(saved),
        )
        got_file.set()

    def report_status(text: str) -> None:
        failed = coordinator.receive_state is ReceiveState.RECEIVE_FAILED
        emit_print(ui, text, quiet, error=failed)

    coordinator = TransferCoordinator(
        language=language,
        max_payload_size=config.max_payload_size,
        on_status_changed=report_status,
        on_file_ready=on_file_ready,
    )

    def announce(bound_port: int) -> None:
        emit_message(ui, language, "receive_waiting", quiet, port=bound_port)

    try:
        with coordinator:
            while True:
                try:
                    channel = SocketChannel.listen(
                        port, on_bound=announce, max_payload_size=config.max_payload_size
                    )
                except ChannelError as exc:
                    emit_print(ui, render_message("cli_error", language, error=exc), quiet, error=True)
                    return 1
                with channel:
                    address = channel.peer_address[0] if channel.peer_address else "?"
                    emit_message(ui, language, "receive_peer_connected", quiet, address=address)
                    coordinator.attach(channel)
                    while not channel.wait_closed(0.5):
                        if once and got_file.is_set():
                            break
                    coordinator.detach()
                if once and got_file.is_set():
                    return 0
                emit_message(ui, language, "receive_peer_closed", quiet)
    except KeyboardInterrupt:
        ui.blank()
        emit_message(ui, language, "receive_shutdown", quiet)
    return 0


def run_settings_command(
    language_arg: Optional[str],
    max_size_arg: Optional[str],
    *,
    quiet: bool = False,
    debug: bool = False,
) -> int:
    config, ui, language = initialize_application(debug)
    changed = False

    if language_arg is not None:
        code = language_arg.strip().lower()
        if code not in LANGUAGES:
            emit_message(
                ui,
                language,
                "settings_language_invalid",
                quiet,
                error=True,
                value=language_arg,
                choices=", ".join(sorted(LANGUAGES)),
            )
            return 1
        config.language = code
        language = code
        changed = True
        emit_message(ui, language, "settings_language_updated", quiet, language_name=LANGUAGES[code])

    if max_size_arg is not None:
        try:
            max_size = parse_size(max_size_arg)
        except ValueError:
            emit_message(ui, language, "settings_max_size_invalid", quiet, error=True)
            return 1
        config.max_payload_size = max_size
        changed = True
        emit_message(ui, language, "settings_max_size_updated", quiet, size=format_size(max_size))

    if not changed:
        emit_message(ui, language, "settings_unchanged", quiet)
        return 0
    save_config(config)
    return 0


def _add_help(parser: argparse.ArgumentParser, language: str) -> None:
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        help=get_message("cli_help_help", language),
    )


def _add_subparser(
    subparsers,
    name: str,
    help_key: str,
    language: str,
    parent_prog: str,
) -> argparse.ArgumentParser:
    subparser = subparsers.add_parser(
        name,
        help=get_message(help_key, language),
        description=get_message(help_key, language),
        add_help=False,
        messages=MESSAGES.get(language, MESSAGES["en"]),
    )
    subparser.prog = f"{parent_prog} {name}"
    subparser._positionals.title = get_message("cli_positionals_title", language)
    subparser._optionals.title = get_message("cli_optionals_title", language)
    _add_help(subparser, language)
    return subparser


def build_parser(language: str) -> argparse.ArgumentParser:
    language_messages = MESSAGES.get(language, MESSAGES["en"])
    parser = LocalizedArgumentParser(
        prog="sealdrop",
        description=get_message("cli_description", language),
        add_help=False,
        messages=language_messages,
    )
    parser.usage = get_message("cli_usage", language)
    parser._positionals.title = get_message("cli_positionals_title", language)
    parser._optionals.title = get_message("cli_optionals_title", language)
    _add_help(parser, language)
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help=get_message("cli_version_help", language),
        version=get_message("cli_version_output", language, version=__version__),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help=get_message("cli_debug_help", language),
    )
    subparsers = parser.add_subparsers(
        dest="command",
        title=get_message("cli_commands_title", language),
        parser_class=LocalizedArgumentParser,
    )
    subparsers.metavar = None

    send_parser = _add_subparser(subparsers, "send", "cli_send_help", language, parser.prog)
    send_parser.usage = get_message("cli_send_usage", language)
    send_parser.add_argument("target", help=get_message("cli_send_target_help", language))
    send_parser.add_argument("path", help=get_message("cli_send_path_help", language))
    send_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help=get_message("cli_quiet_help", language),
    )

    receive_parser = _add_subparser(subparsers, "receive", "cli_receive_help", language, parser.prog)
    receive_parser.add_argument("--port", help=get_message("cli_receive_port_help", language))
    receive_parser.add_argument("--dir", help=get_message("cli_receive_dir_help", language))
    receive_parser.add_argument(
        "--once",
        action="store_true",
        help=get_message("cli_receive_once_help", language),
    )
    receive_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help=get_message("cli_quiet_help", language),
    )

    settings_parser = _add_subparser(subparsers, "settings", "cli_settings_help", language, parser.prog)
    settings_parser.add_argument(
        "--language",
        help=get_message("cli_settings_language_help", language),
    )
    settings_parser.add_argument(
        "--max-size",
        help=get_message("cli_settings_max_size_help", language),
    )
    settings_parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help=get_message("cli_quiet_help", language),
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    arguments = sys.argv[1:] if argv is None else argv
    config = load_config()
    language = config.language if config.language in LANGUAGES else "en"
    parser = build_parser(language)
    args = parser.parse_args(arguments)
    debug = _debug_requested(bool(getattr(args, "debug", False)))
    quiet = bool(getattr(args, "quiet", False))
    command = getattr(args, "command", None)
    if command == "send":
        return run_send_command(args.target, args.path, quiet=quiet, debug=debug)
    if command == "receive":
        return run_receive_command(
            getattr(args, "port", None),
            getattr(args, "dir", None),
            once=bool(getattr(args, "once", False)),
            quiet=quiet,
            debug=debug,
        )
    if command == "settings":
        return run_settings_command(
            getattr(args, "language", None),
            getattr(args, "max_size", None),
            quiet=quiet,
            debug=debug,
        )
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
