"""
Configuration persistence for Sealdrop CLI.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from .security import DEFAULT_MAX_PAYLOAD_SIZE
from .utils import ensure_download_dir

CONFIG_DIR = Path.home() / ".sealdrop"
CONFIG_FILE = CONFIG_DIR / "config.json"


@dataclass
class AppConfig:
    language: Optional[str] = None
    transfer_port: Optional[int] = None
    max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE
    download_dir: Optional[str] = None


def load_config() -> AppConfig:
    if not CONFIG_FILE.exists():
        return AppConfig()
    try:
        with CONFIG_FILE.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (ValueError, OSError):
        return AppConfig()
    if not isinstance(data, dict):
        return AppConfig()

    language = data.get("language")
    if not isinstance(language, str) or not language.strip():
        language = None

    port_value = data.get("transfer_port")
    transfer_port = (
        port_value
        if isinstance(port_value, int) and not isinstance(port_value, bool) and 1 <= port_value <= 65535
        else None
    )

    size_value = data.get("max_payload_size")
    max_payload_size = (
        size_value
        if isinstance(size_value, int) and not isinstance(size_value, bool) and size_value > 0
        else DEFAULT_MAX_PAYLOAD_SIZE
    )

    download_raw = data.get("download_dir")
    download_dir: Optional[str]
    if isinstance(download_raw, str) and download_raw.strip():
        expanded = Path(download_raw).expanduser()
        if not expanded.is_absolute():
            expanded = Path.home() / expanded
        download_dir = str(expanded)
    else:
        download_dir = None

    return AppConfig(
        language=language,
        transfer_port=transfer_port,
        max_payload_size=max_payload_size,
        download_dir=download_dir,
    )


def save_config(config: AppConfig) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    payload = asdict(config)
    with CONFIG_FILE.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)


def resolve_download_dir(config: AppConfig) -> Path:
    """Return the effective download directory, creating it if necessary."""

    candidate = config.download_dir
    if candidate:
        path = Path(candidate).expanduser()
        if not path.is_absolute():
            path = Path.home() / path
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError:
            config.download_dir = None
            return ensure_download_dir()
        return path
    return ensure_download_dir()
