"""
Utility helpers for Sealdrop.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

SIZE_SUFFIXES = ["B", "KB", "MB", "GB", "TB", "PB"]

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)(?:I?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}


def ensure_download_dir() -> Path:
    """
    Ensure and return the default download directory for incoming files.
    """

    home = Path.home()
    if os.name == "nt":
        downloads_root = home / "Downloads"
        downloads_root.mkdir(parents=True, exist_ok=True)
        download_dir = downloads_root / "SealdropDownloads"
    else:
        download_dir = home / "SealdropDownloads"
    download_dir.mkdir(parents=True, exist_ok=True)
    return download_dir


def format_size(num_bytes: int) -> str:
    """
    Convert a byte count into a human-friendly string, e.g. 1.25 MB.
    """

    value = float(max(0, num_bytes))
    for suffix in SIZE_SUFFIXES:
        if value < 1024.0 or suffix == SIZE_SUFFIXES[-1]:
            if suffix == "B":
                return f"{int(value)} {suffix}"
            return f"{value:.2f} {suffix}"
        value /= 1024.0
    return f"{value:.2f} {SIZE_SUFFIXES[-1]}"


def parse_size(raw: str) -> int:
    """
    Parse a byte count such as ``1048576``, ``512KB`` or ``2 GB``.

    Raises ValueError for anything that is not a positive size.
    """

    match = _SIZE_PATTERN.match(raw)
    if not match:
        raise ValueError(f"invalid size: {raw!r}")
    number, unit = match.groups()
    size = int(float(number) * _SIZE_UNITS[unit.upper()])
    if size <= 0:
        raise ValueError("size must be positive")
    return size
