from __future__ import annotations

import json
from pathlib import Path

import pytest

import sealdrop.config as config_module
from sealdrop.config import AppConfig
from sealdrop.security import DEFAULT_MAX_PAYLOAD_SIZE


def _patch_config_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    config_file = tmp_path / "config.json"
    monkeypatch.setattr(config_module, "CONFIG_DIR", tmp_path)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_file)
    return config_file


def test_load_config_missing_file_returns_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _patch_config_paths(monkeypatch, tmp_path)

    config = config_module.load_config()

    assert config == AppConfig()
    assert config.max_payload_size == DEFAULT_MAX_PAYLOAD_SIZE


def test_load_config_coerces_fields(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_file = _patch_config_paths(monkeypatch, tmp_path)
    payload = {
        "language": "zh",
        "transfer_port": 99999,  # invalid -> None
        "max_payload_size": -5,  # invalid -> default
        "download_dir": str(tmp_path / "Downloads"),
    }
    config_file.write_text(json.dumps(payload), encoding="utf-8")

    config = config_module.load_config()

    assert config.language == "zh"
    assert config.transfer_port is None
    assert config.max_payload_size == DEFAULT_MAX_PAYLOAD_SIZE
    assert config.download_dir == str(tmp_path / "Downloads")


def test_load_config_rejects_boolean_numbers(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_file = _patch_config_paths(monkeypatch, tmp_path)
    config_file.write_text(json.dumps({"transfer_port": True, "max_payload_size": True}), encoding="utf-8")

    config = config_module.load_config()

    assert config.transfer_port is None
    assert config.max_payload_size == DEFAULT_MAX_PAYLOAD_SIZE


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_load_config_ignores_unusable_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, content: str
) -> None:
    config_file = _patch_config_paths(monkeypatch, tmp_path)
    config_file.write_text(content, encoding="utf-8")

    assert config_module.load_config() == AppConfig()


def test_save_config_writes_json(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_file = _patch_config_paths(monkeypatch, tmp_path)
    config = AppConfig(language="zh", transfer_port=5000, max_payload_size=1024)

    config_module.save_config(config)

    saved = json.loads(config_file.read_text(encoding="utf-8"))
    assert saved["language"] == "zh"
    assert saved["transfer_port"] == 5000
    assert saved["max_payload_size"] == 1024
    assert config_module.load_config() == config


def test_resolve_download_dir_success(tmp_path: Path) -> None:
    target = tmp_path / "incoming"
    config = AppConfig(download_dir=str(target))

    resolved = config_module.resolve_download_dir(config)

    assert resolved == target
    assert target.exists()


def test_resolve_download_dir_fallback(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    fallback = tmp_path / "fallback"
    fallback.mkdir()
    monkeypatch.setattr(config_module, "ensure_download_dir", lambda: fallback)
    occupied = tmp_path / "file"
    occupied.write_text("busy", encoding="utf-8")
    config = AppConfig(download_dir=str(occupied))

    resolved = config_module.resolve_download_dir(config)

    assert resolved == fallback
    assert config.download_dir is None  # invalid path cleared
