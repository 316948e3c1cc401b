"""Tests for settings loading and workspace helpers."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from ledgersync_core import (
    EngineSettings,
    build_service,
    ledger_db_path,
    load_settings,
    rules_path,
)
from pydantic import ValidationError


def test_defaults_without_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LEDGERSYNC_CONFIG", raising=False)
    monkeypatch.delenv("LEDGERSYNC_DATA_ROOT", raising=False)

    settings = load_settings()

    assert settings.undo_window_hours == 24
    assert settings.category_confidence_threshold == 80
    assert settings.fallback_rate("USD", "VND") == Decimal("25000")
    assert settings.fallback_rate("VND", "XYZ") is None


def test_yaml_file_and_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "ledgersync.yaml"
    config.write_text(
        "undo_window_hours: 48\nfallback_rates:\n  USD:VND: '24000'\n", encoding="utf-8"
    )
    monkeypatch.setenv("LEDGERSYNC_CONFIG", str(config))
    monkeypatch.setenv("LEDGERSYNC_DATA_ROOT", str(tmp_path / "data"))

    settings = load_settings()

    assert settings.undo_window_hours == 48
    assert settings.fallback_rate("USD", "VND") == Decimal("24000")
    assert settings.data_root == tmp_path / "data"


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    config = tmp_path / "bad.yaml"
    config.write_text("undo_hours: 1\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_settings(config)


def test_workspace_paths_and_service_factory(tmp_path: Path) -> None:
    settings = EngineSettings(data_root=tmp_path / "ledgers")

    service = build_service(settings)

    assert ledger_db_path(settings.data_root) == tmp_path / "ledgers" / "ledger.db"
    assert rules_path(settings.data_root).parent.is_dir()
    assert service.store.db_path.exists()
    assert service.create_wallet("Cash").currency == "VND"
