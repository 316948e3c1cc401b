"""Helpers for locating ledger workspace files."""

from __future__ import annotations

from pathlib import Path


def ledger_root(data_root: Path) -> Path:
    data_root.mkdir(parents=True, exist_ok=True)
    return data_root


def ledger_db_path(data_root: Path) -> Path:
    return ledger_root(data_root) / "ledger.db"


def rules_path(data_root: Path) -> Path:
    path = ledger_root(data_root) / "rules"
    path.mkdir(parents=True, exist_ok=True)
    return path / "categories.yaml"
