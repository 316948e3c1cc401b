"""Engine settings loaded from YAML with environment overrides."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

CONFIG_ENV = "LEDGERSYNC_CONFIG"
DATA_ROOT_ENV = "LEDGERSYNC_DATA_ROOT"

# Mid-points of the sanity ranges used for FX validation.
_DEFAULT_FALLBACK_RATES: dict[str, Decimal] = {
    "USD:VND": Decimal("25000"),
    "VND:USD": Decimal("0.00004"),
    "EUR:VND": Decimal("30000"),
    "VND:EUR": Decimal("0.000034"),
    "GBP:VND": Decimal("35000"),
    "VND:GBP": Decimal("0.000029"),
    "EUR:USD": Decimal("1.1"),
    "USD:EUR": Decimal("0.9"),
    "GBP:USD": Decimal("1.3"),
    "USD:GBP": Decimal("0.77"),
    "USD:JPY": Decimal("150"),
    "JPY:USD": Decimal("0.0067"),
    "USD:CNY": Decimal("7.2"),
    "CNY:USD": Decimal("0.14"),
}


class EngineSettings(BaseModel):
    """Tunables for the reconciliation engine."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    data_root: Path = Path("data/ledgers")
    undo_window_hours: int = Field(default=24, gt=0)
    category_confidence_threshold: int = Field(default=80, ge=0, le=100)
    min_duplicate_confidence: int = Field(default=50, ge=0, le=100)
    duplicate_window_days: int = Field(default=7, ge=0)
    max_rows_per_import: int = Field(default=10_000, gt=0)
    old_date_threshold_days: int = Field(default=365, gt=0)
    # 1 billion at x10000 scale
    large_amount_threshold: int = 10_000_000_000_000
    default_wallet_currency: str = "VND"
    fallback_rates: dict[str, Decimal] = Field(
        default_factory=lambda: dict(_DEFAULT_FALLBACK_RATES)
    )

    def fallback_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        return self.fallback_rates.get(f"{from_currency}:{to_currency}")


def load_settings(path: Optional[Union[str, Path]] = None) -> EngineSettings:
    """Read settings from ``path`` (or ``$LEDGERSYNC_CONFIG``) and the environment."""
    raw: dict[str, object] = {}
    source = path or os.getenv(CONFIG_ENV)
    if source:
        config_path = Path(source)
        if config_path.exists():
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            if loaded:
                raw.update(loaded)
    data_root = os.getenv(DATA_ROOT_ENV)
    if data_root:
        raw["data_root"] = data_root
    return EngineSettings.model_validate(raw)


__all__ = ["EngineSettings", "load_settings"]
