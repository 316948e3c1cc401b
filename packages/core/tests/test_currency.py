"""Tests for converting candidates into the wallet currency."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import pytest
from ledgersync_core import (
    CurrencyConverter,
    CurrencyRateInvalid,
    CurrencyRateUnavailable,
    EngineSettings,
    ImportService,
    StaticFxRateProvider,
)
from ledgersync_schemas import CandidateTransaction, ManualRate, Wallet

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _converter(**kwargs: object) -> CurrencyConverter:
    return CurrencyConverter(clock=lambda: NOW, **kwargs)  # type: ignore[arg-type]


def test_manual_rate_converts_and_records_metadata(
    make_candidate: Callable[..., CandidateTransaction],
) -> None:
    candidates = [
        make_candidate(1, -100_000, currency="USD"),
        make_candidate(2, -50_000, currency="USD"),
        make_candidate(3, -20_000_000, currency="VND"),
    ]
    rates = {"usd": ManualRate(rate=Decimal("25400"), rate_date=1718000000)}

    converted, conversions = _converter().convert(candidates, rates, wallet_currency="VND")

    first = converted[0]
    assert first.amount == -2_540_000_000
    assert first.currency == "VND"
    assert (first.original_amount, first.original_currency) == (-100_000, "USD")
    assert first.exchange_rate == Decimal("25400")
    assert first.exchange_rate_source == "manual"
    assert first.exchange_rate_date == 1718000000
    assert converted[2] == candidates[2]

    (conversion,) = conversions
    assert conversion.from_currency == "USD"
    assert conversion.transaction_count == 2
    assert conversion.total_original == -150_000
    assert conversion.total_converted == -3_810_000_000


def test_reconverting_starts_from_original_amount(
    make_candidate: Callable[..., CandidateTransaction],
) -> None:
    converter = _converter()
    candidates = [make_candidate(1, -100_000, currency="USD")]

    once, _ = converter.convert(
        candidates, {"USD": ManualRate(rate=Decimal("25000"))}, wallet_currency="VND"
    )
    twice, _ = converter.convert(
        once, {"USD": ManualRate(rate=Decimal("26000"))}, wallet_currency="VND"
    )

    assert twice[0].amount == -2_600_000_000
    assert twice[0].original_amount == -100_000


def test_provider_rate_is_used_before_fallback(
    make_candidate: Callable[..., CandidateTransaction],
) -> None:
    converter = _converter(fx_provider=StaticFxRateProvider({"EUR:VND": "27000"}))

    converted, conversions = converter.convert(
        [make_candidate(1, 10_000, currency="EUR")], wallet_currency="VND"
    )

    assert converted[0].amount == 270_000_000
    assert conversions[0].rate_source == "auto"


class _SourcedProvider:
    def __init__(self, source: str) -> None:
        self.source = source

    def get_rate(
        self, from_currency: str, to_currency: str, on: datetime
    ) -> tuple[Decimal, str]:
        return Decimal("27000"), self.source


@pytest.mark.parametrize(
    ("reported", "recorded"),
    [("manual", "manual"), ("fallback", "fallback"), ("ecb-daily", "auto")],
)
def test_provider_source_is_kept_when_known(
    reported: str, recorded: str, make_candidate: Callable[..., CandidateTransaction]
) -> None:
    converter = _converter(fx_provider=_SourcedProvider(reported))

    converted, conversions = converter.convert(
        [make_candidate(1, 10_000, currency="EUR")], wallet_currency="VND"
    )

    assert conversions[0].rate_source == recorded
    assert converted[0].exchange_rate_source == recorded


def test_fallback_rate_applies_when_provider_has_nothing(
    make_candidate: Callable[..., CandidateTransaction],
) -> None:
    converted, conversions = _converter().convert(
        [make_candidate(1, 10_000, currency="USD")], wallet_currency="VND"
    )

    assert converted[0].amount == 250_000_000
    assert conversions[0].rate_source == "fallback"


def test_missing_rate_raises(make_candidate: Callable[..., CandidateTransaction]) -> None:
    converter = _converter(settings=EngineSettings(fallback_rates={}))

    with pytest.raises(CurrencyRateUnavailable):
        converter.convert([make_candidate(1, 10_000, currency="USD")], wallet_currency="VND")


@pytest.mark.parametrize("rate", ["0", "-1"])
def test_non_positive_manual_rate_is_rejected(
    rate: str, make_candidate: Callable[..., CandidateTransaction]
) -> None:
    candidates = [make_candidate(1, 10_000, currency="USD")]

    with pytest.raises(CurrencyRateInvalid):
        _converter().convert(
            candidates, {"USD": ManualRate(rate=Decimal(rate))}, wallet_currency="VND"
        )


def test_service_converts_into_wallet_currency(
    service: ImportService, make_candidate: Callable[..., CandidateTransaction]
) -> None:
    usd_wallet: Wallet = service.create_wallet("Travel", "usd")
    candidates = [make_candidate(1, -250_000_000, currency="VND")]

    converted, _ = service.convert_currency(
        candidates, {"VND": ManualRate(rate=Decimal("0.00004"))}, usd_wallet.id
    )

    assert converted[0].currency == "USD"
    assert converted[0].amount == -10_000
