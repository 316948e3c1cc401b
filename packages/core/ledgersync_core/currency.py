"""Convert candidates into the wallet currency."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Mapping, Optional, Protocol, Sequence, get_args

from ledgersync_schemas import CandidateTransaction, CurrencyConversion, ManualRate, RateSource

from .config import EngineSettings
from .errors import CurrencyRateInvalid, CurrencyRateUnavailable
from .logging_setup import get_logger
from .money import apply_rate

logger = get_logger(__name__)

Clock = Callable[[], datetime]

_RATE_SOURCES = frozenset(get_args(RateSource))


class FxRateProvider(Protocol):
    """Looks up ``(rate, source)`` for a pair on a date, or ``None``."""

    def get_rate(
        self, from_currency: str, to_currency: str, on: datetime
    ) -> Optional[tuple[Decimal, str]]: ...


class StaticFxRateProvider:
    """Rates from a fixed ``{"FROM:TO": rate}`` table."""

    def __init__(self, rates: Mapping[str, Decimal | float | str]) -> None:
        self._rates = {key.upper(): Decimal(str(value)) for key, value in rates.items()}

    def get_rate(
        self, from_currency: str, to_currency: str, on: datetime
    ) -> Optional[tuple[Decimal, str]]:
        rate = self._rates.get(f"{from_currency}:{to_currency}".upper())
        if rate is None:
            return None
        return rate, "auto"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _source_amount(candidate: CandidateTransaction) -> tuple[int, str]:
    if candidate.original_amount is not None and candidate.original_currency:
        return candidate.original_amount, candidate.original_currency
    return candidate.amount, candidate.currency


def _restore(candidate: CandidateTransaction, wallet_currency: str) -> CandidateTransaction:
    amount, currency = _source_amount(candidate)
    return candidate.model_copy(
        update={
            "amount": amount,
            "currency": currency or wallet_currency,
            "original_amount": None,
            "original_currency": None,
            "exchange_rate": None,
            "exchange_rate_source": None,
            "exchange_rate_date": None,
        }
    )


class CurrencyConverter:
    """Rewrite candidate amounts into the wallet currency.

    Amounts are always derived from the pre-conversion values kept on the
    candidate, so converting twice with different rates never compounds.
    """

    def __init__(
        self,
        fx_provider: Optional[FxRateProvider] = None,
        settings: Optional[EngineSettings] = None,
        *,
        clock: Clock = _utc_now,
    ) -> None:
        self._fx_provider = fx_provider
        self.settings = settings or EngineSettings()
        self._clock = clock

    def convert(
        self,
        candidates: Sequence[CandidateTransaction],
        manual_rates: Optional[Mapping[str, ManualRate]] = None,
        *,
        wallet_currency: str,
    ) -> tuple[list[CandidateTransaction], list[CurrencyConversion]]:
        manual_rates = {key.upper(): value for key, value in (manual_rates or {}).items()}
        for currency, manual in manual_rates.items():
            if manual.rate <= 0:
                raise CurrencyRateInvalid(
                    f"Manual rate for {currency} must be positive, got {manual.rate}"
                )

        groups: dict[str, list[CandidateTransaction]] = {}
        for candidate in candidates:
            _, currency = _source_amount(candidate)
            groups.setdefault(currency or wallet_currency, []).append(candidate)

        converted: dict[int, CandidateTransaction] = {}
        conversions: list[CurrencyConversion] = []
        for from_currency, members in groups.items():
            if from_currency == wallet_currency:
                for candidate in members:
                    converted[candidate.row_number] = _restore(candidate, wallet_currency)
                continue
            rate, source, rate_date = self._resolve_rate(
                from_currency, wallet_currency, manual_rates.get(from_currency)
            )
            total_original = 0
            total_converted = 0
            for candidate in members:
                original_amount, original_currency = _source_amount(candidate)
                amount = apply_rate(original_amount, rate)
                total_original += original_amount
                total_converted += amount
                converted[candidate.row_number] = candidate.model_copy(
                    update={
                        "amount": amount,
                        "currency": wallet_currency,
                        "original_amount": original_amount,
                        "original_currency": original_currency or from_currency,
                        "exchange_rate": rate,
                        "exchange_rate_source": source,
                        "exchange_rate_date": rate_date,
                    }
                )
            conversions.append(
                CurrencyConversion(
                    from_currency=from_currency,
                    to_currency=wallet_currency,
                    rate=rate,
                    rate_source=source,
                    rate_date=rate_date,
                    transaction_count=len(members),
                    total_original=total_original,
                    total_converted=total_converted,
                )
            )
            logger.info(
                "Converted currency group",
                extra={
                    "from_currency": from_currency,
                    "to_currency": wallet_currency,
                    "rate_source": source,
                    "transaction_count": len(members),
                },
            )
        return [converted[candidate.row_number] for candidate in candidates], conversions

    def _resolve_rate(
        self,
        from_currency: str,
        to_currency: str,
        manual: Optional[ManualRate],
    ) -> tuple[Decimal, RateSource, int]:
        now = self._clock()
        if manual is not None:
            return manual.rate, "manual", manual.rate_date or int(now.timestamp())
        if self._fx_provider is not None:
            found = self._fx_provider.get_rate(from_currency, to_currency, now)
            if found is not None and found[0] > 0:
                rate, source = found
                if source not in _RATE_SOURCES:
                    source = "auto"
                return rate, source, int(now.timestamp())
        fallback = self.settings.fallback_rate(from_currency, to_currency)
        if fallback is not None and fallback > 0:
            logger.warning(
                "Using fallback exchange rate",
                extra={"from_currency": from_currency, "to_currency": to_currency},
            )
            return fallback, "fallback", int(now.timestamp())
        raise CurrencyRateUnavailable(
            f"No exchange rate available for {from_currency} -> {to_currency}"
        )


__all__ = ["CurrencyConverter", "FxRateProvider", "StaticFxRateProvider"]
