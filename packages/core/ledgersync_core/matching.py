"""Duplicate detection and confidence scoring against the existing ledger."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from ledgersync_schemas import CandidateTransaction, DuplicateMatch, LedgerTransaction
from rapidfuzz import fuzz, utils

from .config import EngineSettings
from .ledger import LedgerSession, LedgerStore
from .logging_setup import get_logger
from .money import format_minor

logger = get_logger(__name__)

_SECONDS_PER_DAY = 86_400

_EXACT_CONFIDENCE = 99
_STRONG_MIN_SIMILARITY = 80.0
_LIKELY_MIN_SIMILARITY = 60.0
_POSSIBLE_MIN_MERCHANT = 70.0

_REF_PARENS_RE = re.compile(r"\(Ref:\s*([^)]+)\)")
_REF_PIPE_RE = re.compile(r"\|\s*Ref:\s*(.+)$")
_DOMAIN_SUFFIX_RE = re.compile(r"\.(COM|VN|NET|ORG)$")
_NUMERIC_RE = re.compile(r"^\d+$")

_MERCHANT_PREFIXES: tuple[str, ...] = (
    "PAYMENT TO ",
    "PURCHASE AT ",
    "PURCHASE FROM ",
    "PAYMENT FOR ",
    "PAYMENT ",
    "PURCHASE ",
)
_LOCATION_WORDS = frozenset(
    {
        "HA",
        "NOI",
        "HANOI",
        "SAIGON",
        "HCM",
        "HCMC",
        "DA",
        "NANG",
        "DANANG",
        "STORE",
        "BRANCH",
        "LOCATION",
    }
)


def similarity(left: str, right: str) -> float:
    """Return a 0-100 similarity score for two descriptions."""
    if not left or not right:
        return 0.0
    return float(fuzz.ratio(left, right, processor=utils.default_process))


def extract_reference(note: str) -> str:
    for pattern in (_REF_PARENS_RE, _REF_PIPE_RE):
        found = pattern.search(note)
        if found:
            return found.group(1).strip()
    return ""


def extract_merchant(description: str) -> str:
    """Best-effort merchant name: the first words before a location or number."""
    desc = description.strip().upper()
    for prefix in _MERCHANT_PREFIXES:
        if desc.startswith(prefix):
            desc = desc[len(prefix) :]
            break
    desc = _DOMAIN_SUFFIX_RE.sub("", desc)
    words = desc.split()
    if not words:
        return desc
    merchant: list[str] = []
    for word in words[:3]:
        if word in _LOCATION_WORDS or _NUMERIC_RE.match(word):
            break
        merchant.append(word)
    return " ".join(merchant) if merchant else words[0]


def _calendar_day(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True, slots=True)
class _Score:
    confidence: int
    reason: str


class DuplicateMatcher:
    """Score candidates against ledger rows of the same wallet.

    Each candidate is compared with every ledger row in a date window around
    it and the best tier that applies is kept; only the highest-confidence
    existing transaction is reported per candidate.
    """

    def __init__(self, store: LedgerStore, settings: Optional[EngineSettings] = None) -> None:
        self._store = store
        self.settings = settings or EngineSettings()

    def detect_duplicates(
        self,
        candidates: Sequence[CandidateTransaction],
        wallet_id: int,
        session: Optional[LedgerSession] = None,
    ) -> list[DuplicateMatch]:
        valid = [candidate for candidate in candidates if candidate.is_valid]
        if not valid:
            return []
        if session is None:
            with self._store.snapshot() as snapshot:
                existing = self._load_window(snapshot, valid, wallet_id)
        else:
            existing = self._load_window(session, valid, wallet_id)
        matches = self.match(valid, existing)
        logger.info(
            "Duplicate scan finished",
            extra={
                "wallet_id": wallet_id,
                "candidates": len(valid),
                "existing": len(existing),
                "matches": len(matches),
            },
        )
        return matches

    def match(
        self,
        candidates: Sequence[CandidateTransaction],
        existing: Sequence[LedgerTransaction],
    ) -> list[DuplicateMatch]:
        """Score ``candidates`` against an already loaded ledger snapshot."""
        if not existing:
            return []
        matches: list[DuplicateMatch] = []
        for candidate in candidates:
            if not candidate.is_valid:
                continue
            best = self._best_match(candidate, existing)
            if best is not None:
                matches.append(best)
        return matches

    def _load_window(
        self,
        session: LedgerSession,
        candidates: Sequence[CandidateTransaction],
        wallet_id: int,
    ) -> list[LedgerTransaction]:
        padding = self.settings.duplicate_window_days * _SECONDS_PER_DAY
        start = min(candidate.date for candidate in candidates) - padding
        end = max(candidate.date for candidate in candidates) + padding
        return session.find_transactions(wallet_id, start, end)

    def _best_match(
        self,
        candidate: CandidateTransaction,
        existing: Sequence[LedgerTransaction],
    ) -> DuplicateMatch | None:
        best: DuplicateMatch | None = None
        for transaction in existing:
            score = self._score(candidate, transaction)
            if score is None or score.confidence < self.settings.min_duplicate_confidence:
                continue
            if best is None or score.confidence > best.confidence:
                best = DuplicateMatch(
                    candidate_row_number=candidate.row_number,
                    existing_transaction_id=transaction.id,
                    confidence=score.confidence,
                    match_reason=score.reason,
                )
        return best

    def _score(
        self, candidate: CandidateTransaction, existing: LedgerTransaction
    ) -> _Score | None:
        days_apart = abs(candidate.date - existing.date) / _SECONDS_PER_DAY
        if days_apart > self.settings.duplicate_window_days:
            return None
        return (
            self._exact(candidate, existing)
            or self._strong(candidate, existing, days_apart)
            or self._likely(candidate, existing, days_apart)
            or self._possible(candidate, existing, days_apart)
        )

    @staticmethod
    def _exact(candidate: CandidateTransaction, existing: LedgerTransaction) -> _Score | None:
        if existing.amount != candidate.amount or not candidate.reference_number:
            return None
        if _calendar_day(existing.date) != _calendar_day(candidate.date):
            return None
        existing_ref = existing.reference_number or extract_reference(existing.note)
        # Reference numbers are case-sensitive.
        if existing_ref and existing_ref == candidate.reference_number:
            return _Score(
                _EXACT_CONFIDENCE, "Exact match: same amount, date, and reference number"
            )
        return None

    @staticmethod
    def _strong(
        candidate: CandidateTransaction, existing: LedgerTransaction, days_apart: float
    ) -> _Score | None:
        if existing.amount != candidate.amount or days_apart > 1.0:
            return None
        score = similarity(existing.note, candidate.description)
        if score < _STRONG_MIN_SIMILARITY:
            return None
        confidence = min(95, max(90, 90 + int((score - 80.0) / 20.0 * 5.0)))
        return _Score(
            confidence,
            f"Strong match: same amount ({format_minor(abs(candidate.amount))}), "
            f"date within 1 day, {score:.0f}% description match",
        )

    @staticmethod
    def _likely(
        candidate: CandidateTransaction, existing: LedgerTransaction, days_apart: float
    ) -> _Score | None:
        if candidate.amount == 0 or days_apart > 3.0:
            return None
        amount_diff = abs(existing.amount - candidate.amount) / abs(candidate.amount)
        if amount_diff > 0.05:
            return None
        score = similarity(existing.note, candidate.description)
        if score < _LIKELY_MIN_SIMILARITY:
            return None
        raw = (
            70.0
            + (score - 60.0) / 40.0 * 10.0
            + (3.0 - days_apart) / 3.0 * 3.0
            + (0.05 - amount_diff) / 0.05 * 2.0
        )
        return _Score(
            min(85, max(70, int(raw))),
            f"Likely match: amount within 5%, date within 3 days, "
            f"{score:.0f}% description match",
        )

    @staticmethod
    def _possible(
        candidate: CandidateTransaction, existing: LedgerTransaction, days_apart: float
    ) -> _Score | None:
        if candidate.amount == 0 or days_apart > 7.0:
            return None
        amount_diff = abs(existing.amount - candidate.amount) / abs(candidate.amount)
        if amount_diff > 0.10:
            return None
        merchant_score = similarity(
            extract_merchant(existing.note), extract_merchant(candidate.description)
        )
        if merchant_score < _POSSIBLE_MIN_MERCHANT:
            return None
        raw = (
            50.0
            + (merchant_score - 70.0) / 30.0 * 10.0
            + (7.0 - days_apart) / 7.0 * 3.0
            + (0.10 - amount_diff) / 0.10 * 2.0
        )
        return _Score(
            min(65, max(50, int(raw))),
            f"Possible match: amount within 10%, date within 7 days, "
            f"merchant match ({merchant_score:.0f}%)",
        )


__all__ = ["DuplicateMatcher", "extract_merchant", "extract_reference", "similarity"]
