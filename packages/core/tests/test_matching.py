"""Tests for duplicate detection and confidence scoring."""

from __future__ import annotations

from typing import Callable

from ledgersync_core import (
    DuplicateMatcher,
    EngineSettings,
    SqliteLedgerStore,
    extract_merchant,
    extract_reference,
    similarity,
)
from ledgersync_schemas import CandidateTransaction, RowValidationError, Wallet


def test_exact_match_needs_same_day_amount_and_reference(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    existing_id = seed_transaction(wallet.id, -500_000, "Card payment", reference="FT123")
    candidate = make_candidate(1, -500_000, "Something else entirely", reference="FT123")

    (match,) = DuplicateMatcher(store).detect_duplicates([candidate], wallet.id)

    assert match.existing_transaction_id == existing_id
    assert match.confidence == 99
    assert match.match_reason.startswith("Exact match")


def test_reference_is_read_from_legacy_notes(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -500_000, "Card payment (Ref: FT999)")
    candidate = make_candidate(1, -500_000, "Unrelated", reference="FT999")

    (match,) = DuplicateMatcher(store).detect_duplicates([candidate], wallet.id)

    assert match.confidence == 99


def test_strong_match_within_a_day(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -350_000, "Highlands Coffee Hanoi", day="2024-06-09")
    candidate = make_candidate(1, -350_000, "Highlands Coffee Hanoi")

    (match,) = DuplicateMatcher(store).detect_duplicates([candidate], wallet.id)

    assert match.confidence == 95
    assert match.match_reason.startswith("Strong match")


def test_likely_match_tolerates_small_amount_difference(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -1_000_000, "Electricity bill June", day="2024-06-08")
    candidate = make_candidate(1, -1_020_000, "Electricity bill June")

    (match,) = DuplicateMatcher(store).detect_duplicates([candidate], wallet.id)

    assert 70 <= match.confidence <= 85
    assert match.match_reason.startswith("Likely match")


def test_possible_match_uses_merchant_name(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -1_000_000, "PAYMENT TO SHOPEE HCM 88231", day="2024-06-05")
    candidate = make_candidate(1, -1_080_000, "Shopee Hanoi order")

    (match,) = DuplicateMatcher(store).detect_duplicates([candidate], wallet.id)

    assert 50 <= match.confidence <= 65
    assert match.match_reason.startswith("Possible match")


def test_rows_outside_window_or_other_wallets_are_ignored(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    other = store.create_wallet("Savings", "VND")
    seed_transaction(wallet.id, -350_000, "Highlands Coffee", day="2024-05-01")
    seed_transaction(other.id, -350_000, "Highlands Coffee")
    candidate = make_candidate(1, -350_000, "Highlands Coffee")

    assert DuplicateMatcher(store).detect_duplicates([candidate], wallet.id) == []


def test_only_best_match_is_reported(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -350_000, "Highlands Coffee", day="2024-06-08")
    best_id = seed_transaction(wallet.id, -350_000, "Highlands Coffee", reference="R1")
    candidate = make_candidate(1, -350_000, "Highlands Coffee", reference="R1")

    matches = DuplicateMatcher(store).detect_duplicates([candidate], wallet.id)

    assert [m.existing_transaction_id for m in matches] == [best_id]


def test_invalid_candidates_are_not_scanned(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -350_000, "Highlands Coffee")
    candidate = make_candidate(1, -350_000, "Highlands Coffee").model_copy(
        update={"validation_errors": [RowValidationError(field="date", message="bad")]}
    )

    assert DuplicateMatcher(store).detect_duplicates([candidate], wallet.id) == []


def test_minimum_confidence_is_configurable(
    store: SqliteLedgerStore,
    wallet: Wallet,
    make_candidate: Callable[..., CandidateTransaction],
    seed_transaction: Callable[..., int],
) -> None:
    seed_transaction(wallet.id, -1_000_000, "Electricity bill June", day="2024-06-08")
    candidate = make_candidate(1, -1_020_000, "Electricity bill June")
    matcher = DuplicateMatcher(store, EngineSettings(min_duplicate_confidence=90))

    assert matcher.detect_duplicates([candidate], wallet.id) == []


def test_description_helpers() -> None:
    assert similarity("Highlands Coffee", "HIGHLANDS COFFEE") == 100.0
    assert similarity("", "anything") == 0.0
    assert extract_reference("Grab ride | Ref: AB-77") == "AB-77"
    assert extract_reference("no reference") == ""
    assert extract_merchant("PAYMENT TO SHOPEE HCM 88231") == "SHOPEE"
    assert extract_merchant("Purchase at Circle K Store") == "CIRCLE K"
