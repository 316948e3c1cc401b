"""Partition candidates into review buckets."""

from __future__ import annotations

from typing import Iterable, Sequence

from ledgersync_schemas import (
    Bucket,
    CandidateTransaction,
    Classification,
    DuplicateAction,
    DuplicateMatch,
    DuplicateStrategy,
)

DEFAULT_CONFIDENCE_THRESHOLD = 80

# Strategies under which an unresolved duplicate still needs the reviewer's eye.
_DUPLICATE_BLOCKING = frozenset({DuplicateStrategy.REVIEW_EACH, DuplicateStrategy.SKIP_ALL})


def classify_candidate(
    candidate: CandidateTransaction,
    *,
    matched_rows: set[int],
    resolved_rows: set[int],
    strategy: DuplicateStrategy,
    confidence_threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
) -> Bucket:
    """Return the single bucket for ``candidate``.

    Validity dominates duplicate status, which dominates category status.
    """
    if not candidate.is_valid:
        return Bucket.ERRORS
    if (
        candidate.row_number in matched_rows
        and candidate.row_number not in resolved_rows
        and strategy in _DUPLICATE_BLOCKING
    ):
        return Bucket.DUPLICATES
    if not candidate.suggested_category_id or candidate.category_confidence < confidence_threshold:
        return Bucket.NEEDS_CATEGORY
    return Bucket.READY_TO_IMPORT


def classify(
    candidates: Sequence[CandidateTransaction],
    duplicate_matches: Iterable[DuplicateMatch],
    strategy: DuplicateStrategy,
    resolved_actions: Iterable[DuplicateAction] = (),
    *,
    confidence_threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
) -> Classification:
    """Classify every candidate from scratch; the input order is kept per bucket."""
    matched_rows = {match.candidate_row_number for match in duplicate_matches}
    resolved_rows = {action.candidate_row_number for action in resolved_actions}
    buckets: dict[Bucket, list[CandidateTransaction]] = {bucket: [] for bucket in Bucket}
    for candidate in candidates:
        bucket = classify_candidate(
            candidate,
            matched_rows=matched_rows,
            resolved_rows=resolved_rows,
            strategy=strategy,
            confidence_threshold=confidence_threshold,
        )
        buckets[bucket].append(candidate)
    return Classification(
        errors=buckets[Bucket.ERRORS],
        duplicates=buckets[Bucket.DUPLICATES],
        needs_category=buckets[Bucket.NEEDS_CATEGORY],
        ready_to_import=buckets[Bucket.READY_TO_IMPORT],
    )


__all__ = ["DEFAULT_CONFIDENCE_THRESHOLD", "classify", "classify_candidate"]
