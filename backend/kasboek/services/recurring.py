"""Recurring pattern detection.

Transactions are grouped by a normalised description plus an amount bucket
rounded to the nearest 10. Each group of two or more members is scored on
how regular its intervals and amounts are; groups scoring at least
MIN_CONFIDENCE share one RecurringPattern and one group id.
"""

import logging
import statistics
from collections import defaultdict
from dataclasses import dataclass
from datetime import date as _date, timedelta as _timedelta
from typing import Iterable, Optional

from ..schemas import RecurringPattern, Transaction
from .normalizer import normalize_description, round_half_up, short_hash

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

# (frequency, min mean gap in days, max mean gap in days), both inclusive
FREQUENCY_WINDOWS: list[tuple[str, float, float]] = [
    ("weekly", 5, 9),
    ("biweekly", 11, 17),
    ("monthly", 25, 35),
    ("quarterly", 85, 95),
    ("yearly", 350, 380),
]

MIN_OCCURRENCES = 2
MIN_CONFIDENCE = 50

_INTERVAL_CV_WEIGHT = 50
_AMOUNT_CV_WEIGHT = 30
_FULL_HISTORY = 5           # occurrences needed before the sparse-history penalty vanishes
_SPARSE_PENALTY = 10        # per missing occurrence


# ── Statistics ────────────────────────────────────────────────────────────────


def coefficient_of_variation(values: list[float]) -> float:
    """Population standard deviation over mean; 0 for a zero mean."""
    mean = statistics.fmean(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values) / mean


def classify_interval(mean_gap: float) -> Optional[str]:
    for frequency, low, high in FREQUENCY_WINDOWS:
        if low <= mean_gap <= high:
            return frequency
    return None


def score_pattern(interval_cv: float, amount_cv: float, occurrences: int) -> float:
    """Raw 0–100 regularity score; never rises as either CV grows."""
    score = (
        100
        - interval_cv * _INTERVAL_CV_WEIGHT
        - amount_cv * _AMOUNT_CV_WEIGHT
        - max(0, (_FULL_HISTORY - occurrences) * _SPARSE_PENALTY)
    )
    return max(0.0, min(100.0, score))


def grouping_key(tx: Transaction) -> str:
    bucket = round_half_up(abs(tx.amount) / 10) * 10
    return f"{normalize_description(tx.description)}|{bucket}"


def group_id_for(key: str) -> str:
    return f"rg-{short_hash(key, length=12)}"


# ── Group analysis ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GroupAnalysis:
    is_recurring: bool
    confidence: float
    reason: str
    pattern: Optional[RecurringPattern] = None


def analyze_group(members: list[Transaction]) -> GroupAnalysis:
    """Score one group. Members may arrive in any order."""
    if len(members) < MIN_OCCURRENCES:
        return GroupAnalysis(False, 0.0, "fewer than two occurrences")

    ordered = sorted(members, key=lambda t: (t.date, t.id))
    dates = [_date.fromisoformat(t.date) for t in ordered]
    gaps = [float((dates[i + 1] - dates[i]).days) for i in range(len(dates) - 1)]
    mean_gap = statistics.fmean(gaps)

    frequency = classify_interval(mean_gap)
    if frequency is None:
        return GroupAnalysis(False, 0.0, f"mean interval {mean_gap:.1f} days matches no frequency")

    amounts = [abs(t.amount) for t in ordered]
    interval_cv = coefficient_of_variation(gaps)
    amount_cv = coefficient_of_variation(amounts)
    confidence = score_pattern(interval_cv, amount_cv, len(ordered))

    if confidence < MIN_CONFIDENCE:
        return GroupAnalysis(False, confidence, f"{frequency} pattern too irregular ({confidence:.0f})")

    pattern = RecurringPattern(
        frequency=frequency,
        expected_amount=round(statistics.fmean(amounts), 2),
        amount_tolerance=round(amount_cv * 100, 2),
        next_expected_date=(dates[-1] + _timedelta(days=int(mean_gap))).isoformat(),
        last_occurrence=ordered[-1].date,
        occurrence_count=len(ordered),
        confidence=round_half_up(confidence),
    )
    return GroupAnalysis(True, confidence, f"{frequency}, {len(ordered)} occurrences", pattern)


# ── Detector ──────────────────────────────────────────────────────────────────


class RecurringDetector:
    """Runs pattern detection over a full transaction history."""

    def group(self, transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
        groups: dict[str, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            groups[grouping_key(tx)].append(tx)
        return groups

    def detect(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        """Return every transaction with its detection fields refreshed.

        Output keeps input order. A user-set recurring_type keeps a
        transaction flagged as recurring even when no pattern is found.
        """
        transactions = list(transactions)
        results: dict[str, tuple[str, GroupAnalysis]] = {}
        detected = 0
        for key, members in self.group(transactions).items():
            analysis = analyze_group(members)
            if analysis.is_recurring:
                detected += 1
            for tx in members:
                results[tx.id] = (key, analysis)

        out = []
        for tx in transactions:
            key, analysis = results[tx.id]
            if analysis.is_recurring:
                update = {
                    "is_recurring": True,
                    "recurring_pattern": analysis.pattern,
                    "recurring_group_id": group_id_for(key),
                    "recurring_confidence": analysis.pattern.confidence,
                }
            else:
                update = {
                    "is_recurring": tx.recurring_type is not None,
                    "recurring_pattern": None,
                    "recurring_group_id": None,
                    "recurring_confidence": None,
                }
            out.append(tx.model_copy(update=update))

        logger.info("Recurring detection: %d groups over %d transactions", detected, len(transactions))
        return out
