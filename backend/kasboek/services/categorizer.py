"""Categorization service.

Applies an ordered list of CategoryRule records to transaction descriptions.
The first rule with a matching keyword (whose amount range, if any, also
holds) decides the category; later rules are never consulted.
"""

import logging
from typing import Iterable, Optional, Sequence

from ..schemas import CategorizationResult, CategoryRule, Transaction
from .normalizer import round_half_up

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"

# ─────────────────────────────────────────────────────────────────────────────
# Default rule table  (category, keywords, min_amount, max_amount)
#
# Order is significant: first match wins, so "health-insurance" has to stay
# ahead of the generic "insurance".
# ─────────────────────────────────────────────────────────────────────────────

_DEFAULT_RULE_ROWS: list[tuple[str, tuple[str, ...], Optional[float], Optional[float]]] = [
    ("salary", ("exact cloud development", "exact cloud", "vrijdagonline", "salaris", "loon"), 100, 10000),
    ("bonus", ("dertiende maand", "13e maand", "vakantiegeld", "bonus"), 500, None),
    ("investment-income", ("dividend", "interest", "capital gain", "crypto", "restitutie", "terugbetaling"), None, None),
    ("rent", ("huur", "rent", "patrimonium", "woningstichting"), 25, 3000),
    ("utilities", ("eneco", "ziggo", "kpn", "t-mobile", "vodafone", "anwb energie", "energie", "gas & licht"), 10, 500),
    ("groceries", ("albert heijn", "ah paterswolde", "ah to go", "plus", "jumbo", "lidl", "aldi", "dirk", "coop"), None, 200),
    ("dining", ("tango", "mcdonald", "kfc", "burger king", "subway", "domino", "pizza", "restaurant", "thuisbezorgd"), None, None),
    ("public-transport", ("ov-chipkaart", "tls", "ns ", "arriva", "connexxion"), None, 200),
    ("fuel", ("shell", "esso", "bp ", "texaco", "total", "tankstation"), None, None),
    ("health-insurance", ("menzis", "zilveren kruis", "cz", "vgz", "zorgverzekering"), 50, 500),
    ("insurance", ("verzekering", "insurance", "monuta", "asr", "nn schadeverzekering"), None, None),
    ("shopping", ("flink", "coolblue", "bol.com", "amazon", "vans", "nike", "h&m", "zara", "action", "hema"), None, None),
    ("subscriptions", ("netflix", "spotify", "disney", "flitsmeister"), None, 50),
    ("entertainment", ("bioscoop", "pathe", "fitness", "sportschool", "kart", "teamsport"), None, None),
    ("loan-payment", ("loan", "lening", "afbetaling", "student debt", "studie"), 50, None),
    ("bank-fees", ("oranjepakket", "kosten", "bank fee"), None, 50),
    ("personal-transfer", ("manuputty", "vriend", "friend", "loan to", "lend"), 20, None),
]

DEFAULT_RULES: list[CategoryRule] = [
    CategoryRule(category=cat, keywords=kws, min_amount=lo, max_amount=hi)
    for cat, kws, lo, hi in _DEFAULT_RULE_ROWS
]


# ─────────────────────────────────────────────────────────────────────────────
# Core matching
# ─────────────────────────────────────────────────────────────────────────────


def _in_range(rule: CategoryRule, abs_amount: float) -> bool:
    if rule.min_amount is not None and abs_amount < rule.min_amount:
        return False
    if rule.max_amount is not None and abs_amount > rule.max_amount:
        return False
    return True


def _confidence(matched: int, rule: CategoryRule, abs_amount: float) -> int:
    score = 50 + (matched / len(rule.keywords)) * 30

    # Proximity bonus needs a closed range with a positive midpoint.
    if rule.has_amount_range and rule.max_amount is not None:
        midpoint = ((rule.min_amount or 0) + rule.max_amount) / 2
        if midpoint > 0:
            score += max(0.0, 20 - 20 * abs(abs_amount - midpoint) / midpoint)

    return max(0, min(100, round_half_up(score)))


def categorize(description: str, amount: float, rules: Sequence[CategoryRule]) -> CategorizationResult:
    """Return the category of the first rule that matches, or uncategorized.

    Matching is a case-insensitive substring test of each keyword against
    the description. Pure: the same inputs always give the same result.
    """
    text = description.lower()
    abs_amount = abs(amount)

    for rule in rules:
        matched = [kw for kw in rule.keywords if kw.lower() in text]
        if not matched:
            continue
        if not _in_range(rule, abs_amount):
            continue
        return CategorizationResult(
            category=rule.category,
            subcategory=rule.subcategory,
            confidence=_confidence(len(matched), rule, abs_amount),
            reason=f"Matched keyword(s): {', '.join(matched)}",
            matched_keywords=tuple(matched),
        )

    return CategorizationResult(
        category=UNCATEGORIZED,
        confidence=0,
        reason="No matching rule",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Bulk operations
# ─────────────────────────────────────────────────────────────────────────────


class Categorizer:
    """Categorizes batches of transactions against one rule snapshot."""

    def __init__(self, rules: Optional[Sequence[CategoryRule]] = None):
        self.rules: tuple[CategoryRule, ...] = tuple(DEFAULT_RULES if rules is None else rules)

    def categorize(self, description: str, amount: float) -> CategorizationResult:
        return categorize(description, amount, self.rules)

    def categorize_all(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        out = []
        uncategorized = 0
        for tx in transactions:
            result = self.categorize(tx.description, tx.amount)
            if result.category == UNCATEGORIZED:
                uncategorized += 1
            out.append(tx.model_copy(update={
                "category": result.category,
                "subcategory": result.subcategory,
                "categorization_confidence": result.confidence,
                "categorization_reason": result.reason,
            }))
        if out:
            logger.info("Categorized %d transactions (%d uncategorized)", len(out), uncategorized)
        return out
