"""Normalization utilities shared by the import pipeline and the detectors.

Covers:
  - Date parsing (bank export formats → ISO YYYY-MM-DD)
  - Amount parsing (comma decimals, Af/Bij direction flag)
  - Description extraction with fallbacks for sparse rows
  - Grouping normalisation for recurring detection
  - SHA-256 fingerprinting for deduplication and stable ids
"""

import decimal
import hashlib
import math
import re
from datetime import datetime
from typing import Mapping

# ─────────────────────────────────────────────────────────────────────────────
# Date parsing
# ─────────────────────────────────────────────────────────────────────────────

_DATE_FORMATS = [
    "%Y%m%d",               # 20240115
    "%d-%m-%Y",             # 15-01-2024
    "%Y-%m-%d",             # 2024-01-15
]


def parse_date(value: str) -> str:
    """Return ISO date string YYYY-MM-DD.

    Raises ValueError for unknown formats; a guessed date would poison both
    the duplicate key and the interval statistics.
    """
    v = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    raise ValueError(f"unrecognised date {value!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Amount parsing
# ─────────────────────────────────────────────────────────────────────────────

# Matches European thousands separator: 1.234,56
_EUROPEAN_RE = re.compile(r"^-?\d{1,3}(\.\d{3})*(,\d{1,2})$")

_CREDIT_FLAGS = {"bij", "credit"}
_DEBIT_FLAGS = {"af", "debit"}


def parse_amount(value: str) -> float:
    """Parse a single amount cell.

    Handles:
      12,50  |  1.234,56 (European)  |  42.99  |  (42.99)  |  €1 234,56
    """
    v = value.strip()
    if not v:
        raise ValueError("empty amount string")

    negative = v.startswith("(") and v.endswith(")")
    if negative:
        v = v[1:-1]

    v = v.lstrip("$€£").strip()
    v = v.replace(" ", "")

    # European format "1.234,56" → "1234.56"
    if _EUROPEAN_RE.match(v):
        v = v.replace(".", "").replace(",", ".")
    else:
        v = re.sub(r",(?=\d{3}(?:[,.]|$))", "", v)
        v = v.replace(",", ".")

    amount = float(v)
    return -amount if negative else amount


def apply_direction(amount: float, flag: str) -> float:
    """Sign an unsigned export amount with its Af/Bij column.

    "Bij" (credit) is money in and becomes positive; "Af" (debit) becomes
    negative. Anything else is rejected so the row gets skipped.
    """
    f = flag.strip().lower()
    if f in _CREDIT_FLAGS:
        return abs(amount)
    if f in _DEBIT_FLAGS:
        return -abs(amount)
    raise ValueError(f"unknown direction flag {flag!r}")


def transaction_type_for(amount: float) -> str:
    return "income" if amount > 0 else "expense"


def to_cents(amount: float) -> int:
    """Convert a float amount to integer cents (ROUND_HALF_UP)."""
    return int(
        (decimal.Decimal(str(amount)) * 100).quantize(
            decimal.Decimal("1"), rounding=decimal.ROUND_HALF_UP
        )
    )


def from_cents(cents: int) -> float:
    return round(cents / 100, 2)


def round_half_up(value: float) -> int:
    """Round .5 away from the floor, the way score tables expect."""
    return int(math.floor(value + 0.5))


# ─────────────────────────────────────────────────────────────────────────────
# Descriptions
# ─────────────────────────────────────────────────────────────────────────────

# "Naam: Albert Heijn 1234 Omschrijving: ..." inside the Mededelingen column
_NAAM_RE = re.compile(r"Naam:\s*(.+?)(?:\s+(?:Omschrijving|IBAN|Kenmerk|Datum/Tijd):|$)")

_DATE_TOKEN_RE = re.compile(r"\d{2}-\d{2}-\d{4}")
_DIGITS_RE = re.compile(r"\d+")


def extract_description(row: Mapping[str, str]) -> str:
    """Pick the best human description a row has to offer.

    Order: the name/description column of either layout, then the
    counterparty name embedded in the notes column, then "Unknown".
    """
    for column in ("naam_omschrijving", "omschrijving"):
        value = (row.get(column) or "").strip()
        if value:
            return re.sub(r"\s+", " ", value)

    m = _NAAM_RE.search(row.get("mededelingen") or "")
    if m and m.group(1).strip():
        return m.group(1).strip()
    return "Unknown"


def normalize_description(raw: str) -> str:
    """Grouping form of a description: lowercase, no dates, no digit runs.

    "Netflix 15-01-2024 ref 8812" and "Netflix 15-02-2024 ref 9034" both
    become "netflix  ref" so monthly charges land in the same group.
    """
    s = raw.lower()
    s = _DATE_TOKEN_RE.sub("", s)
    s = _DIGITS_RE.sub("", s)
    return s.strip()


# ─────────────────────────────────────────────────────────────────────────────
# Hashing
# ─────────────────────────────────────────────────────────────────────────────


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def compute_fingerprint(posted_date: str, description: str, amount: float) -> str:
    """Stable cross-import deduplication hash over (description, date, amount)."""
    canonical = f"{posted_date}|{description.strip()}|{amount:.4f}"
    return hashlib.sha256(canonical.encode()).hexdigest()


def short_hash(*parts: str, length: int = 16) -> str:
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:length]


def transaction_id(fingerprint: str) -> str:
    return f"tx-{fingerprint[:16]}"
