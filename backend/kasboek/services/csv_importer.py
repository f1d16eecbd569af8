"""CSV import service for semicolon-delimited bank exports.

Public entry points:

  preview_csv(content)                      – layout + headers + first 20 rows
  parse_csv(content)                        – rows keyed by canonical column names
  ImportPipeline.import_csv(content, …)     – normalize → dedup → categorize →
                                              detect recurring → tag → suggest
  run_import(repo, content, …)              – the pipeline against a repository
"""

import csv
import io
import logging
import statistics
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional, Union

from ..repository import FinanceRepository
from ..schemas import (
    ConfidenceDistribution,
    DateRange,
    Dataset,
    ImportResult,
    ImportWarning,
    Transaction,
)
from .categorizer import Categorizer
from .config_extractor import ConfigurationExtractor
from .normalizer import (
    apply_direction,
    compute_file_hash,
    compute_fingerprint,
    extract_description,
    parse_amount,
    parse_date,
    short_hash,
    transaction_id,
    transaction_type_for,
)
from .recurring import RecurringDetector

logger = logging.getLogger(__name__)


class CSVImportError(ValueError):
    """The file as a whole cannot be read; no row was imported."""


# ─────────────────────────────────────────────────────────────────────────────
# Export layouts
# ─────────────────────────────────────────────────────────────────────────────

COLUMN_LAYOUTS: dict[str, list[str]] = {
    # Savings account export; its header carries "Rekening naam"
    "savings": [
        "datum", "omschrijving", "rekening", "rekening_naam", "tegenrekening",
        "af_bij", "bedrag", "valuta", "mutatiesoort", "mededelingen", "saldo_na_mutatie",
    ],
    # Main (checking) account export
    "main": [
        "datum", "naam_omschrijving", "rekening", "tegenrekening", "code",
        "af_bij", "bedrag", "mutatiesoort", "mededelingen", "saldo_na_mutatie", "tag",
    ],
}

# Rows shorter than this are malformed; trailing optional columns may be missing.
_REQUIRED_COLUMNS = {layout: cols.index("bedrag") + 1 for layout, cols in COLUMN_LAYOUTS.items()}

DELIMITER = ";"
PREVIEW_ROWS = 20

# Tag → substrings searched in description + notes (lowercased)
TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    "apple-pay": ("apple pay",),
    "ideal": ("ideal",),
    "refund": ("retour", "refund"),
    "automatic": ("automatisch", "automatic"),
    "direct-debit": ("incasso",),
}
LARGE_TRANSACTION_THRESHOLD = 1000

LOW_CONFIDENCE_THRESHOLD = 50
REVIEW_CONFIDENCE_THRESHOLD = 80
RECURRING_CONFIRMED_THRESHOLD = 70
UNUSUAL_AMOUNT_FACTOR = 3


class ParsedCSV(NamedTuple):
    layout: str
    headers: list[str]
    rows: list[dict[str, str]]
    malformed: int


def _decode(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CSVImportError(f"CSV is not valid UTF-8: {exc}") from exc


def sniff_layout(headers: list[str]) -> str:
    normalized = [h.strip().lower() for h in headers]
    return "savings" if "rekening naam" in normalized else "main"


def _read(content: Union[bytes, str]) -> tuple[list[str], list[list[str]]]:
    text = _decode(content)
    try:
        records = list(csv.reader(io.StringIO(text), delimiter=DELIMITER))
    except csv.Error as exc:
        raise CSVImportError(f"Could not parse CSV: {exc}") from exc

    if not records or not any(cell.strip() for cell in records[0]):
        raise CSVImportError("CSV has no header line")
    headers = [h.strip() for h in records[0]]
    body = [r for r in records[1:] if any(cell.strip() for cell in r)]
    return headers, body


def parse_csv(content: Union[bytes, str]) -> ParsedCSV:
    headers, body = _read(content)
    layout = sniff_layout(headers)
    columns = COLUMN_LAYOUTS[layout]
    required = _REQUIRED_COLUMNS[layout]

    if len(headers) < required:
        raise CSVImportError(
            f"CSV headers {headers!r} do not look like a {DELIMITER!r}-delimited bank export "
            f"(expected at least {required} columns)."
        )

    rows: list[dict[str, str]] = []
    malformed = 0
    for line_no, values in enumerate(body, start=2):
        if len(values) < required:
            logger.warning("Skipping line %d: %d columns, need at least %d", line_no, len(values), required)
            malformed += 1
            continue
        padded = values + [""] * (len(columns) - len(values))
        rows.append({col: padded[i].strip() for i, col in enumerate(columns)})
    return ParsedCSV(layout, headers, rows, malformed)


def preview_csv(content: Union[bytes, str], max_rows: int = PREVIEW_ROWS) -> dict:
    """Return layout, headers and the first *max_rows* rows keyed by header."""
    headers, body = _read(content)
    rows = [
        {h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)}
        for values in body[:max_rows]
    ]
    return {
        "layout": sniff_layout(headers),
        "headers": headers,
        "rows": rows,
        "total_rows_previewed": len(rows),
        "total_rows": len(body),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Row-level processing
# ─────────────────────────────────────────────────────────────────────────────


def convert_rows(
    rows: Iterable[dict[str, str]],
    account_id: str,
    batch_id: Optional[str] = None,
) -> tuple[list[Transaction], int]:
    """Turn canonical rows into transactions. Returns (transactions, failed)."""
    transactions = []
    failed = 0
    for index, row in enumerate(rows, start=1):
        try:
            amount = apply_direction(parse_amount(row["bedrag"]), row["af_bij"])
            posted_date = parse_date(row["datum"])
            description = extract_description(row)
            fingerprint = compute_fingerprint(posted_date, description, amount)
            transactions.append(Transaction(
                id=transaction_id(fingerprint),
                date=posted_date,
                description=description,
                notes=row.get("mededelingen") or None,
                amount=amount,
                type=transaction_type_for(amount),
                account_id=account_id,
                import_batch=batch_id,
            ))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Skipping row %d: %s", index, exc)
            failed += 1
    return transactions, failed


def filter_duplicates(
    new: Iterable[Transaction],
    existing: Iterable[Transaction],
) -> tuple[list[Transaction], int]:
    """Drop rows whose (description, date, amount) is already known.

    Also catches repeats within the new batch. Returns (unique, duplicates).
    """
    seen = {tx.duplicate_key for tx in existing}
    unique = []
    duplicates = 0
    for tx in new:
        if tx.duplicate_key in seen:
            duplicates += 1
            continue
        seen.add(tx.duplicate_key)
        unique.append(tx)
    return unique, duplicates


def extract_tags(transactions: Iterable[Transaction]) -> list[Transaction]:
    out = []
    for tx in transactions:
        text = f"{tx.description} {tx.notes or ''}".lower()
        tags = {tag for tag, keywords in TAG_KEYWORDS.items() if any(kw in text for kw in keywords)}
        if abs(tx.amount) > LARGE_TRANSACTION_THRESHOLD:
            tags.add("large-transaction")
        out.append(tx.model_copy(update={"tags": frozenset(tx.tags | tags)}))
    return out


def generate_warnings(transactions: list[Transaction]) -> list[ImportWarning]:
    warnings = []
    if not transactions:
        return warnings

    low = [t.id for t in transactions if t.categorization_confidence < LOW_CONFIDENCE_THRESHOLD]
    if low:
        warnings.append(ImportWarning(
            type="low-confidence",
            message=f"{len(low)} transactions have low categorization confidence",
            transaction_ids=low,
        ))

    average = statistics.fmean(abs(t.amount) for t in transactions)
    unusual = [t.id for t in transactions if abs(t.amount) > average * UNUSUAL_AMOUNT_FACTOR]
    if unusual:
        warnings.append(ImportWarning(
            type="unusual-amount",
            message=f"{len(unusual)} transactions have unusually large amounts",
            transaction_ids=unusual,
        ))
    return warnings


def needs_review(tx: Transaction) -> bool:
    if tx.categorization_confidence < REVIEW_CONFIDENCE_THRESHOLD:
        return True
    return tx.is_recurring and (tx.recurring_confidence or 0) < RECURRING_CONFIRMED_THRESHOLD


def calculate_statistics(transactions: list[Transaction]) -> dict:
    distribution = ConfidenceDistribution()
    categories: dict[str, int] = {}
    for tx in transactions:
        categories[tx.category] = categories.get(tx.category, 0) + 1
        if tx.categorization_confidence >= REVIEW_CONFIDENCE_THRESHOLD:
            distribution.high += 1
        elif tx.categorization_confidence >= LOW_CONFIDENCE_THRESHOLD:
            distribution.medium += 1
        else:
            distribution.low += 1

    dates = sorted(tx.date for tx in transactions)
    return {
        "date_range": DateRange(start=dates[0], end=dates[-1]) if dates else None,
        "total_income": round(sum(t.amount for t in transactions if t.amount > 0), 2),
        "total_expenses": round(sum(abs(t.amount) for t in transactions if t.amount < 0), 2),
        "category_breakdown": categories,
        "confidence_distribution": distribution,
        "recurring_detected": sum(1 for t in transactions if t.is_recurring),
        "recurring_confirmed": sum(
            1 for t in transactions
            if t.is_recurring and (t.recurring_confidence or 0) >= RECURRING_CONFIRMED_THRESHOLD
        ),
        "needs_review": sum(1 for t in transactions if needs_review(t)),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────────────────────


class ImportPipeline:
    def __init__(
        self,
        categorizer: Optional[Categorizer] = None,
        detector: Optional[RecurringDetector] = None,
        extractor: Optional[ConfigurationExtractor] = None,
    ):
        self.categorizer = categorizer or Categorizer()
        self.detector = detector or RecurringDetector()
        self.extractor = extractor or ConfigurationExtractor()

    def import_csv(
        self,
        content: Union[bytes, str],
        source_name: str,
        account_id: str,
        existing: Dataset,
        import_date: Optional[datetime] = None,
    ) -> ImportResult:
        """Run one import against an existing dataset snapshot.

        Pure with respect to ``existing``: new and changed transactions are
        returned, never written. Importing the same file twice yields an
        empty second result.
        """
        raw = content.encode() if isinstance(content, str) else content
        batch_id = short_hash(account_id, source_name, compute_file_hash(raw))
        parsed = parse_csv(content)

        converted, failed = convert_rows(parsed.rows, account_id, batch_id)
        unique, duplicates = filter_duplicates(converted, existing.transactions)
        categorized = self.categorizer.categorize_all(unique)

        # Detection runs over the whole history so new rows can join old groups.
        new_ids = {tx.id for tx in categorized}
        history = self.detector.detect([*existing.transactions, *categorized])
        previous = {tx.id: tx for tx in existing.transactions}
        detected = [tx for tx in history if tx.id in new_ids]
        updated = [tx for tx in history if tx.id not in new_ids and tx != previous[tx.id]]

        imported = extract_tags(detected)

        # Suggestions cover every group the new rows belong to, older members included.
        touched = {tx.recurring_group_id for tx in imported if tx.recurring_group_id}
        older = [tx for tx in history if tx.id not in new_ids and tx.recurring_group_id in touched]
        income, expenses = self.extractor.extract([*older, *imported])
        stats = calculate_statistics(imported)

        total_rows = len(parsed.rows) + parsed.malformed
        skipped = duplicates + failed + parsed.malformed
        logger.info(
            "Imported %d of %d rows from %s into %s (%d duplicates, %d unreadable)",
            len(imported), total_rows, source_name, account_id, duplicates, failed + parsed.malformed,
        )
        return ImportResult(
            batch_id=batch_id,
            import_date=import_date or datetime.now(timezone.utc),
            file_name=source_name,
            account_id=account_id,
            transactions=imported,
            updated_transactions=updated,
            total_rows=total_rows,
            imported=len(imported),
            skipped=skipped,
            detected_income_sources=income,
            detected_recurring_expenses=expenses,
            warnings=generate_warnings(imported),
            **stats,
        )


def run_import(repo: FinanceRepository, content: bytes, source_name: str, account_id: str) -> ImportResult:
    """Load a snapshot from *repo*, import into it and persist the result."""
    pipeline = ImportPipeline(categorizer=Categorizer(repo.load_rules()))
    result = pipeline.import_csv(content, source_name, account_id, repo.load_dataset())
    repo.save_import(result)
    return result
