from datetime import datetime, timezone

import pytest

from kasboek.schemas import Dataset
from kasboek.services.csv_importer import (
    CSVImportError,
    ImportPipeline,
    convert_rows,
    filter_duplicates,
    parse_csv,
    preview_csv,
)

SAVINGS_HEADER = (
    "Datum;Omschrijving;Rekening;Rekening naam;Tegenrekening;Af Bij;Bedrag (EUR);"
    "Valuta;Mutatiesoort;Mededelingen;Saldo na mutatie"
)

NETFLIX = "Netflix International B.V."
SALARY = "Exact Cloud Development salaris"

IMPORT_DATE = datetime(2024, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def statement(bank_csv):
    return bank_csv([
        ("20240115", NETFLIX, "Af", "11,99"),
        ("20240125", SALARY, "Bij", "3.150,00"),
        ("20240203", "Albert Heijn 1403", "Af", "45,00", "Betaalautomaat iDEAL"),
        ("20240215", NETFLIX, "Af", "11,99"),
        ("2024-13-45", "Kapotte datum", "Af", "5,00"),
    ])


def _import(content, existing=None):
    return ImportPipeline().import_csv(content, "export.csv", "checking", existing or Dataset(),
                                       import_date=IMPORT_DATE)


class TestParseCSV:
    def test_main_layout(self, statement):
        parsed = parse_csv(statement)
        assert parsed.layout == "main"
        assert parsed.malformed == 0
        assert parsed.rows[0]["naam_omschrijving"] == NETFLIX
        assert parsed.rows[0]["af_bij"] == "Af"
        assert parsed.rows[0]["bedrag"] == "11,99"

    def test_savings_layout(self):
        content = SAVINGS_HEADER + "\n20240101;Rente;NL22BANK0000000001;Oranje Spaarrekening;;Bij;1,23;EUR;Rente;;\n"
        parsed = parse_csv(content)
        assert parsed.layout == "savings"
        assert parsed.rows[0]["omschrijving"] == "Rente"
        assert parsed.rows[0]["rekening_naam"] == "Oranje Spaarrekening"

    def test_short_row_is_malformed(self, bank_csv):
        content = bank_csv([("20240115", NETFLIX, "Af", "11,99")]) + b"20240116;Kort\n"
        parsed = parse_csv(content)
        assert len(parsed.rows) == 1
        assert parsed.malformed == 1

    def test_missing_trailing_columns_padded(self, bank_csv):
        content = bank_csv([]) + b"20240116;Jumbo;NL11BANK0123456789;;;Af;12,00\n"
        [row] = parse_csv(content).rows
        assert row["mededelingen"] == ""
        assert row["tag"] == ""

    def test_byte_order_mark(self, statement):
        parsed = parse_csv(b"\xef\xbb\xbf" + statement)
        assert parsed.headers[0] == "Datum"

    def test_blank_lines_ignored(self, statement):
        assert len(parse_csv(statement + b"\n\n").rows) == 5

    def test_empty_file(self):
        with pytest.raises(CSVImportError):
            parse_csv(b"")

    def test_not_a_bank_export(self):
        with pytest.raises(CSVImportError):
            parse_csv(b"a;b\n1;2\n")

    def test_invalid_utf8(self):
        with pytest.raises(CSVImportError):
            parse_csv(b"Datum;\xff\xfe\n")


class TestPreview:
    def test_first_rows(self, bank_csv):
        content = bank_csv([(f"202401{d:02d}", "Jumbo", "Af", "1,00") for d in range(1, 26)])
        preview = preview_csv(content)
        assert preview["layout"] == "main"
        assert preview["total_rows_previewed"] == 20
        assert preview["total_rows"] == 25
        assert preview["rows"][0]["Naam / Omschrijving"] == "Jumbo"


class TestRows:
    def test_direction_and_type(self):
        rows = [{"datum": "20240115", "naam_omschrijving": "Terugbetaling", "af_bij": "Bij", "bedrag": "12,50"}]
        [tx], failed = convert_rows(rows, "checking")
        assert failed == 0
        assert tx.amount == 12.5
        assert tx.type == "income"
        assert tx.date == "2024-01-15"
        assert tx.id.startswith("tx-")

    def test_bad_rows_counted(self):
        rows = [
            {"datum": "20240115", "naam_omschrijving": "x", "af_bij": "Af", "bedrag": "abc"},
            {"datum": "20240115", "naam_omschrijving": "x", "af_bij": "??", "bedrag": "1,00"},
            {"naam_omschrijving": "x", "af_bij": "Af", "bedrag": "1,00"},
        ]
        txs, failed = convert_rows(rows, "checking")
        assert txs == []
        assert failed == 3

    def test_duplicates_within_batch_and_history(self, make_tx):
        old = make_tx("2024-01-15", "Netflix", -11.99)
        new = [make_tx("2024-01-15", "Netflix", -11.99), make_tx("2024-02-15", "Netflix", -11.99),
               make_tx("2024-02-15", "Netflix", -11.99)]
        unique, duplicates = filter_duplicates(new, [old])
        assert [t.date for t in unique] == ["2024-02-15"]
        assert duplicates == 2


class TestImportPipeline:
    def test_counts(self, statement):
        result = _import(statement)
        assert result.total_rows == 5
        assert result.imported == 4
        assert result.skipped == 1
        assert result.account_id == "checking"
        assert result.import_date == IMPORT_DATE
        assert all(t.import_batch == result.batch_id for t in result.transactions)

    def test_statistics(self, statement):
        result = _import(statement)
        assert result.date_range.start == "2024-01-15"
        assert result.date_range.end == "2024-02-15"
        assert result.total_income == 3150.0
        assert result.total_expenses == pytest.approx(68.98)
        assert result.category_breakdown == {"subscriptions": 2, "salary": 1, "groceries": 1}
        assert result.confidence_distribution.high == 1
        assert result.confidence_distribution.medium == 3
        assert result.confidence_distribution.low == 0
        assert result.needs_review == 3

    def test_recurring_and_suggestions(self, statement):
        result = _import(statement)
        assert result.recurring_detected == 2
        assert result.recurring_confirmed == 2
        assert result.detected_income_sources == []
        [expense] = result.detected_recurring_expenses
        assert expense.name == NETFLIX
        assert expense.confidence == "confirmed"
        assert len(expense.linked_transaction_ids) == 2

    def test_tags_and_warnings(self, statement):
        result = _import(statement)
        by_name = {t.description: t for t in result.transactions}
        assert "ideal" in by_name["Albert Heijn 1403"].tags
        assert "large-transaction" in by_name[SALARY].tags
        [warning] = result.warnings
        assert warning.type == "unusual-amount"
        assert warning.transaction_ids == [by_name[SALARY].id]

    def test_reimport_is_empty(self, statement):
        first = _import(statement)
        second = _import(statement, Dataset(transactions=tuple(first.transactions)))
        assert second.imported == 0
        assert second.skipped == 5
        assert second.transactions == []
        assert second.batch_id == first.batch_id

    def test_new_row_joins_existing_group(self, bank_csv):
        first = _import(bank_csv([("20240115", NETFLIX, "Af", "11,99")]))
        assert not first.transactions[0].is_recurring

        second = _import(bank_csv([("20240215", NETFLIX, "Af", "11,99")]),
                         Dataset(transactions=tuple(first.transactions)))
        [updated] = second.updated_transactions
        assert updated.id == first.transactions[0].id
        assert updated.is_recurring
        [expense] = second.detected_recurring_expenses
        assert set(expense.linked_transaction_ids) == {updated.id, second.transactions[0].id}

    def test_existing_dataset_untouched(self, bank_csv):
        first = _import(bank_csv([("20240115", NETFLIX, "Af", "11,99")]))
        existing = Dataset(transactions=tuple(first.transactions))
        _import(bank_csv([("20240215", NETFLIX, "Af", "11,99")]), existing)
        assert not existing.transactions[0].is_recurring

    def test_deterministic(self, statement):
        assert _import(statement) == _import(statement)
