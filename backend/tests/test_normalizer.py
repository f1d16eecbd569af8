import pytest

from kasboek.services.normalizer import (
    apply_direction,
    compute_fingerprint,
    extract_description,
    normalize_description,
    parse_amount,
    parse_date,
    round_half_up,
    to_cents,
    transaction_type_for,
)


class TestParseAmount:
    def test_comma_decimal(self):
        assert parse_amount("12,50") == 12.50

    def test_european_thousands(self):
        assert parse_amount("1.234,56") == 1234.56

    def test_dot_decimal(self):
        assert parse_amount("42.99") == 42.99

    def test_parentheses(self):
        assert parse_amount("(42,99)") == -42.99

    def test_euro_sign(self):
        assert parse_amount("€99,99") == 99.99

    def test_space_thousands(self):
        assert parse_amount("1 234,56") == 1234.56

    def test_zero(self):
        assert parse_amount("0,00") == 0.0

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            parse_amount("")

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_amount("n.v.t.")


class TestApplyDirection:
    def test_bij_is_income(self):
        amount = apply_direction(parse_amount("12,50"), "Bij")
        assert amount == 12.50
        assert transaction_type_for(amount) == "income"

    def test_af_is_expense(self):
        amount = apply_direction(parse_amount("12,50"), "Af")
        assert amount == -12.50
        assert transaction_type_for(amount) == "expense"

    def test_case_and_whitespace(self):
        assert apply_direction(5.0, "  bij ") == 5.0

    def test_english_flags(self):
        assert apply_direction(5.0, "Debit") == -5.0
        assert apply_direction(5.0, "Credit") == 5.0

    def test_unknown_flag_raises(self):
        with pytest.raises(ValueError):
            apply_direction(5.0, "?")


class TestParseDate:
    def test_compact(self):
        assert parse_date("20240115") == "2024-01-15"

    def test_dutch(self):
        assert parse_date("15-01-2024") == "2024-01-15"

    def test_iso(self):
        assert parse_date("2024-01-15") == "2024-01-15"

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            parse_date("Jan 15th")

    def test_impossible_date_raises(self):
        with pytest.raises(ValueError):
            parse_date("20240231")


class TestExtractDescription:
    def test_main_layout_column(self):
        assert extract_description({"naam_omschrijving": "Albert Heijn 1403"}) == "Albert Heijn 1403"

    def test_savings_layout_column(self):
        assert extract_description({"omschrijving": "Oranje Spaarrekening"}) == "Oranje Spaarrekening"

    def test_collapses_whitespace(self):
        assert extract_description({"naam_omschrijving": "Jumbo   Groningen"}) == "Jumbo Groningen"

    def test_falls_back_to_naam_in_notes(self):
        row = {
            "naam_omschrijving": "",
            "mededelingen": "Naam: J. Jansen Omschrijving: terugbetaling IBAN: NL00BANK0000000000",
        }
        assert extract_description(row) == "J. Jansen"

    def test_unknown(self):
        assert extract_description({"naam_omschrijving": "", "mededelingen": "Pasvolgnr: 003"}) == "Unknown"


class TestNormalizeDescription:
    def test_strips_dates_and_digits(self):
        a = normalize_description("Netflix 15-01-2024 ref 8812")
        b = normalize_description("NETFLIX 15-02-2024 ref 9034")
        assert a == b
        assert not any(ch.isdigit() for ch in a)

    def test_trims(self):
        assert normalize_description("  Ziggo 123 ") == "ziggo"


class TestToCents:
    def test_positive_standard(self):
        assert to_cents(42.99) == 4299

    def test_negative_value(self):
        assert to_cents(-42.99) == -4299

    def test_round_half_up_pos(self):
        assert to_cents(0.005) == 1

    def test_round_half_up_neg(self):
        assert to_cents(-0.005) == -1

    def test_floating_point_repr(self):
        assert to_cents(0.1 + 0.2) == 30


class TestRoundHalfUp:
    def test_half(self):
        assert round_half_up(57.5) == 58

    def test_below_half(self):
        assert round_half_up(62.33) == 62


class TestFingerprint:
    def test_stable(self):
        assert compute_fingerprint("2024-01-15", "Netflix", -11.99) == compute_fingerprint(
            "2024-01-15", "Netflix ", -11.99
        )

    def test_amount_matters(self):
        assert compute_fingerprint("2024-01-15", "Netflix", -11.99) != compute_fingerprint(
            "2024-01-15", "Netflix", -12.99
        )
