import pytest

from kasboek.schemas import CategoryRule
from kasboek.services.categorizer import DEFAULT_RULES, Categorizer, categorize


class TestDefaultRules:
    def test_groceries(self):
        result = categorize("Albert Heijn 1403", -45.0, DEFAULT_RULES)
        assert result.category == "groceries"
        assert result.confidence == 62
        assert result.reason == "Matched keyword(s): albert heijn"

    def test_salary_two_keywords(self):
        result = categorize("Exact Cloud Development salaris", 3000.0, DEFAULT_RULES)
        assert result.category == "salary"
        assert result.confidence == 80
        assert result.matched_keywords == ("exact cloud development", "exact cloud", "salaris")

    def test_rent_near_midpoint(self):
        result = categorize("Woningstichting Patrimonium huur", -895.0, DEFAULT_RULES)
        assert result.category == "rent"
        assert result.confidence == 84

    def test_subscription_without_minimum(self):
        result = categorize("Netflix International B.V.", -11.99, DEFAULT_RULES)
        assert result.category == "subscriptions"
        assert result.confidence == 67

    def test_health_insurance_before_insurance(self):
        result = categorize("Menzis zorgverzekering", -120.0, DEFAULT_RULES)
        assert result.category == "health-insurance"

    def test_open_ended_range_gets_no_proximity_bonus(self):
        result = categorize("Uitbetaling vakantiegeld", 1500.0, DEFAULT_RULES)
        assert result.category == "bonus"
        assert result.confidence == 58

    def test_amount_above_max_falls_through(self):
        assert categorize("Netflix", -60.0, DEFAULT_RULES).category == "uncategorized"

    def test_amount_outside_every_matching_rule(self):
        assert categorize("Albert Heijn 1403", -250.0, DEFAULT_RULES).category == "uncategorized"

    def test_case_insensitive(self):
        assert categorize("ZIGGO SERVICES BV", -62.5, DEFAULT_RULES).category == "utilities"

    def test_no_match(self):
        result = categorize("Onbekende ontvanger", -10.0, DEFAULT_RULES)
        assert result.category == "uncategorized"
        assert result.confidence == 0
        assert result.reason == "No matching rule"


class TestRuleOrder:
    def test_first_matching_rule_wins(self):
        rules = [
            CategoryRule(category="first", keywords=("shop",)),
            CategoryRule(category="second", keywords=("shop",)),
        ]
        assert categorize("Corner shop", -5.0, rules).category == "first"

    def test_range_miss_consults_next_rule(self):
        rules = [
            CategoryRule(category="small", keywords=("shop",), max_amount=10),
            CategoryRule(category="large", keywords=("shop",)),
        ]
        assert categorize("Corner shop", -50.0, rules).category == "large"

    def test_deterministic(self):
        a = categorize("Jumbo Groningen", -33.3, DEFAULT_RULES)
        b = categorize("Jumbo Groningen", -33.3, DEFAULT_RULES)
        assert a == b

    def test_confidence_clamped(self):
        rule = CategoryRule(category="x", keywords=("abc",), min_amount=10, max_amount=10)
        result = categorize("abc", -10.0, [rule])
        assert result.confidence == 100


class TestCategoryRuleValidation:
    def test_empty_keywords_rejected(self):
        with pytest.raises(ValueError):
            CategoryRule(category="x", keywords=())

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            CategoryRule(category="x", keywords=("a",), min_amount=10, max_amount=5)


class TestCategorizer:
    def test_categorize_all_copies(self, make_tx):
        original = make_tx("2024-01-15", "Albert Heijn 1403", -45.0)
        [result] = Categorizer().categorize_all([original])
        assert result.category == "groceries"
        assert result.categorization_confidence == 62
        assert original.category == "uncategorized"

    def test_custom_rules(self, make_tx):
        categorizer = Categorizer([CategoryRule(category="coffee", keywords=("espresso",))])
        [result] = categorizer.categorize_all([make_tx("2024-01-15", "Espresso bar", -3.2)])
        assert result.category == "coffee"
