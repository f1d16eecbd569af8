import pytest

from kasboek.schemas import (
    BudgetPercentages,
    FinancialConfiguration,
    IncomeSource,
    RecurringExpense,
    SavingsGoal,
)
from kasboek.services.budget import (
    BudgetAllocator,
    budget_type_for_category,
    calculate_targets,
    configured_income_for_month,
    is_grocery_item,
    is_savings_transaction,
    normalize_category,
)
from kasboek.services.recurring import RecurringDetector


class TestNormalizeCategory:
    @pytest.mark.parametrize("raw,expected", [
        ("Boodschappen", "groceries"),
        ("Eten & Drinken", "food"),
        ("health-insurance", "insurance"),
        ("rent", "housing"),
        ("utilities", "housing"),
        ("subscriptions", "entertainment"),
        ("groceries", "groceries"),
        ("", "shopping"),
        (None, "shopping"),
    ])
    def test_known(self, raw, expected):
        assert normalize_category(raw) == expected

    def test_unknown_returned_unchanged(self):
        assert normalize_category("Cadeaus") == "Cadeaus"

    def test_budget_types(self):
        assert budget_type_for_category("huur") == "needs"
        assert budget_type_for_category("Verzekeringen") == "needs"
        assert budget_type_for_category("dining") == "wants"
        assert budget_type_for_category("Cadeaus") == "wants"


class TestHeuristics:
    def test_grocery_item(self):
        assert is_grocery_item("Albert Heijn 1403")
        assert is_grocery_item("Boodschappen")
        assert not is_grocery_item("Ziggo")
        assert not is_grocery_item(None)

    def test_savings_transaction(self):
        assert is_savings_transaction("Spaardoel vakantie")
        assert is_savings_transaction("Sparen")
        assert not is_savings_transaction("Maandelijks sparen voor de auto")
        assert not is_savings_transaction("Netflix")
        assert not is_savings_transaction(None)


class TestTargets:
    def test_default_split(self):
        targets = calculate_targets(3000)
        assert targets.needs == pytest.approx(1500)
        assert targets.wants == pytest.approx(900)
        assert targets.savings == pytest.approx(600)

    def test_custom_split(self):
        targets = calculate_targets(1000, BudgetPercentages(needs=0.6, wants=0.2, savings=0.2))
        assert targets.needs == pytest.approx(600)

    def test_percentages_must_sum_to_one(self):
        with pytest.raises(ValueError):
            BudgetPercentages(needs=0.6, wants=0.3, savings=0.2)

    def test_configured_income(self):
        config = FinancialConfiguration(income_sources=[
            IncomeSource(id="s", name="Salaris", amount=3150, start_date="2024-01-01"),
            IncomeSource(id="w", name="Bijbaan", amount=100, frequency="weekly", start_date="2024-01-01"),
            IncomeSource(id="x", name="Oud", amount=500, start_date="2024-01-01", is_active=False),
            IncomeSource(id="f", name="Later", amount=500, start_date="2024-06-01"),
        ])
        assert configured_income_for_month(config, 2024, 3) == pytest.approx(3150 + 100 * 52 / 12)


class TestClassification:
    def test_explicit_budget_type_wins(self):
        expense = RecurringExpense(id="e", name="Albert Heijn", amount=10, start_date="2024-01-01",
                                   category="rent", budget_type="savings")
        assert BudgetAllocator().classify_expense(expense) == "savings"

    def test_grocery_override(self):
        expense = RecurringExpense(id="e", name="Boodschappen", amount=350, start_date="2024-01-01",
                                   category="housing")
        assert BudgetAllocator().classify_expense(expense) == "wants"

    def test_savings_category(self):
        assert BudgetAllocator().classify_transaction("Naar spaarrekening", "Sparen") == "savings"

    def test_transaction_category_table(self):
        assert BudgetAllocator().classify_transaction("Ziggo", "utilities") == "needs"


@pytest.fixture
def recurring_history(make_tx):
    return RecurringDetector().detect([
        make_tx("2024-01-15", "Netflix", -11.99, category="subscriptions"),
        make_tx("2024-02-15", "Netflix", -11.99, category="subscriptions"),
        make_tx("2024-01-28", "Spaardoel", -100.0),
        make_tx("2024-02-28", "Spaardoel", -100.0),
        make_tx("2024-02-03", "Albert Heijn 1403", -45.0, category="groceries"),
    ])


@pytest.fixture
def expenses():
    return [
        RecurringExpense(id="rent", name="Huur", amount=895, start_date="2024-01-01", category="rent"),
        RecurringExpense(id="food", name="Boodschappen", amount=350, start_date="2024-01-01"),
        RecurringExpense(id="gym", name="Gym", amount=30, start_date="2023-01-01",
                         end_date="2024-01-31", category="entertainment"),
        RecurringExpense(id="car", name="Auto", amount=200, start_date="2024-06-01", category="auto"),
        RecurringExpense(id="off", name="Oud", amount=99, start_date="2024-01-01", is_active=False),
    ]


class TestBreakdown:
    def test_buckets(self, expenses, recurring_history):
        goals = [
            SavingsGoal(id="g1", name="Vakantie", target_amount=1200, monthly_contribution=200),
            SavingsGoal(id="g2", name="Fiets", target_amount=800, monthly_contribution=100, spent_date="2024-02-01"),
        ]
        result = BudgetAllocator().breakdown(3000, expenses, recurring_history, goals, 2024, 3)

        assert result.month == "2024-03"
        assert [i.name for i in result.needs.items] == ["Huur"]
        assert [i.name for i in result.wants.items] == ["Boodschappen", "Netflix"]
        assert [i.name for i in result.savings.items] == ["Vakantie"]
        assert result.savings.items[0].category == "Spaardoel"
        assert result.needs.spent == pytest.approx(895)
        assert result.needs.remaining == pytest.approx(605)
        assert result.wants.spent == pytest.approx(361.99)

    def test_linked_transactions_not_counted_twice(self, expenses, recurring_history):
        linked = {t.id for t in recurring_history if t.description == "Netflix"}
        result = BudgetAllocator().breakdown(3000, expenses, recurring_history, [], 2024, 3, linked_ids=linked)
        assert [i.name for i in result.wants.items] == ["Boodschappen"]

    def test_overspent_bucket_goes_negative(self):
        rent = RecurringExpense(id="rent", name="Huur", amount=1200, start_date="2024-01-01", category="rent")
        result = BudgetAllocator().breakdown(2000, [rent], [], [], 2024, 3)
        assert result.needs.remaining == pytest.approx(-200)
