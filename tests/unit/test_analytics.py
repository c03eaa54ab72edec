"""Unit tests for cash-flow and spending analytics"""

import pytest
from datetime import date, timedelta
from blink_backend.domain.analytics import (
    category_breakdown,
    classify_frequency,
    daily_summary,
    detect_recurring_expenses,
    expense_analysis,
    forecast_cash_flow,
    health_metrics,
    health_score,
    income_analysis,
    overall_health_score,
    risk_level,
    segment_cash_flow,
    split_flows,
)
from blink_backend.domain.models import HealthMetrics, Transaction

_counter = iter(range(1, 10_000))


def txn(amount, on, name="Purchase", category=None, merchant=None):
    """Stored transaction: positive = outflow, negative = inflow"""
    return Transaction(
        transaction_id=f"t-{next(_counter)}",
        date=on,
        amount=amount,
        description=name,
        merchant_name=merchant,
        category=category,
    )


def test_split_flows():
    """Test inflow and outflow come back as positive magnitudes"""
    inflow, outflow = split_flows([txn(-1000, date(2024, 3, 1)), txn(40, date(2024, 3, 2)), txn(60, date(2024, 3, 3))])

    assert inflow == 1000
    assert outflow == 100


def test_category_breakdown_percentages_sum_to_100():
    """Test expenses are bucketed and income is ignored"""
    on = date(2024, 3, 10)
    items = category_breakdown(
        [
            txn(40.0, on, category="FOOD_AND_DRINK"),
            txn(40.0, on, category="Food and Drink, Restaurants"),
            txn(66.67, on, category="GENERAL_MERCHANDISE"),
            txn(12.0, on, category=None),
            txn(-2500, on, category="INCOME"),
        ]
    )

    assert [item.name for item in items] == ["Food & Dining", "Shopping", "Other"]
    assert items[0].transaction_count == 2
    assert sum(item.percentage for item in items) == pytest.approx(100, abs=0.05)


def test_category_breakdown_empty():
    """Test no expenses yields an empty breakdown"""
    assert category_breakdown([]) == []
    assert category_breakdown([txn(-100, date(2024, 3, 1))]) == []


def test_weekly_segments_cover_window():
    """Test a 31-day window splits into 5 weekly segments"""
    segments = segment_cash_flow(
        [txn(20, date(2024, 3, 2)), txn(-500, date(2024, 3, 30)), txn(999, date(2024, 4, 1))],
        date(2024, 3, 1),
        date(2024, 3, 31),
    )

    assert [s.period for s in segments] == ["Week 1", "Week 2", "Week 3", "Week 4", "Week 5"]
    assert segments[0].outflow == 20
    assert segments[-1].start_date == date(2024, 3, 29)
    assert segments[-1].inflow == 500
    assert segments[-1].net_flow == 500
    # the April transaction is outside the window
    assert sum(s.outflow for s in segments) == 20


def test_monthly_segments_clamped_to_window():
    """Test monthly segments are labelled by month and start at the window start"""
    segments = segment_cash_flow([], date(2024, 1, 15), date(2024, 3, 31))

    assert [s.period for s in segments] == ["January 2024", "February 2024", "March 2024"]
    assert segments[0].start_date == date(2024, 1, 15)
    assert segments[1].end_date == date(2024, 2, 29)


def test_daily_segments_for_short_window():
    """Test windows of a week or less use daily segments"""
    segments = segment_cash_flow([], date(2024, 3, 25), date(2024, 3, 31))

    assert len(segments) == 7
    assert segments[0].period == "2024-03-25"


def test_daily_summary_newest_first():
    """Test per-day totals and counts"""
    summary = daily_summary([txn(10, date(2024, 3, 1)), txn(5, date(2024, 3, 1)), txn(-50, date(2024, 3, 3))])

    assert summary == [
        {"date": "2024-03-03", "total_amount": -50, "transaction_count": 1},
        {"date": "2024-03-01", "total_amount": 15, "transaction_count": 2},
    ]


@pytest.mark.parametrize(
    "gap,label",
    [(7, "weekly"), (14, "bi-weekly"), (30, "monthly"), (91, "quarterly"), (365, "annual")],
)
def test_classify_frequency(gap, label):
    """Test mean gap to frequency class"""
    assert classify_frequency(gap) == label


def test_monthly_subscription_detected():
    """Test three monthly charges of the same amount are recurring"""
    charges = [txn(15.99, date(2024, month, 5), merchant="Netflix") for month in (1, 2, 3)]

    recurring = detect_recurring_expenses(charges, date(2024, 1, 1), date(2024, 3, 31))

    assert len(recurring) == 1
    netflix = recurring[0]
    assert netflix.name == "Netflix"
    assert netflix.amount == 15.99
    assert netflix.frequency == "monthly"
    assert netflix.occurrences == 3
    # gaps of 31 and 29 days
    assert netflix.next_expected_date == date(2024, 3, 5) + timedelta(days=30)
    assert netflix.unusual_change is False
    assert netflix.latest_amount is None


def test_single_occurrence_not_recurring():
    """Test one charge is never a recurring expense"""
    recurring = detect_recurring_expenses(
        [txn(89.0, date(2024, 2, 1), merchant="Concert Hall")], date(2024, 1, 1), date(2024, 3, 31)
    )

    assert recurring == []


def test_irregular_cadence_not_recurring():
    """Test gaps that vary more than the tolerance are rejected"""
    charges = [txn(30, day, merchant="Cafe") for day in (date(2024, 1, 1), date(2024, 1, 3), date(2024, 2, 20))]

    assert detect_recurring_expenses(charges, date(2024, 1, 1), date(2024, 3, 31)) == []


def test_unusual_change_flagged():
    """Test a merchant's latest charge deviating more than 10% is flagged"""
    charges = [
        txn(50, date(2024, 1, 10), merchant="Gym"),
        txn(50, date(2024, 2, 10), merchant="Gym"),
        txn(60, date(2024, 3, 10), merchant="Gym"),
    ]

    recurring = detect_recurring_expenses(charges, date(2024, 1, 1), date(2024, 3, 31))

    assert len(recurring) == 1
    assert recurring[0].amount == 50
    assert recurring[0].unusual_change is True
    assert recurring[0].latest_amount == 60


def test_two_subscriptions_same_merchant_not_flagged():
    """Test steady plans from one merchant don't count as price changes of each other"""
    charges = [txn(9.99, date(2024, month, 3), merchant="Apple") for month in (1, 2, 3, 4)]
    charges += [txn(14.99, date(2024, month, 12), merchant="Apple") for month in (1, 2, 3, 4)]

    recurring = detect_recurring_expenses(charges, date(2024, 1, 1), date(2024, 4, 30))

    assert [(r.amount, r.unusual_change, r.latest_amount) for r in recurring] == [
        (14.99, False, None),
        (9.99, False, None),
    ]


def test_income_analysis_sources():
    """Test payers are grouped and classified"""
    transactions = [
        txn(-2000, date(2024, 1, 1), merchant="Acme Payroll"),
        txn(-2000, date(2024, 1, 15), merchant="Acme Payroll"),
        txn(-2000, date(2024, 1, 29), merchant="Acme Payroll"),
        txn(-500, date(2024, 1, 20), name="Freelance"),
        txn(120, date(2024, 1, 21)),
    ]

    result = income_analysis(transactions)

    assert result["total_income"] == 6500
    assert result["primary_income"] == 6000
    assert result["secondary_income"] == 500
    assert [s["name"] for s in result["sources"]] == ["Acme Payroll", "Freelance"]
    assert result["sources"][0]["frequency"] == "bi-weekly"
    assert result["sources"][1]["frequency"] == "one-time"
    assert 0 < result["income_source_diversity"] <= 100
    # a single month of income has no measurable stability
    assert result["income_stability"] == 0


def test_expense_analysis_split():
    """Test fixed and essential buckets"""
    on = date(2024, 3, 5)
    result = expense_analysis(
        [
            txn(1500, on, category="RENT_AND_UTILITIES"),
            txn(200, on, category="ENTERTAINMENT"),
            txn(-4000, on, category="INCOME"),
        ]
    )

    assert result["total_expenses"] == 1700
    assert result["fixed_expenses"] == 1500
    assert result["variable_expenses"] == 200
    assert result["discretionary_expenses"] == 200
    assert result["expense_to_income_ratio"] == pytest.approx(0.425)


def test_expense_ratio_without_income():
    """Test the ratio is undefined when there is no income"""
    assert expense_analysis([txn(10, date(2024, 3, 1))])["expense_to_income_ratio"] is None


def test_health_metrics_no_expenses():
    """Test edge values when nothing was spent"""
    metrics = health_metrics([txn(-1000, date(2024, 3, 1))], total_balance=500, window_length_days=30)

    assert metrics.expense_coverage == 2.0
    assert metrics.cash_buffer == 12.0
    assert metrics.debt_to_income_ratio == 0.0
    assert metrics.savings_rate == 100.0


def test_health_score_empty_history():
    """Test a user with no data gets the neutral coverage and debt components only"""
    result = health_score([], total_balance=0, window_length_days=30)

    # coverage 1.0 * 50 * 0.20 + (1 - 0) * 100 * 0.10
    assert result.score == 20.0
    assert result.recommendations


@pytest.mark.parametrize(
    "metrics",
    [
        HealthMetrics(income_stability=5, expense_coverage=40, savings_rate=900, cash_buffer=80, debt_to_income_ratio=-3),
        HealthMetrics(income_stability=-1, expense_coverage=-2, savings_rate=-400, cash_buffer=-9, debt_to_income_ratio=12),
    ],
)
def test_health_score_bounded(metrics):
    """Test extreme inputs stay within 0..100"""
    assert 0 <= overall_health_score(metrics) <= 100


def test_health_score_best_case():
    """Test maxed components give a perfect score"""
    metrics = HealthMetrics(
        income_stability=1, expense_coverage=2, savings_rate=50, cash_buffer=4, debt_to_income_ratio=0
    )

    assert overall_health_score(metrics) == 100.0


@pytest.mark.parametrize(
    "inflow,outflow,level",
    [(300, 100, "LOW"), (140, 100, "MEDIUM"), (100, 100, "MEDIUM"), (90, 100, "HIGH"), (0, 0, "HIGH")],
)
def test_risk_level(inflow, outflow, level):
    """Test net position and inflow/outflow ratio thresholds"""
    assert risk_level(inflow, outflow) == level


def test_forecast_steady_pattern():
    """Test a perfectly regular history projects forward with full confidence"""
    start, end = date(2024, 3, 1), date(2024, 3, 14)
    transactions = []
    for offset in range(14):
        day = start + timedelta(days=offset)
        transactions.append(txn(-100, day))
        transactions.append(txn(50, day))

    forecast = forecast_cash_flow(transactions, start, end)

    assert len(forecast["predictions"]) == 14
    assert forecast["predictions"][0]["date"] == "2024-03-15"
    assert forecast["predicted_inflow"] == 1400
    assert forecast["predicted_outflow"] == 700
    assert forecast["predicted_net_position"] == 700
    assert forecast["confidence_score"] == 100
    assert forecast["risk_level"] == "LOW"


def test_forecast_without_history():
    """Test no transactions means zero confidence"""
    forecast = forecast_cash_flow([], date(2024, 3, 1), date(2024, 3, 31), horizon_days=7)

    assert len(forecast["predictions"]) == 7
    assert forecast["predicted_net_position"] == 0
    assert forecast["confidence_score"] == 0
