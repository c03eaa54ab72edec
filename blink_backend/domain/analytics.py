"""Cash-flow and spending analytics - pure functions over transaction lists

All functions take stored transactions (positive amount = outflow, negative
amount = inflow) and return plain dataclasses/dicts. No I/O.
"""

import math
import statistics
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from blink_backend.domain.categories import ESSENTIAL_BUCKETS, FIXED_BUCKETS, normalize_category
from blink_backend.domain.models import (
    CashFlowSegment,
    CategoryBreakdownItem,
    HealthMetrics,
    HealthScore,
    RecurringExpense,
    Transaction,
)
from blink_backend.domain.time_frames import Granularity, granularity_for, window_days
from blink_backend.utils.date_utils import generate_date_range

UNUSUAL_CHANGE_THRESHOLD = 0.10

# Upper bound (inclusive) of mean gap in days for each frequency class
FREQUENCY_CLASSES: Tuple[Tuple[float, str], ...] = (
    (10, "weekly"),
    (21, "bi-weekly"),
    (45, "monthly"),
    (120, "quarterly"),
)
ANNUAL = "annual"

HEALTH_WEIGHTS: Dict[str, float] = {
    "income_stability": 0.25,
    "expense_coverage": 0.20,
    "savings_rate": 0.25,
    "cash_buffer": 0.20,
    "debt_to_income_ratio": 0.10,
}


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _counterparty(txn: Transaction) -> str:
    return (txn.merchant_name or txn.description or "Unknown").strip() or "Unknown"


def split_flows(transactions: Sequence[Transaction]) -> Tuple[float, float]:
    """Return (total inflow, total outflow) as positive magnitudes"""
    inflow = sum(-t.amount for t in transactions if t.amount < 0)
    outflow = sum(t.amount for t in transactions if t.amount > 0)
    return inflow, outflow


# ---------------------------------------------------------------------------
# Category breakdown
# ---------------------------------------------------------------------------


def category_breakdown(transactions: Sequence[Transaction]) -> List[CategoryBreakdownItem]:
    """
    Bucket expenses by normalized category.

    Only outflows are counted. Percentages are of total spending and sum to
    100 within rounding; an empty input yields an empty list.
    """
    totals: Dict[str, float] = defaultdict(float)
    counts: Dict[str, int] = defaultdict(int)
    for txn in transactions:
        if txn.amount <= 0:
            continue
        bucket = normalize_category(txn.category)
        totals[bucket] += txn.amount
        counts[bucket] += 1

    total_spending = sum(totals.values())
    if total_spending <= 0:
        return []

    items = [
        CategoryBreakdownItem(
            name=bucket,
            amount=round(amount, 2),
            transaction_count=counts[bucket],
            percentage=round(amount / total_spending * 100, 2),
        )
        for bucket, amount in totals.items()
    ]
    items.sort(key=lambda item: item.amount, reverse=True)
    return items


# ---------------------------------------------------------------------------
# Time-bucketed segments
# ---------------------------------------------------------------------------


def _build_segments(start: date, end: date, granularity: Granularity) -> List[CashFlowSegment]:
    segments: List[CashFlowSegment] = []
    if granularity == Granularity.DAILY:
        for day in generate_date_range(start, end):
            segments.append(CashFlowSegment(period=day.isoformat(), start_date=day, end_date=day))
    elif granularity == Granularity.WEEKLY:
        week_start = start
        index = 1
        while week_start <= end:
            week_end = min(week_start + timedelta(days=6), end)
            segments.append(CashFlowSegment(period=f"Week {index}", start_date=week_start, end_date=week_end))
            week_start = week_end + timedelta(days=1)
            index += 1
    else:
        month_start = start
        while month_start <= end:
            if month_start.month == 12:
                next_month = date(month_start.year + 1, 1, 1)
            else:
                next_month = date(month_start.year, month_start.month + 1, 1)
            month_end = min(next_month - timedelta(days=1), end)
            segments.append(
                CashFlowSegment(
                    period=month_start.strftime("%B %Y"),
                    start_date=month_start,
                    end_date=month_end,
                )
            )
            month_start = next_month
    return segments


def segment_cash_flow(
    transactions: Sequence[Transaction],
    start: date,
    end: date,
) -> List[CashFlowSegment]:
    """
    Partition [start, end] into daily/weekly/monthly segments and sum flows.

    Granularity follows the window length (see granularity_for). Transactions
    outside the window are ignored.
    """
    segments = _build_segments(start, end, granularity_for(start, end))
    for txn in transactions:
        if txn.date < start or txn.date > end:
            continue
        for segment in segments:
            if segment.start_date <= txn.date <= segment.end_date:
                if txn.amount > 0:
                    segment.outflow += txn.amount
                else:
                    segment.inflow += -txn.amount
                break

    for segment in segments:
        segment.inflow = round(segment.inflow, 2)
        segment.outflow = round(segment.outflow, 2)
    return segments


def daily_trends(transactions: Sequence[Transaction], start: date, end: date) -> List[dict]:
    """Daily inflow/outflow/net flow with a running balance over the window"""
    by_date: Dict[date, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        by_date[txn.date].append(txn)

    trends = []
    running = 0.0
    for day in generate_date_range(start, end):
        inflow, outflow = split_flows(by_date.get(day, []))
        net = inflow - outflow
        running += net
        trends.append(
            {
                "date": day.isoformat(),
                "inflow": round(inflow, 2),
                "outflow": round(outflow, 2),
                "net_flow": round(net, 2),
                "running_balance": round(running, 2),
            }
        )
    return trends


def growth_rate(trends: Sequence[dict]) -> float:
    """Percent change in net flow between the first and second half of the window"""
    if len(trends) < 2:
        return 0.0
    middle = len(trends) // 2
    first = sum(t["net_flow"] for t in trends[:middle])
    second = sum(t["net_flow"] for t in trends[middle:])
    if first == 0:
        return 0.0
    return round((second - first) / abs(first) * 100, 2)


def volatility(trends: Sequence[dict]) -> float:
    """Population standard deviation of daily net flow"""
    if len(trends) < 2:
        return 0.0
    return round(statistics.pstdev(t["net_flow"] for t in trends), 2)


def daily_summary(transactions: Sequence[Transaction]) -> List[dict]:
    """Signed total and count per day, newest first"""
    totals: Dict[date, float] = defaultdict(float)
    counts: Dict[date, int] = defaultdict(int)
    for txn in transactions:
        totals[txn.date] += txn.amount
        counts[txn.date] += 1
    return [
        {"date": day.isoformat(), "total_amount": round(totals[day], 2), "transaction_count": counts[day]}
        for day in sorted(totals, reverse=True)
    ]


# ---------------------------------------------------------------------------
# Recurring expenses
# ---------------------------------------------------------------------------


def classify_frequency(mean_gap_days: float) -> str:
    for upper, label in FREQUENCY_CLASSES:
        if mean_gap_days <= upper:
            return label
    return ANNUAL


def gap_tolerance_days(window_length_days: int) -> float:
    """Maximum std-dev of day gaps still considered a regular cadence"""
    if window_length_days <= 31:
        return 2.0
    if window_length_days <= 92:
        return 4.0
    return 7.0


def detect_recurring_expenses(
    transactions: Sequence[Transaction],
    start: date,
    end: date,
) -> List[RecurringExpense]:
    """
    Find expenses that repeat on a regular cadence.

    Algorithm:
    - Group outflows by (merchant-or-description, amount)
    - Skip groups with a single occurrence
    - Compute mean and std-dev of day gaps between consecutive occurrences
    - Recurring when the gap std-dev is within the window's tolerance
    - Frequency class from the mean gap
    - Unusual change when a later charge from the same merchant, one that is
      not part of another recurring group, deviates more than 10% from the
      group's mean amount
    """
    expenses = [t for t in transactions if t.amount > 0 and start <= t.date <= end]
    groups: Dict[Tuple[str, float], List[Transaction]] = defaultdict(list)

    for txn in sorted(expenses, key=lambda t: t.date):
        groups[(_counterparty(txn).lower(), round(txn.amount, 2))].append(txn)

    tolerance = gap_tolerance_days(window_days(start, end))
    cadences: Dict[Tuple[str, float], Tuple[float, float]] = {}
    for key, occurrences in groups.items():
        if len(occurrences) < 2:
            continue
        gaps = [
            (occurrences[i].date - occurrences[i - 1].date).days
            for i in range(1, len(occurrences))
        ]
        gap_std = statistics.pstdev(gaps)
        if gap_std <= tolerance:
            cadences[key] = (statistics.mean(gaps), gap_std)

    # charges outside any recurring group, newest last
    loose_by_merchant: Dict[str, List[Transaction]] = defaultdict(list)
    for key, occurrences in groups.items():
        if key not in cadences:
            loose_by_merchant[key[0]].extend(occurrences)
    for charges in loose_by_merchant.values():
        charges.sort(key=lambda t: t.date)

    recurring: List[RecurringExpense] = []

    for (merchant_key, amount), (mean_gap, gap_std) in cadences.items():
        occurrences = groups[(merchant_key, amount)]
        mean_amount = statistics.mean(t.amount for t in occurrences)
        last_date = occurrences[-1].date

        later = [t for t in loose_by_merchant.get(merchant_key, []) if t.date >= last_date]
        latest = later[-1] if later else occurrences[-1]
        unusual = (
            mean_amount > 0
            and abs(latest.amount - mean_amount) / mean_amount > UNUSUAL_CHANGE_THRESHOLD
        )

        recurring.append(
            RecurringExpense(
                name=_counterparty(occurrences[-1]),
                amount=round(mean_amount, 2),
                frequency=classify_frequency(mean_gap),
                occurrences=len(occurrences),
                mean_gap_days=round(mean_gap, 2),
                gap_std_days=round(gap_std, 2),
                last_date=last_date,
                next_expected_date=last_date + timedelta(days=round(mean_gap)),
                unusual_change=unusual,
                latest_amount=round(latest.amount, 2) if unusual else None,
            )
        )

    recurring.sort(key=lambda r: r.amount, reverse=True)
    return recurring


# ---------------------------------------------------------------------------
# Income
# ---------------------------------------------------------------------------


def income_stability(transactions: Sequence[Transaction]) -> float:
    """1 - coefficient of variation of monthly income, clamped to [0, 1]"""
    monthly: Dict[str, float] = defaultdict(float)
    for txn in transactions:
        if txn.amount < 0:
            monthly[txn.date.strftime("%Y-%m")] += -txn.amount

    incomes = list(monthly.values())
    if len(incomes) < 2:
        return 0.0
    mean = statistics.mean(incomes)
    if mean == 0:
        return 0.0
    return round(_clamp(1 - statistics.pstdev(incomes) / mean, 0.0, 1.0), 4)


def year_over_year_growth(transactions: Sequence[Transaction]) -> float:
    yearly: Dict[int, float] = defaultdict(float)
    for txn in transactions:
        if txn.amount < 0:
            yearly[txn.date.year] += -txn.amount
    years = sorted(yearly)
    if len(years) < 2 or yearly[years[0]] == 0:
        return 0.0
    oldest, latest = yearly[years[0]], yearly[years[-1]]
    return round((latest - oldest) / oldest * 100, 2)


def source_diversity(amounts: Sequence[float]) -> float:
    """Shannon entropy of income shares, scaled to 0-100"""
    total = sum(amounts)
    if total <= 0:
        return 0.0
    entropy = -sum((a / total) * math.log2(a / total) for a in amounts if a > 0)
    return round(min(100.0, entropy * 50), 2)


def income_sources(transactions: Sequence[Transaction]) -> List[dict]:
    """Inflows grouped by payer, largest first, with frequency and share"""
    by_source: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in sorted(transactions, key=lambda t: t.date):
        if txn.amount < 0:
            by_source[_counterparty(txn)].append(txn)

    total = sum(-t.amount for txns in by_source.values() for t in txns)
    sources = []
    for name, txns in by_source.items():
        amount = sum(-t.amount for t in txns)
        if len(txns) >= 2:
            gaps = [(txns[i].date - txns[i - 1].date).days for i in range(1, len(txns))]
            frequency = classify_frequency(statistics.mean(gaps))
        else:
            frequency = "one-time"
        sources.append(
            {
                "name": name,
                "amount": round(amount, 2),
                "frequency": frequency,
                "percentage": round(amount / total * 100, 2) if total else 0.0,
            }
        )
    sources.sort(key=lambda s: s["amount"], reverse=True)
    return sources


def income_analysis(transactions: Sequence[Transaction]) -> dict:
    sources = income_sources(transactions)
    total = sum(s["amount"] for s in sources)
    primary = sources[0]["amount"] if sources else 0.0
    return {
        "total_income": round(total, 2),
        "primary_income": round(primary, 2),
        "secondary_income": round(total - primary, 2),
        "income_source_diversity": source_diversity([s["amount"] for s in sources]),
        "income_stability": income_stability(transactions),
        "year_over_year_growth": year_over_year_growth(transactions),
        "sources": sources,
    }


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


def monthly_variation(transactions: Sequence[Transaction]) -> float:
    """Coefficient of variation of monthly spending, in percent"""
    monthly: Dict[str, float] = defaultdict(float)
    for txn in transactions:
        if txn.amount > 0:
            monthly[txn.date.strftime("%Y-%m")] += txn.amount
    totals = list(monthly.values())
    if len(totals) < 2:
        return 0.0
    mean = statistics.mean(totals)
    return round(statistics.pstdev(totals) / mean * 100, 2) if mean else 0.0


def expense_analysis(transactions: Sequence[Transaction]) -> dict:
    """Split spending into fixed/variable and essential/discretionary buckets"""
    inflow, outflow = split_flows(transactions)
    breakdown = category_breakdown(transactions)

    fixed = sum(item.amount for item in breakdown if item.name in FIXED_BUCKETS)
    essential = sum(item.amount for item in breakdown if item.name in ESSENTIAL_BUCKETS)

    return {
        "total_expenses": round(outflow, 2),
        "total_income": round(inflow, 2),
        "fixed_expenses": round(fixed, 2),
        "variable_expenses": round(outflow - fixed, 2),
        "essential_expenses": round(essential, 2),
        "discretionary_expenses": round(outflow - essential, 2),
        "expense_to_income_ratio": round(outflow / inflow, 4) if inflow > 0 else None,
        "monthly_variation": monthly_variation(transactions),
        "categories": [
            {
                "name": item.name,
                "amount": item.amount,
                "percentage": item.percentage,
                "is_fixed": item.name in FIXED_BUCKETS,
                "is_essential": item.name in ESSENTIAL_BUCKETS,
            }
            for item in breakdown
        ],
    }


# ---------------------------------------------------------------------------
# Health score
# ---------------------------------------------------------------------------


def health_metrics(
    transactions: Sequence[Transaction],
    total_balance: float,
    window_length_days: int,
) -> HealthMetrics:
    """
    Raw inputs to the health score.

    - expense_coverage: income / expenses over the window
    - cash_buffer: balance / average monthly expenses (months of runway)
    - savings_rate: share of income not spent, in percent
    - debt_to_income_ratio: expenses / income
    """
    inflow, outflow = split_flows(transactions)
    monthly_expenses = outflow / max(window_length_days, 1) * 30

    if outflow > 0:
        coverage = inflow / outflow
    else:
        coverage = 1.0 if inflow == 0 else 2.0

    return HealthMetrics(
        income_stability=income_stability(transactions),
        expense_coverage=round(coverage, 4),
        savings_rate=round((inflow - outflow) / inflow * 100, 2) if inflow > 0 else 0.0,
        cash_buffer=round(total_balance / monthly_expenses, 4) if monthly_expenses > 0 else (
            12.0 if total_balance > 0 else 0.0
        ),
        debt_to_income_ratio=round(outflow / inflow, 4) if inflow > 0 else (1.0 if outflow > 0 else 0.0),
    )


def overall_health_score(metrics: HealthMetrics) -> float:
    """Weighted 0-100 composite; each component is clamped before weighting"""
    components = {
        "income_stability": _clamp(metrics.income_stability * 100),
        "expense_coverage": _clamp(metrics.expense_coverage * 50),
        "savings_rate": _clamp(metrics.savings_rate * 2),
        "cash_buffer": _clamp(metrics.cash_buffer * 25),
        "debt_to_income_ratio": _clamp((1 - metrics.debt_to_income_ratio) * 100),
    }
    score = sum(components[name] * weight for name, weight in HEALTH_WEIGHTS.items())
    return round(_clamp(score), 2)


def recommendations(metrics: HealthMetrics) -> List[str]:
    tips = []
    if metrics.savings_rate < 20:
        tips.append("Consider increasing your savings rate to at least 20% of your income.")
    if metrics.cash_buffer < 3:
        tips.append("Work on building an emergency fund to cover at least 3 months of expenses.")
    if metrics.debt_to_income_ratio > 0.43:
        tips.append("Your spending is high relative to income. Look for expenses you can reduce.")
    if metrics.expense_coverage < 1:
        tips.append("Your income does not cover your expenses for this period.")
    return tips


def health_score(
    transactions: Sequence[Transaction],
    total_balance: float,
    window_length_days: int,
) -> HealthScore:
    metrics = health_metrics(transactions, total_balance, window_length_days)
    return HealthScore(
        score=overall_health_score(metrics),
        metrics=metrics,
        recommendations=recommendations(metrics),
    )


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------


def risk_level(predicted_inflow: float, predicted_outflow: float) -> str:
    net = predicted_inflow - predicted_outflow
    ratio = predicted_inflow / (predicted_outflow or 1)
    if net > 0 and ratio > 1.5:
        return "LOW"
    if net < 0 or ratio < 0.8:
        return "HIGH"
    return "MEDIUM"


def forecast_cash_flow(
    transactions: Sequence[Transaction],
    start: date,
    end: date,
    horizon_days: Optional[int] = None,
) -> dict:
    """
    Project daily flows forward from weekday averages observed in the window.

    The horizon defaults to the window length (capped at 90 days). Confidence
    falls as daily net flow becomes more volatile; no history means zero
    confidence.
    """
    days = generate_date_range(start, end)
    horizon = horizon_days or min(len(days), 90)

    weekday_counts: Dict[int, int] = defaultdict(int)
    for day in days:
        weekday_counts[day.weekday()] += 1

    weekday_inflow: Dict[int, float] = defaultdict(float)
    weekday_outflow: Dict[int, float] = defaultdict(float)
    for txn in transactions:
        if start <= txn.date <= end:
            if txn.amount > 0:
                weekday_outflow[txn.date.weekday()] += txn.amount
            else:
                weekday_inflow[txn.date.weekday()] += -txn.amount

    predictions = []
    for offset in range(1, horizon + 1):
        day = end + timedelta(days=offset)
        count = weekday_counts.get(day.weekday()) or 1
        inflow = weekday_inflow[day.weekday()] / count
        outflow = weekday_outflow[day.weekday()] / count
        predictions.append(
            {
                "date": day.isoformat(),
                "inflow": round(inflow, 2),
                "outflow": round(outflow, 2),
                "net_flow": round(inflow - outflow, 2),
            }
        )

    predicted_inflow = round(sum(p["inflow"] for p in predictions), 2)
    predicted_outflow = round(sum(p["outflow"] for p in predictions), 2)

    trends = daily_trends(transactions, start, end)
    mean_abs = statistics.mean(abs(t["net_flow"]) for t in trends) if trends else 0.0
    if mean_abs == 0:
        confidence = 0.0
    else:
        cv = statistics.pstdev(t["net_flow"] for t in trends) / mean_abs
        confidence = round(_clamp(100 - cv * 20), 2)

    return {
        "predicted_inflow": predicted_inflow,
        "predicted_outflow": predicted_outflow,
        "predicted_net_position": round(predicted_inflow - predicted_outflow, 2),
        "confidence_score": confidence,
        "risk_level": risk_level(predicted_inflow, predicted_outflow),
        "predictions": predictions,
    }
