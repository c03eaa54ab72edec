"""Analytics use cases - load a user's window of transactions and run the aggregators"""

import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from blink_backend.domain import analytics
from blink_backend.domain.models import Transaction
from blink_backend.domain.time_frames import TimeFrame, date_range, granularity_for, parse_time_frame, window_days
from blink_backend.infrastructure.database.repositories import BankAccountRepository, TransactionRepository
from blink_backend.utils.date_utils import utcnow

# Occurrences per month for each recurring frequency class
MONTHLY_MULTIPLIER = {
    "weekly": 30 / 7,
    "bi-weekly": 30 / 14,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "annual": 1 / 12,
}


class TransactionWindow:
    """A user's stored transactions over one resolved time frame"""

    def __init__(self, time_frame: TimeFrame, start: date, end: date, transactions: List[Transaction]):
        self.time_frame = time_frame
        self.start = start
        self.end = end
        self.transactions = transactions

    @property
    def days(self) -> int:
        return window_days(self.start, self.end)


def load_window(
    db: Session,
    user_id: uuid.UUID,
    raw_time_frame: str,
    today: Optional[date] = None,
) -> TransactionWindow:
    time_frame = parse_time_frame(raw_time_frame)
    start, end = date_range(time_frame, today or utcnow().date())
    rows = TransactionRepository(db).list_for_user(user_id, start, end)
    return TransactionWindow(time_frame, start, end, [TransactionRepository.to_record(r) for r in rows])


def total_balance(db: Session, user_id: uuid.UUID) -> float:
    """Sum of current balances (available where current is unknown)"""
    total = 0.0
    for account in BankAccountRepository(db).list_for_user(user_id):
        balance = account.current_balance if account.current_balance is not None else account.available_balance
        total += float(balance or 0)
    return total


def spending_summary(window: TransactionWindow) -> dict:
    inflow, outflow = analytics.split_flows(window.transactions)
    return {
        "time_frame": window.time_frame.value,
        "start_date": window.start,
        "end_date": window.end,
        "total_spending": round(outflow, 2),
        "total_income": round(inflow, 2),
        "categories": analytics.category_breakdown(window.transactions),
    }


def recurring_summary(window: TransactionWindow) -> dict:
    expenses = analytics.detect_recurring_expenses(window.transactions, window.start, window.end)
    monthly = sum(e.amount * MONTHLY_MULTIPLIER.get(e.frequency, 0.0) for e in expenses)
    return {
        "time_frame": window.time_frame.value,
        "total_monthly_estimate": round(monthly, 2),
        "expenses": expenses,
    }


def cash_flow_analysis(window: TransactionWindow) -> dict:
    """Totals, time-bucketed segments, category breakdown and recurring expenses"""
    inflow, outflow = analytics.split_flows(window.transactions)
    segments = analytics.segment_cash_flow(window.transactions, window.start, window.end)
    return {
        "time_frame": window.time_frame.value,
        "start_date": window.start,
        "end_date": window.end,
        "granularity": granularity_for(window.start, window.end).value,
        "total_inflow": round(inflow, 2),
        "total_outflow": round(outflow, 2),
        "net_cash_flow": round(inflow - outflow, 2),
        "segments": [
            {
                "period": s.period,
                "start_date": s.start_date,
                "end_date": s.end_date,
                "inflow": s.inflow,
                "outflow": s.outflow,
                "net_flow": round(s.net_flow, 2),
            }
            for s in segments
        ],
        "category_breakdown": analytics.category_breakdown(window.transactions),
        "recurring_expenses": analytics.detect_recurring_expenses(window.transactions, window.start, window.end),
    }


def cash_flow_trends(window: TransactionWindow) -> dict:
    daily = analytics.daily_trends(window.transactions, window.start, window.end)
    inflow, outflow = analytics.split_flows(window.transactions)
    return {
        "time_frame": window.time_frame.value,
        "daily": daily,
        "growth_rate": analytics.growth_rate(daily),
        "volatility": analytics.volatility(daily),
        "cash_flow_ratio": round(inflow / outflow, 4) if outflow > 0 else 0.0,
    }


def health(window: TransactionWindow, balance: float) -> dict:
    result = analytics.health_score(window.transactions, balance, window.days)
    return {
        "time_frame": window.time_frame.value,
        "score": result.score,
        "metrics": result.metrics,
        "recommendations": result.recommendations,
    }


def income(window: TransactionWindow) -> dict:
    return {"time_frame": window.time_frame.value, **analytics.income_analysis(window.transactions)}


def expenses(window: TransactionWindow) -> dict:
    return {"time_frame": window.time_frame.value, **analytics.expense_analysis(window.transactions)}


def forecast(window: TransactionWindow) -> dict:
    return {
        "time_frame": window.time_frame.value,
        **analytics.forecast_cash_flow(window.transactions, window.start, window.end),
    }


def daily_summary(db: Session, user_id: uuid.UUID, days: int, today: Optional[date] = None) -> List[dict]:
    end = today or utcnow().date()
    start = date.fromordinal(end.toordinal() - days + 1)
    rows = TransactionRepository(db).list_for_user(user_id, start, end)
    summary = analytics.daily_summary([TransactionRepository.to_record(r) for r in rows])
    # Client convention: money in is positive
    return [{**item, "total_amount": -item["total_amount"]} for item in summary]
