"""/api/cash-flow - cash-flow analytics over a time frame"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from blink_backend.api.dependencies import get_current_user
from blink_backend.api.v1.schemas import (
    ApiResponse,
    CashFlowAnalysisOut,
    ExpenseAnalysisOut,
    ForecastOut,
    HealthScoreOut,
    IncomeAnalysisOut,
    TrendsOut,
)
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.session import get_db
from blink_backend.services import insights

router = APIRouter()

# Accepts every spelling the parser knows (LAST_MONTH, MTD, month, ...)
TimeFrameQuery = Query("LAST_MONTH", alias="timeFrame")


@router.get("/analysis", response_model=ApiResponse[CashFlowAnalysisOut])
def analysis(
    time_frame: str = TimeFrameQuery,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Totals, period segments, category breakdown and recurring expenses"""
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=CashFlowAnalysisOut.model_validate(insights.cash_flow_analysis(window)))


@router.get("/trends", response_model=ApiResponse[TrendsOut])
def trends(
    time_frame: str = TimeFrameQuery,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=TrendsOut.model_validate(insights.cash_flow_trends(window)))


@router.get("/health-score", response_model=ApiResponse[HealthScoreOut])
def health_score(
    time_frame: str = TimeFrameQuery,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    balance = insights.total_balance(db, current_user.id)
    return ApiResponse(data=HealthScoreOut.model_validate(insights.health(window, balance)))


@router.get("/income-analysis", response_model=ApiResponse[IncomeAnalysisOut])
def income_analysis(
    time_frame: str = TimeFrameQuery,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=IncomeAnalysisOut.model_validate(insights.income(window)))


@router.get("/expense-analysis", response_model=ApiResponse[ExpenseAnalysisOut])
def expense_analysis(
    time_frame: str = TimeFrameQuery,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=ExpenseAnalysisOut.model_validate(insights.expenses(window)))


@router.get("/forecast", response_model=ApiResponse[ForecastOut])
def forecast(
    time_frame: str = TimeFrameQuery,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Project flows forward from the window's weekday pattern"""
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=ForecastOut.model_validate(insights.forecast(window)))
