"""Pydantic schemas for API request/response validation

Wire format is camelCase; every response is wrapped in ApiResponse.
"""

from datetime import date, datetime
from typing import Dict, Generic, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from blink_backend.domain.models import TransferSpeed

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: {success, data, message?}"""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class RegisterInitialRequest(CamelModel):
    email: EmailStr


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    otp: str = Field(..., min_length=4, max_length=12)


class ResendOtpRequest(CamelModel):
    email: EmailStr


class RegisterCompleteRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    state: Optional[str] = None
    zipcode: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserProfile(CamelModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    state: Optional[str] = None
    zipcode: Optional[str] = None
    email_verified: bool
    created_at: datetime


class AuthResult(CamelModel):
    token: str
    user: UserProfile


# ---------------------------------------------------------------------------
# Plaid / bank accounts / transactions
# ---------------------------------------------------------------------------


class UserScopedRequest(CamelModel):
    """Body that may name the caller explicitly; any other user is forbidden"""

    user_id: Optional[UUID] = None


class ExchangePublicTokenRequest(UserScopedRequest):
    public_token: str = Field(..., min_length=1)


class SandboxPublicTokenRequest(CamelModel):
    institution_id: str = "ins_109508"


class GetTransactionsRequest(UserScopedRequest):
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class LinkTokenOut(CamelModel):
    link_token: str
    expiration: Optional[str] = None


class PublicTokenOut(CamelModel):
    public_token: str


class BankAccountOut(CamelModel):
    id: UUID
    account_id: str
    account_name: Optional[str] = None
    account_type: Optional[str] = None
    account_subtype: Optional[str] = None
    account_mask: Optional[str] = None
    available_balance: Optional[float] = None
    current_balance: Optional[float] = None
    currency: str = "USD"
    balances_updated_at: Optional[datetime] = None
    created_at: datetime


class BankAccountSummary(CamelModel):
    total_accounts: int
    account_types: Dict[str, int]
    total_balance: float
    oldest_account: Optional[datetime] = None
    newest_account: Optional[datetime] = None


class BankAccountDetailsOut(CamelModel):
    summary: BankAccountSummary
    accounts: List[BankAccountOut]


class BalancesOut(CamelModel):
    accounts: List[BankAccountOut]
    total_available_balance: float
    total_current_balance: float


class SyncResultOut(CamelModel):
    added: int
    modified: int
    removed: int


class TransactionOut(CamelModel):
    """Amount is shown from the user's side: positive = money in"""

    transaction_id: str
    account_id: str
    amount: float
    date: date
    description: Optional[str] = None
    original_description: Optional[str] = None
    category: Optional[str] = None
    category_detailed: Optional[str] = None
    merchant_name: Optional[str] = None
    pending: bool = False

    @classmethod
    def from_row(cls, row) -> "TransactionOut":
        return cls(
            transaction_id=row.transaction_id,
            account_id=row.account_id,
            amount=-float(row.amount),
            date=row.date,
            description=row.description,
            original_description=row.original_description,
            category=row.category,
            category_detailed=row.category_detailed,
            merchant_name=row.merchant_name,
            pending=row.pending,
        )


class TransactionPage(CamelModel):
    transactions: List[TransactionOut]
    page: int
    page_size: int
    total: int
    total_pages: int


class DailySummaryItem(CamelModel):
    date: date
    total_amount: float
    transaction_count: int


class CategoryItemOut(CamelModel):
    name: str
    amount: float
    transaction_count: int
    percentage: float


class SpendingSummaryOut(CamelModel):
    time_frame: str
    start_date: date
    end_date: date
    total_spending: float
    total_income: float
    categories: List[CategoryItemOut]


class RecurringExpenseOut(CamelModel):
    name: str
    amount: float
    frequency: str
    occurrences: int
    mean_gap_days: float
    gap_std_days: float
    last_date: date
    next_expected_date: date
    unusual_change: bool
    latest_amount: Optional[float] = None


class RecurringExpensesOut(CamelModel):
    time_frame: str
    total_monthly_estimate: float
    expenses: List[RecurringExpenseOut]


class AssetReportRequest(CamelModel):
    days_requested: int = Field(90, ge=1, le=730)


class AssetReportOut(CamelModel):
    id: UUID
    asset_report_id: str
    asset_report_token: str
    days_requested: int
    status: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Advances
# ---------------------------------------------------------------------------


class CreateAdvanceRequest(CamelModel):
    """Either repaymentTermDays or repaymentDate, never both"""

    bank_account_id: UUID
    transfer_speed: TransferSpeed
    repayment_term_days: Optional[int] = Field(None, ge=1)
    repayment_date: Optional[date] = None

    @field_validator("transfer_speed", mode="before")
    @classmethod
    def normalize_speed(cls, value):
        return value.lower() if isinstance(value, str) else value


class UpdateAdvanceStatusRequest(CamelModel):
    status: str = Field(..., min_length=1)
    reference: Optional[str] = None


class AdvanceOut(CamelModel):
    id: UUID
    user_id: UUID
    bank_account_id: UUID
    amount: float
    transfer_speed: str
    repayment_term_days: int
    repayment_date: date
    base_fee: float
    discount_percentage: Optional[float] = None
    final_fee: float
    total_repayment_amount: float
    status: str
    reference: Optional[str] = None
    disbursement_reference: Optional[str] = None
    repayment_reference: Optional[str] = None
    plaid_transfer_id: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None
    repaid_at: Optional[datetime] = None
    defaulted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class ApprovalStatusOut(CamelModel):
    is_eligible: bool
    reason: Optional[str] = None
    active_advance: Optional[AdvanceOut] = None
    advance_amount: float
    fee_instant: float
    fee_standard: float
    discount_percentage: float
    discount_window_days: int
    max_repayment_days: int


# ---------------------------------------------------------------------------
# Cash flow
# ---------------------------------------------------------------------------


class SegmentOut(CamelModel):
    period: str
    start_date: date
    end_date: date
    inflow: float
    outflow: float
    net_flow: float


class CashFlowAnalysisOut(CamelModel):
    time_frame: str
    start_date: date
    end_date: date
    granularity: str
    total_inflow: float
    total_outflow: float
    net_cash_flow: float
    segments: List[SegmentOut]
    category_breakdown: List[CategoryItemOut]
    recurring_expenses: List[RecurringExpenseOut]


class TrendPoint(CamelModel):
    date: date
    inflow: float
    outflow: float
    net_flow: float
    running_balance: float


class TrendsOut(CamelModel):
    time_frame: str
    daily: List[TrendPoint]
    growth_rate: float
    volatility: float
    cash_flow_ratio: float


class HealthMetricsOut(CamelModel):
    income_stability: float
    expense_coverage: float
    savings_rate: float
    cash_buffer: float
    debt_to_income_ratio: float


class HealthScoreOut(CamelModel):
    time_frame: str
    score: float
    metrics: HealthMetricsOut
    recommendations: List[str]


class IncomeSourceOut(CamelModel):
    name: str
    amount: float
    frequency: str
    percentage: float


class IncomeAnalysisOut(CamelModel):
    time_frame: str
    total_income: float
    primary_income: float
    secondary_income: float
    income_source_diversity: float
    income_stability: float
    year_over_year_growth: float
    sources: List[IncomeSourceOut]


class ExpenseCategoryOut(CamelModel):
    name: str
    amount: float
    percentage: float
    is_fixed: bool
    is_essential: bool


class ExpenseAnalysisOut(CamelModel):
    time_frame: str
    total_expenses: float
    total_income: float
    fixed_expenses: float
    variable_expenses: float
    essential_expenses: float
    discretionary_expenses: float
    expense_to_income_ratio: Optional[float] = None
    monthly_variation: float
    categories: List[ExpenseCategoryOut]


class ForecastPoint(CamelModel):
    date: date
    inflow: float
    outflow: float
    net_flow: float


class ForecastOut(CamelModel):
    time_frame: str
    predicted_inflow: float
    predicted_outflow: float
    predicted_net_position: float
    confidence_score: float
    risk_level: str
    predictions: List[ForecastPoint]
