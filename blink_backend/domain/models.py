"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class TransferSpeed(str, Enum):
    INSTANT = "instant"
    STANDARD = "standard"


class AdvanceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DISBURSED = "disbursed"
    REPAID = "repaid"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


@dataclass
class Transaction:
    """Stored transaction as seen by the analytics layer.

    Sign convention: positive amount = outflow (expense), negative = inflow.
    """

    transaction_id: str
    date: date
    amount: float
    description: str = ""
    merchant_name: Optional[str] = None
    category: Optional[str] = None


@dataclass
class AdvanceQuote:
    """Fee breakdown for a requested advance"""

    amount: Decimal
    transfer_speed: TransferSpeed
    base_fee: Decimal
    discount_percentage: Optional[Decimal]
    final_fee: Decimal
    total_repayment_amount: Decimal
    repayment_date: date
    repayment_term_days: int


@dataclass
class PlaidAccount:
    """Account returned by Plaid /accounts/get"""

    account_id: str
    name: str
    type: str
    subtype: Optional[str]
    mask: Optional[str]
    available_balance: Optional[float]
    current_balance: Optional[float]
    currency: str = "USD"


@dataclass
class PlaidTransaction:
    """Added/modified transaction from Plaid /transactions/sync"""

    transaction_id: str
    account_id: str
    amount: float
    date: date
    name: str
    original_description: Optional[str]
    category: Optional[str]
    category_detailed: Optional[str]
    merchant_name: Optional[str]
    pending: bool


@dataclass
class SyncPage:
    """One page of a transactions sync"""

    added: List[PlaidTransaction]
    modified: List[PlaidTransaction]
    removed: List[str]
    next_cursor: str
    has_more: bool


@dataclass
class SyncStats:
    """Aggregate change counts across synced accounts"""

    added: int = 0
    modified: int = 0
    removed: int = 0

    def merge(self, other: "SyncStats") -> None:
        self.added += other.added
        self.modified += other.modified
        self.removed += other.removed


@dataclass
class CategoryBreakdownItem:
    name: str
    amount: float
    transaction_count: int
    percentage: float


@dataclass
class CashFlowSegment:
    period: str
    start_date: date
    end_date: date
    inflow: float = 0.0
    outflow: float = 0.0

    @property
    def net_flow(self) -> float:
        return self.inflow - self.outflow


@dataclass
class RecurringExpense:
    name: str
    amount: float
    frequency: str
    occurrences: int
    mean_gap_days: float
    gap_std_days: float
    last_date: date
    next_expected_date: date
    unusual_change: bool = False
    latest_amount: Optional[float] = None


@dataclass
class HealthMetrics:
    income_stability: float
    expense_coverage: float
    savings_rate: float
    cash_buffer: float
    debt_to_income_ratio: float


@dataclass
class HealthScore:
    score: float
    metrics: HealthMetrics
    recommendations: List[str] = field(default_factory=list)
