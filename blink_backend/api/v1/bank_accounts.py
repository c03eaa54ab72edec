"""/api/bank-accounts - linked account details"""

from collections import Counter

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from blink_backend.api.dependencies import get_current_user
from blink_backend.api.v1.schemas import ApiResponse, BankAccountDetailsOut, BankAccountOut, BankAccountSummary
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.repositories import BankAccountRepository
from blink_backend.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/details", response_model=ApiResponse[BankAccountDetailsOut])
def bank_account_details(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Stored accounts, newest first, with a summary by type and total balance"""
    accounts = list(reversed(BankAccountRepository(db).list_for_user(current_user.id)))

    summary = BankAccountSummary(
        total_accounts=len(accounts),
        account_types=dict(Counter(a.account_type or "unknown" for a in accounts)),
        total_balance=round(sum(float(a.current_balance or 0) for a in accounts), 2),
        oldest_account=accounts[-1].created_at if accounts else None,
        newest_account=accounts[0].created_at if accounts else None,
    )
    return ApiResponse(
        data=BankAccountDetailsOut(
            summary=summary,
            accounts=[BankAccountOut.model_validate(a) for a in accounts],
        )
    )
