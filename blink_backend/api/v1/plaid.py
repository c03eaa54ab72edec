"""/api/plaid - account linking, webhook, sync, transactions and spending views"""

import json
import logging
import math
import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from blink_backend.api.dependencies import (
    ensure_same_user,
    get_advance_policy,
    get_current_user,
    get_plaid_client,
    get_settings,
)
from blink_backend.api.v1.schemas import (
    ApiResponse,
    BalancesOut,
    BankAccountOut,
    CategoryItemOut,
    DailySummaryItem,
    ExchangePublicTokenRequest,
    GetTransactionsRequest,
    LinkTokenOut,
    PublicTokenOut,
    RecurringExpensesOut,
    SandboxPublicTokenRequest,
    SpendingSummaryOut,
    SyncResultOut,
    TransactionOut,
    TransactionPage,
    UserScopedRequest,
)
from blink_backend.config import Settings
from blink_backend.domain.advances import AdvancePolicy
from blink_backend.domain.exceptions import DomainRuleError
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.repositories import BankAccountRepository, TransactionRepository
from blink_backend.infrastructure.database.session import get_db
from blink_backend.infrastructure.security import verify_webhook_signature
from blink_backend.services import insights
from blink_backend.services.advances import AdvanceService
from blink_backend.services.sync import refresh_balances_for_user, sync_transactions_for_user

router = APIRouter()

WEBHOOK_PATH = "/api/plaid/webhook"
SIGNATURE_HEADER = "X-Plaid-Signature"
TRANSACTION_SYNC_CODES = ("SYNC_UPDATES_AVAILABLE", "RECURRING_TRANSACTIONS_UPDATE")


def _balances(accounts) -> BalancesOut:
    return BalancesOut(
        accounts=[BankAccountOut.model_validate(a) for a in accounts],
        total_available_balance=round(sum(float(a.available_balance or 0) for a in accounts), 2),
        total_current_balance=round(sum(float(a.current_balance or 0) for a in accounts), 2),
    )


@router.post("/webhook", response_model=ApiResponse[None])
async def plaid_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    plaid: PlaidClient = Depends(get_plaid_client),
    policy: AdvancePolicy = Depends(get_advance_policy),
):
    """
    Receive Plaid webhooks.

    The signature is an HMAC-SHA256 hex digest of the raw body. Handled:
    - TRANSACTIONS / SYNC_UPDATES_AVAILABLE, RECURRING_TRANSACTIONS_UPDATE:
      sync the item owner's transactions and refresh balances
    - TRANSFER / TRANSFER_STATUS_UPDATE: settle advance disbursements
    Everything else is acknowledged and ignored.
    """
    body = await request.body()
    if not verify_webhook_signature(settings.plaid_webhook_secret, body, request.headers.get(SIGNATURE_HEADER)):
        logging.warning("Rejected webhook with bad signature")
        raise DomainRuleError("Invalid webhook signature.")

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise DomainRuleError("Invalid webhook payload.") from e
    if not isinstance(payload, dict):
        raise DomainRuleError("Invalid webhook payload.")

    webhook_type = payload.get("webhook_type")
    webhook_code = payload.get("webhook_code")
    logging.info("Plaid webhook received", extra={"webhook_type": webhook_type, "webhook_code": webhook_code})

    if webhook_type == "TRANSACTIONS" and webhook_code in TRANSACTION_SYNC_CODES:
        account = BankAccountRepository(db).get_by_item_id(payload.get("item_id") or "")
        if account is None:
            raise DomainRuleError("Bank account not found for this item.")
        user_id = account.user_id
        stats = await sync_transactions_for_user(db, plaid, user_id)
        await refresh_balances_for_user(db, plaid, user_id)
        logging.info(
            "Webhook sync completed",
            extra={"user_id": str(user_id), "added": stats.added, "modified": stats.modified, "removed": stats.removed},
        )
        return ApiResponse(message="Webhook processed")

    if webhook_type == "TRANSFER" and webhook_code == "TRANSFER_STATUS_UPDATE":
        transfer_id = payload.get("transfer_id")
        if not transfer_id:
            raise DomainRuleError("Missing transfer_id.")
        AdvanceService(db, policy).handle_transfer_status(transfer_id, payload.get("transfer_status") or "")
        return ApiResponse(message="Webhook processed")

    return ApiResponse(message="Webhook received")


@router.post("/create_link_token", response_model=ApiResponse[LinkTokenOut])
async def create_link_token(
    current_user: User = Depends(get_current_user),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    data = await plaid.create_link_token(str(current_user.id))
    return ApiResponse(data=LinkTokenOut(link_token=data["link_token"], expiration=data.get("expiration")))


@router.post("/sandbox/public_token/create", response_model=ApiResponse[PublicTokenOut])
async def create_sandbox_public_token(
    body: SandboxPublicTokenRequest,
    current_user: User = Depends(get_current_user),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    """Sandbox-only shortcut that skips the Link UI"""
    public_token = await plaid.create_sandbox_public_token(body.institution_id)
    return ApiResponse(data=PublicTokenOut(public_token=public_token))


@router.post("/exchange_public_token", response_model=ApiResponse[List[BankAccountOut]], status_code=201)
async def exchange_public_token(
    body: ExchangePublicTokenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    """Trade a Link public token for an access token and store the item's accounts"""
    ensure_same_user(current_user, body.user_id)

    exchange = await plaid.exchange_public_token(body.public_token)
    accounts = await plaid.get_accounts(exchange["access_token"])

    linked = BankAccountRepository(db).link_accounts(
        current_user.id, exchange["access_token"], exchange["item_id"], accounts
    )
    db.commit()
    logging.info(
        "Bank accounts linked",
        extra={"user_id": str(current_user.id), "item_id": exchange["item_id"], "accounts": len(linked)},
    )
    return ApiResponse(
        data=[BankAccountOut.model_validate(a) for a in linked],
        message="Bank account linked successfully.",
    )


@router.post("/sync", response_model=ApiResponse[SyncResultOut])
async def sync(
    body: UserScopedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    ensure_same_user(current_user, body.user_id)
    stats = await sync_transactions_for_user(db, plaid, current_user.id)
    return ApiResponse(
        data=SyncResultOut(added=stats.added, modified=stats.modified, removed=stats.removed),
        message="Transactions synced successfully.",
    )


@router.post("/sync_balances", response_model=ApiResponse[BalancesOut])
async def sync_balances(
    body: UserScopedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    ensure_same_user(current_user, body.user_id)
    accounts = await refresh_balances_for_user(db, plaid, current_user.id)
    return ApiResponse(data=_balances(accounts), message="Balances updated successfully.")


@router.post("/get_transactions", response_model=ApiResponse[List[TransactionOut]])
def get_transactions(
    body: GetTransactionsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_same_user(current_user, body.user_id)
    if body.start_date and body.end_date and body.start_date > body.end_date:
        raise DomainRuleError("startDate must not be after endDate.")
    rows = TransactionRepository(db).list_for_user(current_user.id, body.start_date, body.end_date)
    return ApiResponse(data=[TransactionOut.from_row(r) for r in rows])


@router.get("/transactions", response_model=ApiResponse[TransactionPage])
def list_transactions(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = TransactionRepository(db).page_for_user(current_user.id, page, page_size, start_date, end_date)
    return ApiResponse(
        data=TransactionPage(
            transactions=[TransactionOut.from_row(r) for r in rows],
            page=page,
            page_size=page_size,
            total=total,
            total_pages=math.ceil(total / page_size) if total else 0,
        )
    )


@router.get("/balances", response_model=ApiResponse[BalancesOut])
def balances(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Last stored balances; use sync_balances to refresh from Plaid"""
    return ApiResponse(data=_balances(BankAccountRepository(db).list_for_user(current_user.id)))


@router.get("/daily-summary", response_model=ApiResponse[List[DailySummaryItem]])
def daily_summary(
    days: int = Query(15, ge=1, le=90),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=insights.daily_summary(db, current_user.id, days))


@router.get("/spending-summary", response_model=ApiResponse[SpendingSummaryOut])
def spending_summary(
    time_frame: str = Query("LAST_MONTH", alias="timeFrame"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=SpendingSummaryOut.model_validate(insights.spending_summary(window)))


@router.get("/category-analysis", response_model=ApiResponse[List[CategoryItemOut]])
def category_analysis(
    time_frame: str = Query("LAST_MONTH", alias="timeFrame"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=[CategoryItemOut.model_validate(c) for c in insights.spending_summary(window)["categories"]])


@router.get("/recurring-expenses", response_model=ApiResponse[RecurringExpensesOut])
def recurring_expenses(
    time_frame: str = Query("LAST_QUARTER", alias="timeFrame"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    window = insights.load_window(db, current_user.id, time_frame)
    return ApiResponse(data=RecurringExpensesOut.model_validate(insights.recurring_summary(window)))


@router.get("/recent-transactions/{user_id}", response_model=ApiResponse[List[TransactionOut]])
def recent_transactions(
    user_id: uuid.UUID,
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_same_user(current_user, user_id)
    rows = TransactionRepository(db).recent_for_user(current_user.id, limit)
    return ApiResponse(data=[TransactionOut.from_row(r) for r in rows])
