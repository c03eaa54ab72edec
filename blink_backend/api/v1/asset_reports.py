"""/api/asset-reports - request a Plaid asset report over the user's linked items"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from blink_backend.api.dependencies import get_current_user, get_plaid_client, get_settings
from blink_backend.api.v1.schemas import ApiResponse, AssetReportOut, AssetReportRequest
from blink_backend.config import Settings
from blink_backend.domain.exceptions import DomainRuleError, NotFoundError
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.repositories import AssetReportRepository, BankAccountRepository
from blink_backend.infrastructure.database.session import get_db

router = APIRouter()

ASSETS_PRODUCT = "assets"


@router.post("/create", response_model=ApiResponse[AssetReportOut], status_code=201)
async def create_asset_report(
    body: AssetReportRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    """
    Create an asset report covering every linked item.

    Every item must have the assets product available or billed; otherwise
    the request is rejected before Plaid is asked to build the report.
    """
    accounts = BankAccountRepository(db).list_for_user(current_user.id)
    if not accounts:
        raise NotFoundError("No bank accounts found for this user.")
    access_tokens = sorted({a.plaid_access_token for a in accounts})

    items = await asyncio.gather(*(plaid.get_item(token) for token in access_tokens))
    missing = [
        item.get("item_id")
        for item in items
        if ASSETS_PRODUCT not in (item.get("available_products") or []) + (item.get("billed_products") or [])
    ]
    if missing:
        raise DomainRuleError(
            "Assets product is not enabled for all linked items.",
            details={"error_code": "PRODUCT_NOT_ENABLED", "item_ids": missing},
        )

    created = await plaid.create_asset_report(access_tokens, body.days_requested, settings.plaid_webhook_url)
    report = AssetReportRepository(db).create(
        user_id=current_user.id,
        asset_report_token=created["asset_report_token"],
        asset_report_id=created["asset_report_id"],
        days_requested=body.days_requested,
    )
    db.commit()
    logging.info("Asset report requested", extra={"user_id": str(current_user.id), "asset_report_id": report.asset_report_id})
    return ApiResponse(data=AssetReportOut.model_validate(report), message="Asset report creation started.")
