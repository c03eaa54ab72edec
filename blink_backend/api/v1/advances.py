"""/api/blink-advances - create, inspect, transition and disburse advances"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from blink_backend.api.dependencies import (
    get_advance_policy,
    get_current_user,
    get_plaid_client,
    get_request_id,
)
from blink_backend.api.v1.schemas import (
    AdvanceOut,
    ApiResponse,
    ApprovalStatusOut,
    CreateAdvanceRequest,
    UpdateAdvanceStatusRequest,
)
from blink_backend.domain.advances import AdvancePolicy
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.models import User
from blink_backend.infrastructure.database.session import get_db
from blink_backend.infrastructure.observability.logging import log_advance_event
from blink_backend.services.advances import AdvanceService

router = APIRouter()


def get_advance_service(
    db: Session = Depends(get_db),
    policy: AdvancePolicy = Depends(get_advance_policy),
) -> AdvanceService:
    return AdvanceService(db, policy)


@router.post("", response_model=ApiResponse[AdvanceOut], status_code=201)
def create_advance(
    body: CreateAdvanceRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
):
    """
    Request a BlinkAdvance.

    Flow:
    1. Reject if the user already has a pending/approved/disbursed advance
    2. Check the bank account belongs to the user
    3. Price it: fixed amount, speed-based fee, early-repayment discount
    4. Persist in pending status
    """
    advance = service.create(
        user_id=current_user.id,
        bank_account_id=body.bank_account_id,
        transfer_speed=body.transfer_speed,
        repayment_term_days=body.repayment_term_days,
        repayment_date=body.repayment_date,
    )
    log_advance_event(
        get_request_id(request),
        str(current_user.id),
        str(advance.id),
        step="advance_created",
        status=advance.status,
        transfer_speed=advance.transfer_speed,
        final_fee=float(advance.final_fee),
    )
    return ApiResponse(data=AdvanceOut.model_validate(advance), message="Blink Advance requested successfully.")


@router.get("", response_model=ApiResponse[List[AdvanceOut]])
def list_advances(
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
):
    return ApiResponse(data=[AdvanceOut.model_validate(a) for a in service.list(current_user.id)])


@router.get("/active", response_model=ApiResponse[AdvanceOut])
def active_advance(
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
):
    advance = service.active(current_user.id)
    if advance is None:
        return ApiResponse(data=None, message="No active advance.")
    return ApiResponse(data=AdvanceOut.model_validate(advance))


@router.get("/approval-status", response_model=ApiResponse[ApprovalStatusOut])
def approval_status(
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
):
    """Eligibility for a new advance and the current terms"""
    status = service.approval_status(current_user.id)
    active = status.pop("active_advance")
    return ApiResponse(
        data=ApprovalStatusOut(
            active_advance=AdvanceOut.model_validate(active) if active is not None else None,
            **status,
        )
    )


@router.get("/{advance_id}", response_model=ApiResponse[AdvanceOut])
def get_advance(
    advance_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
):
    return ApiResponse(data=AdvanceOut.model_validate(service.get(current_user.id, advance_id)))


@router.patch("/{advance_id}/status", response_model=ApiResponse[AdvanceOut])
def update_advance_status(
    advance_id: uuid.UUID,
    body: UpdateAdvanceStatusRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
):
    """Move an advance along the transition table; illegal edges are 400"""
    advance = service.update_status(current_user.id, advance_id, body.status.strip().lower(), body.reference)
    log_advance_event(
        get_request_id(request),
        str(current_user.id),
        str(advance.id),
        step="status_updated",
        status=advance.status,
        reference=body.reference,
    )
    return ApiResponse(data=AdvanceOut.model_validate(advance), message="Blink Advance status updated.")


@router.post("/{advance_id}/disburse", response_model=ApiResponse[AdvanceOut])
async def disburse_advance(
    advance_id: uuid.UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: AdvanceService = Depends(get_advance_service),
    plaid: PlaidClient = Depends(get_plaid_client),
):
    """Start the Plaid transfer for an approved advance"""
    advance = await service.disburse(plaid, current_user, advance_id)
    log_advance_event(
        get_request_id(request),
        str(current_user.id),
        str(advance.id),
        step="disbursement_started",
        status=advance.status,
        transfer_id=advance.plaid_transfer_id,
    )
    return ApiResponse(data=AdvanceOut.model_validate(advance), message="Disbursement initiated.")
