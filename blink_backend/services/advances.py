"""BlinkAdvance orchestration - persistence, eligibility and disbursement"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blink_backend.domain.advances import (
    TRANSITION_REFERENCES,
    TRANSITION_TIMESTAMPS,
    AdvancePolicy,
    calculate_fee,
    ensure_no_active_advance,
    resolve_repayment_date,
    validate_transition,
)
from blink_backend.domain.exceptions import (
    ActiveAdvanceExistsError,
    DomainRuleError,
    InvalidStatusTransitionError,
    NotFoundError,
    TransferDeclinedError,
)
from blink_backend.domain.models import AdvanceStatus, TransferSpeed
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.models import BlinkAdvance, User
from blink_backend.infrastructure.database.repositories import AdvanceRepository, BankAccountRepository
from blink_backend.infrastructure.observability.metrics import advances_created_counter, record_transition
from blink_backend.utils.date_utils import utcnow


class AdvanceService:
    """Advance use cases for one request; commits on success, rolls back on failure"""

    def __init__(self, db: Session, policy: AdvancePolicy):
        self.db = db
        self.policy = policy
        self.advances = AdvanceRepository(db)
        self.accounts = BankAccountRepository(db)

    def create(
        self,
        user_id: uuid.UUID,
        bank_account_id: uuid.UUID,
        transfer_speed: TransferSpeed,
        repayment_term_days: Optional[int] = None,
        repayment_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> BlinkAdvance:
        """
        Open a new advance in pending status.

        Flow:
        1. Eligibility gate: no pending/approved/disbursed advance
        2. Bank account must belong to the caller
        3. Price the advance (amount is always the policy constant)
        4. Insert; the partial unique index rejects a concurrent duplicate
        """
        issued_on = today or utcnow().date()

        ensure_no_active_advance(self.advances.statuses_for_user(user_id))

        if self.accounts.get_for_user(bank_account_id, user_id) is None:
            raise NotFoundError("Bank account not found.")

        due = resolve_repayment_date(
            issued_on, repayment_term_days, repayment_date, max_term_days=self.policy.max_repayment_days
        )
        quote = calculate_fee(self.policy, transfer_speed, issued_on, due)

        try:
            advance = self.advances.create(
                user_id=user_id,
                bank_account_id=bank_account_id,
                amount=quote.amount,
                transfer_speed=quote.transfer_speed.value,
                repayment_term_days=quote.repayment_term_days,
                repayment_date=quote.repayment_date,
                base_fee=quote.base_fee,
                discount_percentage=quote.discount_percentage,
                final_fee=quote.final_fee,
                total_repayment_amount=quote.total_repayment_amount,
                status=AdvanceStatus.PENDING.value,
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logging.warning(f"Concurrent advance rejected by index: {e.orig}", extra={"user_id": str(user_id)})
            raise ActiveAdvanceExistsError() from e

        advances_created_counter.labels(transfer_speed=quote.transfer_speed.value).inc()
        return advance

    def list(self, user_id: uuid.UUID) -> List[BlinkAdvance]:
        return self.advances.list_for_user(user_id)

    def get(self, user_id: uuid.UUID, advance_id: uuid.UUID) -> BlinkAdvance:
        """Another user's advance is indistinguishable from a missing one"""
        advance = self.advances.get_for_user(advance_id, user_id)
        if advance is None:
            raise NotFoundError("Blink Advance not found.")
        return advance

    def active(self, user_id: uuid.UUID) -> Optional[BlinkAdvance]:
        return self.advances.active_for_user(user_id)

    def approval_status(self, user_id: uuid.UUID) -> Dict[str, Any]:
        """Whether the user may open an advance now, and on what terms"""
        active = self.advances.active_for_user(user_id)
        has_account = bool(self.accounts.list_for_user(user_id))

        reason = None
        if active is not None:
            reason = "You already have an active advance."
        elif not has_account:
            reason = "Link a bank account to request an advance."

        return {
            "is_eligible": reason is None,
            "reason": reason,
            "active_advance": active,
            "advance_amount": self.policy.amount,
            "fee_instant": self.policy.fee_instant,
            "fee_standard": self.policy.fee_standard,
            "discount_percentage": self.policy.discount_percentage,
            "discount_window_days": self.policy.discount_window_days,
            "max_repayment_days": self.policy.max_repayment_days,
        }

    def transition(self, advance: BlinkAdvance, target: str, reference: Optional[str] = None) -> BlinkAdvance:
        """
        Apply one status change from the allow-list.

        Stamps the target's timestamp column and records the reference. An
        illegal edge raises before anything is written.
        """
        previous = advance.status
        target_status = validate_transition(previous, target)

        now = utcnow()
        changes: Dict[str, Any] = {"status": target_status.value, "updated_at": now}
        changes[TRANSITION_TIMESTAMPS[target_status]] = now
        if reference is not None:
            changes["reference"] = reference
            if target_status in TRANSITION_REFERENCES:
                changes[TRANSITION_REFERENCES[target_status]] = reference

        self.advances.apply_changes(advance, changes)
        self.db.commit()
        record_transition(previous, target_status.value)
        return advance

    def update_status(
        self,
        user_id: uuid.UUID,
        advance_id: uuid.UUID,
        target: str,
        reference: Optional[str] = None,
    ) -> BlinkAdvance:
        return self.transition(self.get(user_id, advance_id), target, reference)

    async def disburse(self, plaid: PlaidClient, user: User, advance_id: uuid.UUID) -> BlinkAdvance:
        """
        Send the advance amount to the user's account through Plaid Transfer.

        The advance stays approved until the transfer posts; the webhook
        handler moves it to disbursed.
        """
        advance = self.get(user.id, advance_id)
        if advance.status != AdvanceStatus.APPROVED.value:
            raise InvalidStatusTransitionError(advance.status, AdvanceStatus.DISBURSED.value)
        if advance.plaid_transfer_id:
            raise DomainRuleError("A transfer has already been created for this advance.")

        account = self.accounts.get_for_user(advance.bank_account_id, user.id)
        if account is None:
            raise NotFoundError("Bank account not found.")

        authorization = await plaid.authorize_transfer(
            access_token=account.plaid_access_token,
            account_id=account.account_id,
            amount=advance.amount,
            transfer_speed=TransferSpeed(advance.transfer_speed),
            legal_name=f"{user.first_name} {user.last_name}",
        )
        if authorization.get("decision") != "approved":
            rationale = authorization.get("decision_rationale") or {}
            raise TransferDeclinedError(
                "Transfer authorization was declined.",
                details={"code": rationale.get("code"), "description": rationale.get("description")},
            )

        transfer = await plaid.create_transfer(
            access_token=account.plaid_access_token,
            account_id=account.account_id,
            authorization_id=authorization["id"],
            description="Blink Advance",
        )

        self.advances.apply_changes(advance, {"plaid_transfer_id": transfer["id"], "updated_at": utcnow()})
        self.db.commit()
        logging.info(
            "Advance transfer created",
            extra={"advance_id": str(advance.id), "transfer_id": transfer["id"], "step": "transfer_created"},
        )
        return advance

    def handle_transfer_status(self, transfer_id: str, transfer_status: str) -> Optional[BlinkAdvance]:
        """Webhook hook: a posted transfer disburses its advance"""
        advance = self.advances.get_by_transfer_id(transfer_id)
        if advance is None:
            logging.warning("Transfer event for unknown advance", extra={"transfer_id": transfer_id})
            return None

        if transfer_status == "posted":
            if advance.status == AdvanceStatus.DISBURSED.value:
                return advance
            return self.transition(advance, AdvanceStatus.DISBURSED.value, reference=transfer_id)

        if transfer_status in ("failed", "cancelled", "returned"):
            logging.error(
                "Advance transfer did not complete",
                extra={"advance_id": str(advance.id), "transfer_id": transfer_id, "transfer_status": transfer_status},
            )
        return advance
