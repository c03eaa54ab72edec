"""Data access layer for users, accounts, transactions and advances"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from blink_backend.domain.advances import ACTIVE_STATUSES
from blink_backend.domain.models import PlaidAccount, PlaidTransaction, Transaction as TransactionRecord
from blink_backend.infrastructure.database.models import (
    AssetReport,
    BankAccount,
    BlinkAdvance,
    RegistrationSession,
    Transaction,
    User,
)
from blink_backend.utils.date_utils import utcnow

_ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]


def _money(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


class UserRepository:
    """Repository for registered users"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: uuid.UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def create(
        self,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        state: Optional[str] = None,
        zipcode: Optional[str] = None,
    ) -> User:
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            state=state,
            zipcode=zipcode,
            email_verified=True,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def list_ids_with_accounts(self) -> List[uuid.UUID]:
        """Users with at least one linked account, for the balance refresh job"""
        rows = self.db.query(BankAccount.user_id).distinct().all()
        return [row[0] for row in rows]


class RegistrationSessionRepository:
    """Repository for in-progress email verifications"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, email: str) -> Optional[RegistrationSession]:
        return self.db.query(RegistrationSession).filter(RegistrationSession.email == email.lower()).first()

    def issue_code(self, email: str, otp_code: str, expires_at: datetime) -> RegistrationSession:
        """Create the session or overwrite its code and expiry"""
        session = self.get(email)
        if session is None:
            session = RegistrationSession(email=email.lower())
            self.db.add(session)
        session.otp_code = otp_code
        session.expires_at = expires_at
        session.is_verified = False
        self.db.flush()
        return session

    def mark_verified(self, session: RegistrationSession) -> None:
        session.is_verified = True
        self.db.flush()

    def delete(self, email: str) -> None:
        self.db.query(RegistrationSession).filter(RegistrationSession.email == email.lower()).delete()

    def delete_expired(self, now: datetime) -> int:
        return (
            self.db.query(RegistrationSession)
            .filter(RegistrationSession.expires_at < now)
            .delete(synchronize_session=False)
        )


class BankAccountRepository:
    """Repository for Plaid-linked bank accounts"""

    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: uuid.UUID) -> List[BankAccount]:
        return (
            self.db.query(BankAccount)
            .filter(BankAccount.user_id == user_id)
            .order_by(BankAccount.created_at)
            .all()
        )

    def get_for_user(self, account_pk: uuid.UUID, user_id: uuid.UUID) -> Optional[BankAccount]:
        return (
            self.db.query(BankAccount)
            .filter(BankAccount.id == account_pk, BankAccount.user_id == user_id)
            .first()
        )

    def get_by_item_id(self, item_id: str) -> Optional[BankAccount]:
        return self.db.query(BankAccount).filter(BankAccount.plaid_item_id == item_id).first()

    def link_accounts(
        self,
        user_id: uuid.UUID,
        access_token: str,
        item_id: str,
        accounts: Iterable[PlaidAccount],
    ) -> List[BankAccount]:
        """Insert newly linked accounts, refreshing the credential on re-link"""
        linked = []
        for account in accounts:
            row = self.db.query(BankAccount).filter(BankAccount.account_id == account.account_id).first()
            if row is None:
                row = BankAccount(user_id=user_id, account_id=account.account_id)
                self.db.add(row)
            row.plaid_access_token = access_token
            row.plaid_item_id = item_id
            row.account_name = account.name
            row.account_type = account.type
            row.account_subtype = account.subtype
            row.account_mask = account.mask
            self._apply_balances(row, account)
            linked.append(row)
        self.db.flush()
        return linked

    def update_balances(self, row: BankAccount, account: PlaidAccount) -> None:
        self._apply_balances(row, account)
        self.db.flush()

    @staticmethod
    def _apply_balances(row: BankAccount, account: PlaidAccount) -> None:
        row.available_balance = _money(account.available_balance)
        row.current_balance = _money(account.current_balance)
        row.currency = account.currency or "USD"
        row.balances_updated_at = utcnow()

    def set_cursor(self, row: BankAccount, cursor: str) -> None:
        row.cursor = cursor
        self.db.flush()


class TransactionRepository:
    """Repository for synced transactions"""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, account: BankAccount, txn: PlaidTransaction) -> bool:
        """Insert or replace by external transaction id; returns True on insert"""
        row = self.db.query(Transaction).filter(Transaction.transaction_id == txn.transaction_id).first()
        created = row is None
        if created:
            row = Transaction(transaction_id=txn.transaction_id)
            self.db.add(row)
        row.user_id = account.user_id
        row.bank_account_id = account.id
        row.account_id = txn.account_id
        row.amount = _money(txn.amount)
        row.date = txn.date
        row.description = txn.name
        row.original_description = txn.original_description
        row.category = txn.category
        row.category_detailed = txn.category_detailed
        row.merchant_name = txn.merchant_name
        row.pending = txn.pending
        row.updated_at = utcnow()
        self.db.flush()
        return created

    def delete_by_transaction_ids(self, transaction_ids: List[str]) -> int:
        if not transaction_ids:
            return 0
        return (
            self.db.query(Transaction)
            .filter(Transaction.transaction_id.in_(transaction_ids))
            .delete(synchronize_session="fetch")
        )

    def _for_user(self, user_id: uuid.UUID, start: Optional[date], end: Optional[date]):
        query = self.db.query(Transaction).filter(Transaction.user_id == user_id)
        if start is not None:
            query = query.filter(Transaction.date >= start)
        if end is not None:
            query = query.filter(Transaction.date <= end)
        return query

    def list_for_user(
        self,
        user_id: uuid.UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Transaction]:
        return self._for_user(user_id, start, end).order_by(Transaction.date.desc()).all()

    def page_for_user(
        self,
        user_id: uuid.UUID,
        page: int,
        page_size: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Tuple[List[Transaction], int]:
        query = self._for_user(user_id, start, end)
        total = query.count()
        rows = (
            query.order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return rows, total

    def recent_for_user(self, user_id: uuid.UUID, limit: int = 10) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.user_id == user_id)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def to_record(row: Transaction) -> TransactionRecord:
        """ORM row → analytics dataclass"""
        return TransactionRecord(
            transaction_id=row.transaction_id,
            date=row.date,
            amount=float(row.amount),
            description=row.description or "",
            merchant_name=row.merchant_name,
            category=row.category,
        )


class AdvanceRepository:
    """Repository for BlinkAdvances"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> BlinkAdvance:
        advance = BlinkAdvance(**fields)
        self.db.add(advance)
        self.db.flush()
        return advance

    def list_for_user(self, user_id: uuid.UUID) -> List[BlinkAdvance]:
        return (
            self.db.query(BlinkAdvance)
            .filter(BlinkAdvance.user_id == user_id)
            .order_by(BlinkAdvance.created_at.desc())
            .all()
        )

    def get_for_user(self, advance_id: uuid.UUID, user_id: uuid.UUID) -> Optional[BlinkAdvance]:
        return (
            self.db.query(BlinkAdvance)
            .filter(BlinkAdvance.id == advance_id, BlinkAdvance.user_id == user_id)
            .first()
        )

    def get_by_transfer_id(self, transfer_id: str) -> Optional[BlinkAdvance]:
        return self.db.query(BlinkAdvance).filter(BlinkAdvance.plaid_transfer_id == transfer_id).first()

    def statuses_for_user(self, user_id: uuid.UUID) -> List[str]:
        rows = self.db.query(BlinkAdvance.status).filter(BlinkAdvance.user_id == user_id).all()
        return [row[0] for row in rows]

    def active_for_user(self, user_id: uuid.UUID) -> Optional[BlinkAdvance]:
        return (
            self.db.query(BlinkAdvance)
            .filter(BlinkAdvance.user_id == user_id, BlinkAdvance.status.in_(_ACTIVE_STATUS_VALUES))
            .order_by(BlinkAdvance.created_at.desc())
            .first()
        )

    def apply_changes(self, advance: BlinkAdvance, changes: Dict[str, Any]) -> BlinkAdvance:
        for column, value in changes.items():
            setattr(advance, column, value)
        self.db.flush()
        return advance


class AssetReportRepository:
    """Repository for requested asset reports"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: uuid.UUID,
        asset_report_token: str,
        asset_report_id: str,
        days_requested: int,
    ) -> AssetReport:
        report = AssetReport(
            user_id=user_id,
            asset_report_token=asset_report_token,
            asset_report_id=asset_report_id,
            days_requested=days_requested,
        )
        self.db.add(report)
        self.db.flush()
        return report
