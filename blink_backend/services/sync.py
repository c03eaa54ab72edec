"""Transaction sync and balance refresh across a user's linked accounts"""

import asyncio
import logging
import uuid
from typing import List

from sqlalchemy.orm import Session

from blink_backend.domain.exceptions import NotFoundError
from blink_backend.domain.models import SyncStats
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.models import BankAccount
from blink_backend.infrastructure.database.repositories import BankAccountRepository, TransactionRepository
from blink_backend.infrastructure.observability.logging import log_sync_outcome
from blink_backend.infrastructure.observability.metrics import record_sync


def _accounts_or_404(db: Session, user_id: uuid.UUID) -> List[BankAccount]:
    accounts = BankAccountRepository(db).list_for_user(user_id)
    if not accounts:
        raise NotFoundError("No bank accounts found for this user.")
    return accounts


async def sync_account(db: Session, plaid: PlaidClient, account: BankAccount) -> SyncStats:
    """
    Drain Plaid's change feed for one account.

    Each page is applied and committed together with the cursor that follows
    it, so a failure mid-feed resumes from the last applied page. The session
    is only touched between awaits, which keeps sibling accounts sharing it
    from interleaving their writes.
    """
    transactions = TransactionRepository(db)
    accounts = BankAccountRepository(db)
    stats = SyncStats()

    has_more = True
    while has_more:
        page = await plaid.sync_transactions(account.plaid_access_token, account.cursor)

        for txn in page.added + page.modified:
            transactions.upsert(account, txn)
        transactions.delete_by_transaction_ids(page.removed)
        accounts.set_cursor(account, page.next_cursor)
        db.commit()

        stats.added += len(page.added)
        stats.modified += len(page.modified)
        stats.removed += len(page.removed)
        has_more = page.has_more

    return stats


async def sync_transactions_for_user(db: Session, plaid: PlaidClient, user_id: uuid.UUID) -> SyncStats:
    """
    Sync every linked account concurrently.

    A failing account is rolled back and logged; the totals cover the
    accounts that completed.

    Raises:
        NotFoundError: The user has no linked accounts
    """
    accounts = _accounts_or_404(db, user_id)

    async def guarded(account: BankAccount) -> SyncStats:
        account_id = account.account_id
        try:
            stats = await sync_account(db, plaid, account)
        except Exception as e:
            db.rollback()
            logging.error(
                f"Transaction sync failed: {e}",
                extra={"user_id": str(user_id), "account_id": account_id, "step": "sync_failed"},
            )
            return SyncStats()
        log_sync_outcome(str(user_id), account_id, stats.added, stats.modified, stats.removed)
        return stats

    results = await asyncio.gather(*(guarded(account) for account in accounts))

    total = SyncStats()
    for stats in results:
        total.merge(stats)
    record_sync(total.added, total.modified, total.removed)
    return total


async def refresh_account_balance(db: Session, plaid: PlaidClient, account: BankAccount) -> bool:
    """Store Plaid's current balances for one account; False if Plaid omits it"""
    plaid_accounts = await plaid.get_accounts(account.plaid_access_token)
    for plaid_account in plaid_accounts:
        if plaid_account.account_id == account.account_id:
            BankAccountRepository(db).update_balances(account, plaid_account)
            db.commit()
            return True
    return False


async def refresh_balances_for_user(db: Session, plaid: PlaidClient, user_id: uuid.UUID) -> List[BankAccount]:
    """
    Refresh balances of every linked account concurrently.

    Returns the accounts (refreshed or not); per-account failures are logged.

    Raises:
        NotFoundError: The user has no linked accounts
    """
    accounts = _accounts_or_404(db, user_id)

    async def guarded(account: BankAccount) -> None:
        account_id = account.account_id
        try:
            found = await refresh_account_balance(db, plaid, account)
        except Exception as e:
            db.rollback()
            logging.error(
                f"Balance refresh failed: {e}",
                extra={"user_id": str(user_id), "account_id": account_id, "step": "balance_failed"},
            )
            return
        if not found:
            logging.warning(
                "Account missing from Plaid balance response",
                extra={"user_id": str(user_id), "account_id": account_id},
            )

    await asyncio.gather(*(guarded(account) for account in accounts))
    return accounts
