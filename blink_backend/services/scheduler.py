"""Housekeeping jobs and their wall-clock schedule

- expired registration sessions are purged at the top of every hour
- balances of every user with a linked account are refreshed at 00:00 UTC
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Tuple

from sqlalchemy.orm import sessionmaker

from blink_backend.domain.exceptions import NotFoundError
from blink_backend.infrastructure.clients.plaid import PlaidClient
from blink_backend.infrastructure.database.repositories import RegistrationSessionRepository, UserRepository
from blink_backend.infrastructure.observability.metrics import housekeeping_runs_counter
from blink_backend.services.sync import refresh_balances_for_user
from blink_backend.utils.date_utils import utcnow


def next_top_of_hour(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


def next_midnight(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def cleanup_expired_sessions(session_factory: sessionmaker) -> int:
    """Delete registration sessions past their expiry; returns the count removed"""
    db = session_factory()
    try:
        removed = RegistrationSessionRepository(db).delete_expired(utcnow())
        db.commit()
    finally:
        db.close()
    logging.info("Expired registration sessions removed", extra={"job": "cleanup_sessions", "removed": removed})
    return removed


async def refresh_all_balances(session_factory: sessionmaker, plaid: PlaidClient) -> Tuple[int, int]:
    """
    Refresh balances user by user.

    A failure for one user is logged and the run continues. Returns
    (succeeded, failed) user counts.
    """
    db = session_factory()
    succeeded = failed = 0
    try:
        for user_id in UserRepository(db).list_ids_with_accounts():
            try:
                await refresh_balances_for_user(db, plaid, user_id)
                succeeded += 1
            except NotFoundError:
                # Accounts unlinked since the user list was read
                continue
            except Exception as e:
                db.rollback()
                failed += 1
                logging.error(
                    f"Balance refresh failed for user: {e}",
                    extra={"job": "refresh_balances", "user_id": str(user_id)},
                )
    finally:
        db.close()
    logging.info(
        "Balance refresh run finished",
        extra={"job": "refresh_balances", "succeeded": succeeded, "failed": failed},
    )
    return succeeded, failed


async def run_on_schedule(
    name: str,
    next_run: Callable[[datetime], datetime],
    job: Callable[[], Awaitable[object]],
) -> None:
    """Sleep until the next slot, run the job, repeat until cancelled"""
    while True:
        now = utcnow()
        await asyncio.sleep((next_run(now) - now).total_seconds())
        try:
            await job()
            housekeeping_runs_counter.labels(job=name, outcome="success").inc()
        except Exception as e:
            housekeeping_runs_counter.labels(job=name, outcome="failure").inc()
            logging.exception(f"Scheduled job failed: {e}", extra={"job": name})


def start_scheduler(session_factory: sessionmaker, plaid: PlaidClient) -> List[asyncio.Task]:
    async def cleanup_job() -> int:
        return cleanup_expired_sessions(session_factory)

    async def balances_job() -> Tuple[int, int]:
        return await refresh_all_balances(session_factory, plaid)

    logging.info("Scheduler started", extra={"jobs": ["cleanup_sessions", "refresh_balances"]})
    return [
        asyncio.create_task(run_on_schedule("cleanup_sessions", next_top_of_hour, cleanup_job)),
        asyncio.create_task(run_on_schedule("refresh_balances", next_midnight, balances_job)),
    ]


async def stop_scheduler(tasks: List[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
