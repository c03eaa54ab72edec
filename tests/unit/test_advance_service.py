"""Unit tests for the advance service against the database"""

import pytest
from datetime import date
from unittest.mock import patch
from blink_backend.domain.advances import AdvancePolicy
from blink_backend.domain.exceptions import ActiveAdvanceExistsError
from blink_backend.domain.models import TransferSpeed
from blink_backend.infrastructure.database.models import BlinkAdvance
from blink_backend.infrastructure.database.repositories import AdvanceRepository
from blink_backend.services.advances import AdvanceService

ISSUED = date(2024, 3, 1)


def test_unique_index_rejects_concurrent_active_advance(db, user, bank_account):
    """Test the index still enforces one active advance when the gate sees nothing"""
    service = AdvanceService(db, AdvancePolicy())
    service.create(user.id, bank_account.id, TransferSpeed.INSTANT, repayment_term_days=7, today=ISSUED)

    # a concurrent request that read the statuses before the first insert committed
    with patch.object(AdvanceRepository, "statuses_for_user", return_value=[]):
        with pytest.raises(ActiveAdvanceExistsError):
            service.create(user.id, bank_account.id, TransferSpeed.STANDARD, repayment_term_days=14, today=ISSUED)

    assert db.query(BlinkAdvance).count() == 1
    assert db.query(BlinkAdvance).one().transfer_speed == "instant"


def test_create_stores_quote(db, user, bank_account):
    """Test the stored row carries the priced quote"""
    advance = AdvanceService(db, AdvancePolicy()).create(
        user.id, bank_account.id, TransferSpeed.INSTANT, repayment_term_days=7, today=ISSUED
    )

    assert advance.status == "pending"
    assert advance.repayment_date == date(2024, 3, 8)
    assert float(advance.final_fee) == 22.5
    assert float(advance.total_repayment_amount) == 222.5
