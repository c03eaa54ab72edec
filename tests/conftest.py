"""Pytest fixtures for testing"""

import os

# Required settings must exist before the app module is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PLAID_CLIENT_ID", "test-client-id")
os.environ.setdefault("PLAID_SECRET", "test-plaid-secret")
os.environ.setdefault("PLAID_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("SMTP_HOST", "localhost")
os.environ.setdefault("SMTP_USER", "mailer")
os.environ.setdefault("SMTP_PASSWORD", "mailer-password")
os.environ.setdefault("SMTP_FROM_EMAIL", "no-reply@example.com")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Dict, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from blink_backend.api.dependencies import get_email_sender, get_plaid_client
from blink_backend.api.main import create_app
from blink_backend.config import Settings
from blink_backend.domain.exceptions import EmailDeliveryError, PlaidAPIError
from blink_backend.domain.models import PlaidAccount, SyncPage, TransferSpeed
from blink_backend.infrastructure.database.models import Base, BankAccount, Transaction, User
from blink_backend.infrastructure.database.session import get_db
from blink_backend.infrastructure.security import create_access_token, hash_password
from blink_backend.utils.date_utils import utcnow


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "correct-horse-battery"


class FakePlaidClient:
    """In-memory stand-in for PlaidClient; pages and accounts are keyed by access token"""

    def __init__(self):
        self.sync_pages: Dict[str, List[SyncPage]] = {}
        self.sync_calls: List[Tuple[str, Optional[str]]] = []
        self.accounts: Dict[str, List[PlaidAccount]] = {}
        self.failing_tokens = set()
        self.exchange_result = {"access_token": "access-sandbox-new", "item_id": "item-new"}
        self.items: Dict[str, dict] = {}
        self.authorization = {"id": "auth-123", "decision": "approved"}
        self.authorize_calls: List[dict] = []
        self.transfer = {"id": "transfer-123", "status": "pending"}

    def _check(self, access_token: str) -> None:
        if access_token in self.failing_tokens:
            raise PlaidAPIError(
                "Plaid API error: 400",
                error_code="ITEM_LOGIN_REQUIRED",
                error_type="ITEM_ERROR",
                error_message="the login details of this item have changed",
            )

    async def create_link_token(self, user_id: str) -> dict:
        return {"link_token": f"link-sandbox-{user_id[:8]}", "expiration": "2030-01-01T00:00:00Z"}

    async def create_sandbox_public_token(self, institution_id: str = "ins_109508") -> str:
        return f"public-sandbox-{institution_id}"

    async def exchange_public_token(self, public_token: str) -> dict:
        return dict(self.exchange_result)

    async def get_accounts(self, access_token: str) -> List[PlaidAccount]:
        self._check(access_token)
        return self.accounts.get(access_token, [])

    async def get_item(self, access_token: str) -> dict:
        return self.items.get(access_token, {"item_id": "item-1", "available_products": ["assets"]})

    async def sync_transactions(self, access_token: str, cursor: Optional[str] = None) -> SyncPage:
        self.sync_calls.append((access_token, cursor))
        self._check(access_token)
        return self.sync_pages[access_token].pop(0)

    async def authorize_transfer(self, access_token, account_id, amount, transfer_speed: TransferSpeed, legal_name):
        self.authorize_calls.append(
            {"account_id": account_id, "amount": amount, "transfer_speed": transfer_speed, "legal_name": legal_name}
        )
        return dict(self.authorization)

    async def create_transfer(self, access_token, account_id, authorization_id, description) -> dict:
        return dict(self.transfer)

    async def create_asset_report(self, access_tokens, days_requested, webhook=None) -> dict:
        return {"asset_report_token": "assets-sandbox-token", "asset_report_id": "asset-report-1"}


class FakeEmailSender:
    """Records OTP emails instead of sending them"""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail = False

    def send_otp(self, to_email: str, code: str) -> None:
        if self.fail:
            raise EmailDeliveryError("Failed to send verification email.")
        self.sent.append((to_email, code))

    def last_code_for(self, email: str) -> str:
        return [code for to, code in self.sent if to == email][-1]


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url=TEST_DATABASE_URL, scheduler_enabled=False, environment="test")


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for jobs that open their own sessions against the test database"""
    return TestingSessionLocal


@pytest.fixture
def plaid() -> FakePlaidClient:
    return FakePlaidClient()


@pytest.fixture
def mailer() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def client(db: Session, settings: Settings, plaid: FakePlaidClient, mailer: FakeEmailSender) -> TestClient:
    """Create FastAPI test client with test database and fake collaborators"""
    app = create_app(settings)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_plaid_client] = lambda: plaid
    app.dependency_overrides[get_email_sender] = lambda: mailer
    return TestClient(app)


@pytest.fixture
def user(db: Session) -> User:
    user = User(
        email="jane@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        first_name="Jane",
        last_name="Doe",
        state="CA",
        zipcode="94105",
        email_verified=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def other_user(db: Session) -> User:
    user = User(
        email="sam@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        first_name="Sam",
        last_name="Roe",
        email_verified=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def auth_headers(settings: Settings, user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(settings, str(user.id))}"}


@pytest.fixture
def make_account(db: Session) -> Callable[..., BankAccount]:
    def _make(user: User, account_id: str = "acc-checking", access_token: str = "access-1", item_id: str = "item-1"):
        account = BankAccount(
            user_id=user.id,
            plaid_access_token=access_token,
            plaid_item_id=item_id,
            account_id=account_id,
            account_name="Plaid Checking",
            account_type="depository",
            account_subtype="checking",
            account_mask="0000",
            available_balance=Decimal("1200.00"),
            current_balance=Decimal("1250.00"),
            currency="USD",
        )
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def bank_account(user: User, make_account) -> BankAccount:
    return make_account(user)


@pytest.fixture
def make_transaction(db: Session) -> Callable[..., Transaction]:
    """Insert a stored transaction (positive amount = outflow)"""

    def _make(
        account: BankAccount,
        amount: float,
        on: date,
        name: str = "Purchase",
        category: Optional[str] = None,
        merchant_name: Optional[str] = None,
    ) -> Transaction:
        txn = Transaction(
            transaction_id=f"txn-{uuid.uuid4().hex[:12]}",
            user_id=account.user_id,
            bank_account_id=account.id,
            account_id=account.account_id,
            amount=Decimal(str(amount)),
            date=on,
            description=name,
            category=category,
            merchant_name=merchant_name,
            pending=False,
        )
        db.add(txn)
        db.commit()
        return txn

    return _make


@pytest.fixture
def today() -> date:
    return utcnow().date()


@pytest.fixture
def days_ago(today: date) -> Callable[[int], date]:
    return lambda n: today - timedelta(days=n)
