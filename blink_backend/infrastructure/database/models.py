"""SQLAlchemy ORM models for users, linked accounts, transactions and advances"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Integer,
    Numeric,
    DateTime,
    Date,
    ForeignKey,
    Index,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

from blink_backend.utils.date_utils import utcnow

Base = declarative_base()

_ACTIVE_ADVANCE_PREDICATE = text("status IN ('pending', 'approved', 'disbursed')")


class User(Base):
    """Registered user with a verified email"""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    state = Column(Text, nullable=True)
    zipcode = Column(Text, nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    bank_accounts = relationship("BankAccount", back_populates="user", cascade="all, delete-orphan")


class RegistrationSession(Base):
    """Pending email verification, keyed by email"""

    __tablename__ = "registration_sessions"

    email = Column(String(320), primary_key=True)
    otp_code = Column(String(12), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class BankAccount(Base):
    """Plaid-linked account; cursor is Plaid's opaque sync token"""

    __tablename__ = "bank_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plaid_access_token = Column(Text, nullable=False)
    plaid_item_id = Column(Text, nullable=False, index=True)
    account_id = Column(Text, nullable=False, unique=True)
    account_name = Column(Text, nullable=True)
    account_type = Column(Text, nullable=True)
    account_subtype = Column(Text, nullable=True)
    account_mask = Column(Text, nullable=True)
    cursor = Column(Text, nullable=True)
    available_balance = Column(Numeric(14, 2), nullable=True)
    current_balance = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    balances_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="bank_accounts")


class Transaction(Base):
    """Synced transaction; amount > 0 is an outflow, amount < 0 an inflow"""

    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(Text, nullable=False, unique=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    bank_account_id = Column(
        UUID(as_uuid=True), ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False
    )
    account_id = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    original_description = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    category_detailed = Column(Text, nullable=True)
    merchant_name = Column(Text, nullable=True)
    pending = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class BlinkAdvance(Base):
    """Fixed-amount cash advance; status only changes through the transition table"""

    __tablename__ = "blink_advances"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    bank_account_id = Column(UUID(as_uuid=True), ForeignKey("bank_accounts.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    transfer_speed = Column(Text, nullable=False)
    repayment_term_days = Column(Integer, nullable=False)
    repayment_date = Column(Date, nullable=False)
    base_fee = Column(Numeric(10, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    final_fee = Column(Numeric(10, 2), nullable=False)
    total_repayment_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Text, nullable=False, default="pending")
    reference = Column(Text, nullable=True)
    disbursement_reference = Column(Text, nullable=True)
    repayment_reference = Column(Text, nullable=True)
    plaid_transfer_id = Column(Text, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    repaid_at = Column(DateTime(timezone=True), nullable=True)
    defaulted_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one in-flight advance per user, enforced by the database
        Index(
            "uq_blink_advances_one_active_per_user",
            "user_id",
            unique=True,
            postgresql_where=_ACTIVE_ADVANCE_PREDICATE,
            sqlite_where=_ACTIVE_ADVANCE_PREDICATE,
        ),
    )


class AssetReport(Base):
    """Plaid asset report requested for a user"""

    __tablename__ = "asset_reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    asset_report_token = Column(Text, nullable=False)
    asset_report_id = Column(Text, nullable=False)
    days_requested = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
