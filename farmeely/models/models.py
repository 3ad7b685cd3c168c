from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Numeric,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from farmeely.db.base import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    surname = Column(String(50), nullable=False)
    othernames = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone_number = Column(String(32), nullable=False)
    location = Column(String(100), nullable=False)
    address = Column(String(200), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    # user | admin
    role = Column(String(20), nullable=False, default="user", index=True)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    wallet = relationship("Wallet", back_populates="user", uselist=False)


class UserTemp(Base):
    """Signup awaiting email verification."""

    __tablename__ = "user_temps"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    surname = Column(String(50), nullable=False)
    othernames = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone_number = Column(String(32), nullable=False)
    location = Column(String(100), nullable=False)
    address = Column(String(200), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Otp(Base):
    __tablename__ = "otps"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    otp = Column(String(6), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ResetOtp(Base):
    __tablename__ = "reset_otps"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), ForeignKey("users.email", ondelete="CASCADE"), nullable=False, unique=True)
    otp = Column(String(6), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Wallet(Base):
    __tablename__ = "wallets"
    id = Column(Integer, primary_key=True)
    wallet_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(64), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, unique=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="wallet")


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True)
    transaction_id = Column(String(64), nullable=False, unique=True)
    wallet_id = Column(String(64), ForeignKey("wallets.wallet_id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(String(64), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    # credit | debit
    transaction_type = Column(String(10), nullable=False)
    # wallet | others
    payment_means = Column(String(10), nullable=False)
    # pending | success | failed
    status = Column(String(10), nullable=False, default="pending", index=True)
    # one reference credits or debits once
    payment_reference = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    group_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class Livestock(Base):
    __tablename__ = "livestock"
    id = Column(Integer, primary_key=True)
    livestock_id = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    breed = Column(String(255), nullable=True)
    weight = Column(Float, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    minimum_amount = Column(Numeric(12, 2), nullable=False, default=0)
    image_url = Column(String(1024), nullable=True)
    description = Column(Text, nullable=True)
    available = Column(Boolean, default=True, nullable=False, index=True)
    created_by = Column(String(64), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Group(Base):
    __tablename__ = "groups"
    id = Column(Integer, primary_key=True)
    group_id = Column(String(64), nullable=False, unique=True, index=True)
    livestock_id = Column(String(64), ForeignKey("livestock.livestock_id"), nullable=False, index=True)
    created_by = Column(String(64), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    group_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    total_slot = Column(Integer, nullable=False)
    # creator's initial slots until activation, then all paid slots
    slot_taken = Column(Integer, nullable=False, default=1)
    slot_price = Column(Integer, nullable=False)
    total_slot_left = Column(Integer, nullable=False, default=0)
    total_slot_price_left = Column(Numeric(14, 2), nullable=False)
    final_slot_price_taken = Column(Numeric(14, 2), nullable=False)
    payment_reference = Column(String(255), nullable=True, unique=True)
    # wallet | others
    payment_method = Column(String(10), nullable=False, default="wallet")
    # pending | active | completed | cancelled
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    livestock = relationship("Livestock")
    creator = relationship("User")
    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")


class GroupMember(Base):
    __tablename__ = "group_members"
    id = Column(Integer, primary_key=True)
    group_id = Column(String(64), ForeignKey("groups.group_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    slots = Column(Integer, nullable=False)
    # pending | approved
    status = Column(String(20), nullable=False, default="pending")
    payment_reference = Column(String(255), nullable=True, unique=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    group = relationship("Group", back_populates="members")
    user = relationship("User")

    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)


class PendingPayment(Base):
    """External payment started server-side and not yet completed."""

    __tablename__ = "pending_payments"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    payment_reference = Column(String(255), nullable=False, unique=True)
    # FUND_WALLET | CREATE_GROUP | JOIN_GROUP
    action_type = Column(String(20), nullable=False, index=True)
    meta = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    actor_id = Column(String(64), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(255), nullable=False)
    object_type = Column(String(128), nullable=True)
    object_id = Column(String(128), nullable=True)
    detail = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
