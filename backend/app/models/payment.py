"""Payment and PaymentAllocation models."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    MOBILE_MONEY = "mobile_money"
    CARD = "card"
    OTHER = "other"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class MobileMoneyOperator(str, enum.Enum):
    ORANGE_MONEY = "orange_money"
    MTN_MOMO = "mtn_momo"
    MOOV_MONEY = "moov_money"
    WAVE = "wave"
    FREE_MONEY = "free_money"
    OTHER = "other"


class Payment(Base):
    __tablename__ = "rental_payments"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_rental_payment_idempotency"),
        CheckConstraint("amount > 0", name="ck_rental_payment_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    lease_id: Mapped[int | None] = mapped_column(
        ForeignKey("rental_leases.id"), nullable=True, index=True
    )
    renter_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False
    )

    # Mobile money
    mm_operator: Mapped[MobileMoneyOperator | None] = mapped_column(
        Enum(MobileMoneyOperator), nullable=True
    )
    mm_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Payment service provider references
    psp_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    psp_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    psp_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    initiated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    succeeded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    allocations = relationship(
        "PaymentAllocation", back_populates="payment", order_by="PaymentAllocation.id"
    )


class PaymentAllocation(Base):
    """Portion of a payment applied to one installment. Insert-only."""
    __tablename__ = "rental_payment_allocations"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_rental_allocation_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    payment_id: Mapped[int] = mapped_column(
        ForeignKey("rental_payments.id"), nullable=False, index=True
    )
    installment_id: Mapped[int] = mapped_column(
        ForeignKey("rental_installments.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    payment = relationship("Payment", back_populates="allocations")
