"""Security deposit and its append-only movement ledger."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, ForeignKey, Text,
    CheckConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class DepositMovementType(str, enum.Enum):
    COLLECT = "collect"
    HOLD = "hold"
    RELEASE = "release"
    REFUND = "refund"
    FORFEIT = "forfeit"
    ADJUSTMENT = "adjustment"


class SecurityDeposit(Base):
    __tablename__ = "rental_security_deposits"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(
            "collected_amount >= 0 AND held_amount >= 0 "
            "AND refunded_amount >= 0 AND forfeited_amount >= 0",
            name="ck_rental_deposit_totals_nonnegative",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    lease_id: Mapped[int] = mapped_column(
        ForeignKey("rental_leases.id"), nullable=False, unique=True, index=True
    )
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Running totals, updated in the same transaction as each movement
    collected_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    held_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    refunded_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    forfeited_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    lease = relationship("Lease", back_populates="deposit")

    @property
    def available_amount(self) -> Decimal:
        """Collected money still owed back to the renter."""
        return (
            Decimal(self.collected_amount or 0)
            - Decimal(self.refunded_amount or 0)
            - Decimal(self.forfeited_amount or 0)
        )


class DepositMovement(Base):
    """Immutable ledger entry. Never updated or deleted."""
    __tablename__ = "rental_deposit_movements"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    deposit_id: Mapped[int] = mapped_column(
        ForeignKey("rental_security_deposits.id"), nullable=False, index=True
    )
    type: Mapped[DepositMovementType] = mapped_column(Enum(DepositMovementType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("rental_payments.id"), nullable=True
    )
    installment_id: Mapped[int | None] = mapped_column(
        ForeignKey("rental_installments.id"), nullable=True
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
