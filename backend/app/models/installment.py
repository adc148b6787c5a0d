"""Installment model: one billing period's charge against a lease."""

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, Date, ForeignKey,
    CheckConstraint, UniqueConstraint, Index, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class InstallmentStatus(str, enum.Enum):
    DRAFT = "draft"
    DUE = "due"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELED = "canceled"


class Installment(Base):
    __tablename__ = "rental_installments"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint(
            "lease_id", "period_year", "period_month", name="uq_rental_installment_period"
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_rental_installment_month"),
        CheckConstraint(
            "amount_rent >= 0 AND amount_service >= 0 AND amount_other_fees >= 0 "
            "AND penalty_amount >= 0 AND amount_paid >= 0",
            name="ck_rental_installment_amounts_nonnegative",
        ),
        Index("ix_rental_installments_tenant_due", "tenant_id", "due_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    lease_id: Mapped[int] = mapped_column(
        ForeignKey("rental_leases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    amount_rent: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_service: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    amount_other_fees: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    penalty_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )

    status: Mapped[InstallmentStatus] = mapped_column(
        Enum(InstallmentStatus), default=InstallmentStatus.DRAFT, nullable=False
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    lease = relationship("Lease", back_populates="installments")

    @property
    def total_due(self) -> Decimal:
        """Rent + service + other fees + penalty."""
        return (
            Decimal(self.amount_rent or 0)
            + Decimal(self.amount_service or 0)
            + Decimal(self.amount_other_fees or 0)
            + Decimal(self.penalty_amount or 0)
        )

    @property
    def base_due(self) -> Decimal:
        """Total due before any penalty is applied."""
        return (
            Decimal(self.amount_rent or 0)
            + Decimal(self.amount_service or 0)
            + Decimal(self.amount_other_fees or 0)
        )

    @property
    def outstanding(self) -> Decimal:
        return self.total_due - Decimal(self.amount_paid or 0)
