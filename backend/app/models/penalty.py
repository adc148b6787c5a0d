"""Late-payment penalty rule and penalty models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, ForeignKey, Text, Boolean,
    CheckConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.lease import PenaltyMode


class PenaltyRule(Base):
    """Tenant-wide default penalty settings; one active rule per tenant."""
    __tablename__ = "rental_penalty_rules"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    grace_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mode: Mapped[PenaltyMode] = mapped_column(
        Enum(PenaltyMode), default=PenaltyMode.PERCENT_OF_BALANCE, nullable=False
    )
    rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=Decimal("0"), nullable=False)
    fixed_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    cap_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    min_balance_to_apply: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Penalty(Base):
    """Current late fee for one installment (computed or manually overridden)."""
    __tablename__ = "rental_penalties"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_rental_penalty_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    installment_id: Mapped[int] = mapped_column(
        ForeignKey("rental_installments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    days_late: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mode: Mapped[PenaltyMode] = mapped_column(Enum(PenaltyMode), nullable=False)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)

    # Manual override
    is_manual_override: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Justification document reference
    justification_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    justification_file_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    justification_uploaded_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    justification_uploaded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def has_justification(self) -> bool:
        return self.justification_file_url is not None
