"""Rental lease model and its commercial / penalty terms."""

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, Date, Text, JSON,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class LeaseStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ENDED = "ended"
    CANCELED = "canceled"


TERMINAL_LEASE_STATUSES = frozenset({LeaseStatus.ENDED, LeaseStatus.CANCELED})

# Allowed lifecycle moves; terminal states have no way out.
LEASE_STATUS_TRANSITIONS: dict[LeaseStatus, frozenset[LeaseStatus]] = {
    LeaseStatus.DRAFT: frozenset({LeaseStatus.ACTIVE, LeaseStatus.CANCELED}),
    LeaseStatus.ACTIVE: frozenset({LeaseStatus.SUSPENDED, LeaseStatus.ENDED, LeaseStatus.CANCELED}),
    LeaseStatus.SUSPENDED: frozenset({LeaseStatus.ACTIVE, LeaseStatus.ENDED, LeaseStatus.CANCELED}),
    LeaseStatus.ENDED: frozenset(),
    LeaseStatus.CANCELED: frozenset(),
}


class BillingFrequency(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        return _FREQUENCY_MONTHS[self]


_FREQUENCY_MONTHS = {
    BillingFrequency.MONTHLY: 1,
    BillingFrequency.QUARTERLY: 3,
    BillingFrequency.SEMIANNUAL: 6,
    BillingFrequency.ANNUAL: 12,
}


class PenaltyMode(str, enum.Enum):
    FIXED_AMOUNT = "fixed_amount"
    PERCENT_OF_RENT = "percent_of_rent"
    PERCENT_OF_BALANCE = "percent_of_balance"


class Lease(Base):
    __tablename__ = "rental_leases"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("tenant_id", "lease_number", name="uq_rental_lease_number"),
        CheckConstraint("due_day_of_month BETWEEN 1 AND 31", name="ck_rental_lease_due_day"),
        CheckConstraint("rent_amount > 0", name="ck_rental_lease_rent_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    lease_number: Mapped[str] = mapped_column(String(30), nullable=False)

    # References owned by the property / CRM subsystems
    property_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    primary_renter_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[LeaseStatus] = mapped_column(
        Enum(LeaseStatus), default=LeaseStatus.ACTIVE, nullable=False
    )

    # Dates
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    move_in_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Billing terms
    billing_frequency: Mapped[BillingFrequency] = mapped_column(
        Enum(BillingFrequency), default=BillingFrequency.MONTHLY, nullable=False
    )
    due_day_of_month: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    service_charge_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )
    security_deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), default=Decimal("0"), nullable=False
    )

    # Penalty overrides; NULL means "use the tenant rule"
    penalty_grace_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    penalty_mode: Mapped[PenaltyMode | None] = mapped_column(Enum(PenaltyMode), nullable=True)
    penalty_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    penalty_fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    penalty_cap_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    installments = relationship(
        "Installment", back_populates="lease", order_by="Installment.due_date"
    )
    deposit = relationship("SecurityDeposit", back_populates="lease", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_LEASE_STATUSES
