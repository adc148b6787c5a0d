"""Pydantic schemas for request/response validation."""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field

from app.models.deposit import DepositMovementType
from app.models.installment import InstallmentStatus
from app.models.lease import LeaseStatus, BillingFrequency, PenaltyMode
from app.models.payment import PaymentMethod, PaymentStatus, MobileMoneyOperator


# ── Leases ────────────────────────────────────────────

class LeaseCreate(BaseModel):
    property_id: int
    primary_renter_id: int
    owner_id: Optional[int] = None
    lease_number: Optional[str] = Field(None, max_length=30)
    status: LeaseStatus = LeaseStatus.ACTIVE
    start_date: date
    end_date: Optional[date] = None
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    billing_frequency: BillingFrequency = BillingFrequency.MONTHLY
    due_day_of_month: int = 5
    currency: Optional[str] = Field(None, max_length=10)
    rent_amount: Decimal
    service_charge_amount: Decimal = Decimal("0")
    security_deposit_amount: Decimal = Decimal("0")
    penalty_grace_days: Optional[int] = None
    penalty_mode: Optional[PenaltyMode] = None
    penalty_rate: Optional[Decimal] = None  # percent, e.g. 2 = 2%
    penalty_fixed_amount: Optional[Decimal] = None
    penalty_cap_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    terms_json: Optional[dict[str, Any]] = None


class LeaseUpdateRequest(BaseModel):
    """Only the fields sent are changed."""
    end_date: Optional[date] = None
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    rent_amount: Optional[Decimal] = None
    service_charge_amount: Optional[Decimal] = None
    security_deposit_amount: Optional[Decimal] = None
    billing_frequency: Optional[BillingFrequency] = None
    penalty_grace_days: Optional[int] = None
    penalty_mode: Optional[PenaltyMode] = None
    penalty_rate: Optional[Decimal] = None
    penalty_fixed_amount: Optional[Decimal] = None
    penalty_cap_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class LeaseStatusUpdate(BaseModel):
    status: LeaseStatus


class LeaseResponse(BaseModel):
    id: int
    tenant_id: int
    lease_number: str
    property_id: int
    primary_renter_id: int
    owner_id: Optional[int] = None
    status: LeaseStatus
    start_date: date
    end_date: Optional[date] = None
    move_in_date: Optional[date] = None
    move_out_date: Optional[date] = None
    billing_frequency: BillingFrequency
    due_day_of_month: int
    currency: str
    rent_amount: Decimal
    service_charge_amount: Decimal
    security_deposit_amount: Decimal
    penalty_grace_days: Optional[int] = None
    penalty_mode: Optional[PenaltyMode] = None
    penalty_rate: Optional[Decimal] = None
    penalty_fixed_amount: Optional[Decimal] = None
    penalty_cap_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LeaseListResponse(BaseModel):
    items: list[LeaseResponse]
    total: int
    page: int
    limit: int
    total_pages: int


# ── Installments ──────────────────────────────────────

class InstallmentResponse(BaseModel):
    id: int
    lease_id: int
    period_year: int
    period_month: int
    due_date: date
    currency: str
    amount_rent: Decimal
    amount_service: Decimal
    amount_other_fees: Decimal
    penalty_amount: Decimal
    amount_paid: Decimal
    total_due: Decimal
    status: InstallmentStatus
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class InstallmentListResponse(BaseModel):
    items: list[InstallmentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class InstallmentCountResponse(BaseModel):
    count: int


class LeaseBalanceSummaryResponse(BaseModel):
    lease_id: int
    currency: str
    installment_count: int
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    overdue_amount: Decimal
    overdue_count: int
    days_past_due: int
    next_due_installment_id: Optional[int] = None
    next_due_date: Optional[date] = None

    model_config = {"from_attributes": True}


# ── Payments ──────────────────────────────────────────

class PaymentCreate(BaseModel):
    lease_id: Optional[int] = None
    renter_id: Optional[int] = None
    method: PaymentMethod
    amount: Decimal
    currency: Optional[str] = Field(None, max_length=10)
    idempotency_key: str = Field(min_length=1, max_length=128)
    mm_operator: Optional[MobileMoneyOperator] = None
    mm_phone: Optional[str] = Field(None, max_length=30)
    psp_name: Optional[str] = None
    psp_transaction_id: Optional[str] = None
    psp_reference: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    lease_id: Optional[int] = None
    renter_id: Optional[int] = None
    method: PaymentMethod
    amount: Decimal
    currency: str
    idempotency_key: str
    status: PaymentStatus
    mm_operator: Optional[MobileMoneyOperator] = None
    mm_phone: Optional[str] = None
    psp_name: Optional[str] = None
    psp_transaction_id: Optional[str] = None
    psp_reference: Optional[str] = None
    succeeded_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class PaymentAllocationResponse(BaseModel):
    id: int
    payment_id: int
    installment_id: int
    amount: Decimal
    currency: str

    model_config = {"from_attributes": True}


class PaymentDetailResponse(BaseModel):
    payment: PaymentResponse
    allocations: list[PaymentAllocationResponse]
    allocated_total: Decimal


class AllocationRequest(BaseModel):
    installment_ids: list[int] = Field(min_length=1)
    amounts: Optional[dict[int, Decimal]] = None  # installment_id -> max amount


class AllocationResponse(BaseModel):
    payment: PaymentResponse
    allocations: list[PaymentAllocationResponse]
    total_allocated: Decimal
    remaining_amount: Decimal

    model_config = {"from_attributes": True}


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus


# ── Penalties ─────────────────────────────────────────

class PenaltyResponse(BaseModel):
    id: int
    installment_id: int
    calculated_at: datetime
    days_late: int
    mode: PenaltyMode
    rate: Optional[Decimal] = None
    fixed_amount: Optional[Decimal] = None
    amount: Decimal
    currency: str
    is_manual_override: bool
    override_reason: Optional[str] = None
    has_justification: bool = False
    justification_file_name: Optional[str] = None
    justification_file_url: Optional[str] = None
    justification_uploaded_by: Optional[int] = None
    justification_uploaded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PenaltyOverride(BaseModel):
    amount: Decimal = Field(ge=0)
    reason: str = Field(min_length=1)


class PenaltyRunResponse(BaseModel):
    processed: int
    skipped: int
    errors: list[dict[str, Any]]
    penalties: list[dict[str, Any]]


# ── Security deposits ─────────────────────────────────

class DepositResponse(BaseModel):
    id: int
    lease_id: int
    currency: str
    target_amount: Decimal
    collected_amount: Decimal
    held_amount: Decimal
    refunded_amount: Decimal
    forfeited_amount: Decimal
    available_amount: Decimal

    model_config = {"from_attributes": True}


class DepositMovementCreate(BaseModel):
    type: DepositMovementType
    amount: Decimal
    payment_id: Optional[int] = None
    installment_id: Optional[int] = None
    note: Optional[str] = None


class DepositMovementResponse(BaseModel):
    id: int
    deposit_id: int
    type: DepositMovementType
    amount: Decimal
    currency: str
    payment_id: Optional[int] = None
    installment_id: Optional[int] = None
    note: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
