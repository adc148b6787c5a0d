"""Lease provider: creation, lookup, term updates and lifecycle transitions.

Status lifecycle::

    DRAFT → {ACTIVE, CANCELED}
    ACTIVE → {SUSPENDED, ENDED, CANCELED}
    SUSPENDED → {ACTIVE, ENDED, CANCELED}
    ENDED, CANCELED: terminal
"""

import logging
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.lease import (
    Lease,
    LeaseStatus,
    BillingFrequency,
    PenaltyMode,
    LEASE_STATUS_TRANSITIONS,
)
from app.services.rentals.audit import record_audit_event
from app.services.rentals.errors import (
    ValidationError,
    NotFoundError,
    InvariantViolation,
    InvalidStatusTransition,
)
from app.services.rentals.filters import LeaseFilters, Pagination, Page
from app.services.rentals.money import to_money

logger = logging.getLogger(__name__)

ENTITY_TYPE = "RENTAL_LEASE"


@dataclass(frozen=True)
class LeaseUpdate:
    """Editable lease terms. ``None`` leaves a field unchanged."""

    end_date: date | None = None
    move_in_date: date | None = None
    move_out_date: date | None = None
    rent_amount: Decimal | None = None
    service_charge_amount: Decimal | None = None
    security_deposit_amount: Decimal | None = None
    billing_frequency: BillingFrequency | None = None
    penalty_grace_days: int | None = None
    penalty_mode: PenaltyMode | None = None
    penalty_rate: Decimal | None = None
    penalty_fixed_amount: Decimal | None = None
    penalty_cap_amount: Decimal | None = None
    notes: str | None = None

    def changes(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _next_lease_number(db: AsyncSession, tenant_id: int, today: date | None = None) -> str:
    """Generate the next lease number for the tenant: PREFIX-YYYY-NNNN."""
    year = (today or date.today()).year
    prefix = f"{settings.lease_number_prefix}-{year}-"

    result = await db.execute(
        select(Lease.lease_number).where(
            Lease.tenant_id == tenant_id,
            Lease.lease_number.like(f"{prefix}%"),
        )
    )
    seq = 0
    for (number,) in result.all():
        suffix = number[len(prefix):]
        if suffix.isdigit():
            seq = max(seq, int(suffix))
    return f"{prefix}{seq + 1:04d}"


def _validate_penalty_terms(
    *,
    grace_days: int | None,
    rate: Decimal | None,
    fixed_amount: Decimal | None,
    cap_amount: Decimal | None,
) -> None:
    if grace_days is not None and grace_days < 0:
        raise ValidationError("Penalty grace days cannot be negative")
    if rate is not None and not Decimal("0") <= Decimal(rate) <= Decimal("100"):
        raise ValidationError("Penalty rate must be between 0 and 100 (percent)")
    if fixed_amount is not None and Decimal(fixed_amount) < 0:
        raise ValidationError("Penalty fixed amount cannot be negative")
    if cap_amount is not None and Decimal(cap_amount) < 0:
        raise ValidationError("Penalty cap amount cannot be negative")


async def get_lease(db: AsyncSession, tenant_id: int, lease_id: int) -> Lease | None:
    result = await db.execute(
        select(Lease).where(Lease.id == lease_id, Lease.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def require_lease(
    db: AsyncSession, tenant_id: int, lease_id: int, *, for_update: bool = False
) -> Lease:
    q = select(Lease).where(Lease.id == lease_id, Lease.tenant_id == tenant_id)
    if for_update:
        q = q.with_for_update()
    lease = (await db.execute(q)).scalar_one_or_none()
    if lease is None:
        raise NotFoundError("Lease not found")
    return lease


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def create_lease(
    db: AsyncSession,
    tenant_id: int,
    *,
    property_id: int | None,
    primary_renter_id: int | None,
    start_date: date | None,
    rent_amount: Decimal,
    billing_frequency: BillingFrequency = BillingFrequency.MONTHLY,
    due_day_of_month: int = 5,
    end_date: date | None = None,
    move_in_date: date | None = None,
    move_out_date: date | None = None,
    owner_id: int | None = None,
    lease_number: str | None = None,
    currency: str | None = None,
    service_charge_amount: Decimal = Decimal("0"),
    security_deposit_amount: Decimal = Decimal("0"),
    penalty_grace_days: int | None = None,
    penalty_mode: PenaltyMode | None = None,
    penalty_rate: Decimal | None = None,
    penalty_fixed_amount: Decimal | None = None,
    penalty_cap_amount: Decimal | None = None,
    notes: str | None = None,
    terms_json: dict | None = None,
    status: LeaseStatus = LeaseStatus.ACTIVE,
    actor_user_id: int | None = None,
) -> Lease:
    """Create a lease after validating its references and commercial terms."""
    if property_id is None or start_date is None:
        raise ValidationError("Property ID and start date are required")
    if primary_renter_id is None:
        raise ValidationError("Primary renter is required")
    if end_date is not None and end_date <= start_date:
        raise ValidationError("End date must be after start date")
    if not 1 <= int(due_day_of_month) <= 31:
        raise ValidationError("Due day of month must be between 1 and 31")
    try:
        billing_frequency = BillingFrequency(billing_frequency)
        status = LeaseStatus(status)
        penalty_mode = PenaltyMode(penalty_mode) if penalty_mode is not None else None
        rent = to_money(rent_amount)
        service = to_money(service_charge_amount)
        deposit = to_money(security_deposit_amount)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if rent <= 0:
        raise ValidationError("Rent amount must be positive")
    if service < 0 or deposit < 0:
        raise ValidationError("Service charge and deposit amounts cannot be negative")
    if status not in (LeaseStatus.DRAFT, LeaseStatus.ACTIVE):
        raise ValidationError("A new lease must start as draft or active")
    _validate_penalty_terms(
        grace_days=penalty_grace_days,
        rate=penalty_rate,
        fixed_amount=penalty_fixed_amount,
        cap_amount=penalty_cap_amount,
    )

    if lease_number:
        existing = await db.execute(
            select(sa_func.count()).where(
                Lease.tenant_id == tenant_id, Lease.lease_number == lease_number
            )
        )
        if existing.scalar():
            raise InvariantViolation(f"A lease with number {lease_number} already exists in this tenant")
    else:
        lease_number = await _next_lease_number(db, tenant_id)

    lease = Lease(
        tenant_id=tenant_id,
        lease_number=lease_number,
        property_id=property_id,
        primary_renter_id=primary_renter_id,
        owner_id=owner_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        move_in_date=move_in_date,
        move_out_date=move_out_date,
        billing_frequency=billing_frequency,
        due_day_of_month=int(due_day_of_month),
        currency=currency or settings.default_currency,
        rent_amount=rent,
        service_charge_amount=service,
        security_deposit_amount=deposit,
        penalty_grace_days=penalty_grace_days,
        penalty_mode=penalty_mode,
        penalty_rate=Decimal(penalty_rate) if penalty_rate is not None else None,
        penalty_fixed_amount=to_money(penalty_fixed_amount) if penalty_fixed_amount is not None else None,
        penalty_cap_amount=to_money(penalty_cap_amount) if penalty_cap_amount is not None else None,
        notes=notes,
        terms_json=terms_json,
        created_by=actor_user_id,
    )
    db.add(lease)
    await db.flush()

    logger.info("Rental lease created: %s (id=%s, tenant=%s)", lease.lease_number, lease.id, tenant_id)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_LEASE_CREATED",
        entity_type=ENTITY_TYPE,
        entity_id=lease.id,
        payload={"lease_number": lease.lease_number, "property_id": property_id},
    )
    return lease


async def list_leases(
    db: AsyncSession,
    tenant_id: int,
    filters: LeaseFilters | None = None,
    pagination: Pagination | None = None,
) -> Page[Lease]:
    filters = filters or LeaseFilters()
    pagination = pagination or Pagination()

    conditions = [Lease.tenant_id == tenant_id]
    if filters.status is not None:
        conditions.append(Lease.status == filters.status)
    if filters.property_id is not None:
        conditions.append(Lease.property_id == filters.property_id)
    if filters.primary_renter_id is not None:
        conditions.append(Lease.primary_renter_id == filters.primary_renter_id)
    if filters.search:
        conditions.append(Lease.lease_number.ilike(f"%{filters.search}%"))

    total = (await db.execute(select(sa_func.count(Lease.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Lease)
        .where(*conditions)
        .order_by(Lease.lease_number.desc())
        .offset(pagination.offset)
        .limit(pagination.normalized_limit)
    )
    return Page(
        items=list(result.scalars().all()),
        page=pagination.normalized_page,
        limit=pagination.normalized_limit,
        total=total,
    )


async def update_lease(
    db: AsyncSession,
    tenant_id: int,
    lease_id: int,
    data: LeaseUpdate,
    *,
    actor_user_id: int | None = None,
) -> Lease:
    """Apply explicit term changes to a non-terminal lease."""
    lease = await require_lease(db, tenant_id, lease_id, for_update=True)
    if lease.is_terminal:
        raise InvariantViolation(f"Cannot modify a lease in {lease.status.value} status")

    changes = data.changes()
    if not changes:
        return lease

    if "end_date" in changes and changes["end_date"] <= lease.start_date:
        raise ValidationError("End date must be after start date")
    _validate_penalty_terms(
        grace_days=changes.get("penalty_grace_days"),
        rate=changes.get("penalty_rate"),
        fixed_amount=changes.get("penalty_fixed_amount"),
        cap_amount=changes.get("penalty_cap_amount"),
    )
    for key in ("rent_amount", "service_charge_amount", "security_deposit_amount",
                "penalty_fixed_amount", "penalty_cap_amount"):
        if key in changes:
            changes[key] = to_money(changes[key])
    if "rent_amount" in changes and changes["rent_amount"] <= 0:
        raise ValidationError("Rent amount must be positive")
    if changes.get("service_charge_amount", 0) < 0 or changes.get("security_deposit_amount", 0) < 0:
        raise ValidationError("Service charge and deposit amounts cannot be negative")
    if "billing_frequency" in changes:
        changes["billing_frequency"] = BillingFrequency(changes["billing_frequency"])
    if "penalty_mode" in changes:
        changes["penalty_mode"] = PenaltyMode(changes["penalty_mode"])

    for key, value in changes.items():
        setattr(lease, key, value)
    await db.flush()

    logger.info("Rental lease updated: id=%s fields=%s", lease.id, sorted(changes))
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_LEASE_UPDATED",
        entity_type=ENTITY_TYPE,
        entity_id=lease.id,
        payload=changes,
    )
    return lease


async def update_lease_status(
    db: AsyncSession,
    tenant_id: int,
    lease_id: int,
    new_status: LeaseStatus,
    *,
    actor_user_id: int | None = None,
) -> Lease:
    lease = await require_lease(db, tenant_id, lease_id, for_update=True)
    new_status = LeaseStatus(new_status)
    old_status = lease.status

    if new_status not in LEASE_STATUS_TRANSITIONS[old_status]:
        raise InvalidStatusTransition(
            f"Invalid status transition from {old_status.value} to {new_status.value}"
        )

    lease.status = new_status
    await db.flush()

    logger.info("Rental lease %s status %s → %s", lease.id, old_status.value, new_status.value)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_LEASE_STATUS_UPDATED",
        entity_type=ENTITY_TYPE,
        entity_id=lease.id,
        payload={"old_status": old_status, "new_status": new_status},
    )
    return lease
