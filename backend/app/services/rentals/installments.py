"""Installment ledger.

Generates a lease's installments once from its billing periods, re-derives
their status from (today, due date, total due, amount paid) and guards bulk
deletion. Penalty amounts are written by the penalty engine and paid amounts
by the payment allocator; this module only reads them.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select, delete, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.installment import Installment, InstallmentStatus
from app.models.lease import LeaseStatus
from app.models.payment import PaymentAllocation
from app.models.penalty import Penalty
from app.services.rentals.audit import record_audit_event
from app.services.rentals.errors import InvariantViolation, NotFoundError
from app.services.rentals.filters import InstallmentFilters, Pagination, Page
from app.services.rentals.leases import require_lease
from app.services.rentals.money import ZERO, to_money
from app.services.rentals.periods import compute_billing_periods

logger = logging.getLogger(__name__)

ENTITY_TYPE = "RENTAL_INSTALLMENT"

SETTLED_STATUSES = (InstallmentStatus.PAID, InstallmentStatus.CANCELED)


@dataclass
class LeaseBalanceSummary:
    lease_id: int
    currency: str
    installment_count: int
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    overdue_amount: Decimal
    overdue_count: int
    days_past_due: int
    next_due_installment_id: int | None
    next_due_date: date | None


# ---------------------------------------------------------------------------
# Status derivation
# ---------------------------------------------------------------------------

def derive_status(
    due_date: date, total_due: Decimal, amount_paid: Decimal, today: date
) -> InstallmentStatus:
    """Pure status function; same inputs always give the same status."""
    total_due = Decimal(total_due)
    amount_paid = Decimal(amount_paid)

    if amount_paid >= total_due:
        return InstallmentStatus.PAID
    if amount_paid > 0:
        return InstallmentStatus.PARTIAL
    if due_date < today:
        return InstallmentStatus.OVERDUE
    return InstallmentStatus.DUE


def refresh_installment_status(installment: Installment, today: date | None = None) -> bool:
    """Re-derive one installment's status in place. Returns True if it changed.

    Canceled installments are left alone. ``paid_at`` is stamped only on the
    transition into PAID and cleared if the installment stops being paid.
    """
    if installment.status == InstallmentStatus.CANCELED:
        return False

    today = today or date.today()
    new_status = derive_status(
        installment.due_date, installment.total_due, installment.amount_paid, today
    )
    if new_status == installment.status:
        return False

    if new_status == InstallmentStatus.PAID:
        installment.paid_at = datetime.now(timezone.utc)
    elif installment.status == InstallmentStatus.PAID:
        installment.paid_at = None
    installment.status = new_status
    return True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_installment(db: AsyncSession, tenant_id: int, installment_id: int) -> Installment | None:
    result = await db.execute(
        select(Installment).where(
            Installment.id == installment_id, Installment.tenant_id == tenant_id
        )
    )
    return result.scalar_one_or_none()


async def require_installment(
    db: AsyncSession, tenant_id: int, installment_id: int, *, for_update: bool = False
) -> Installment:
    q = select(Installment).where(
        Installment.id == installment_id, Installment.tenant_id == tenant_id
    )
    if for_update:
        q = q.with_for_update()
    installment = (await db.execute(q)).scalar_one_or_none()
    if installment is None:
        raise NotFoundError("Installment not found")
    return installment


async def list_installments(
    db: AsyncSession,
    tenant_id: int,
    filters: InstallmentFilters | None = None,
    pagination: Pagination | None = None,
    *,
    today: date | None = None,
) -> Page[Installment]:
    filters = filters or InstallmentFilters()
    pagination = pagination or Pagination()
    today = today or date.today()

    conditions = [Installment.tenant_id == tenant_id]
    if filters.lease_id is not None:
        conditions.append(Installment.lease_id == filters.lease_id)
    if filters.status is not None:
        conditions.append(Installment.status == filters.status)
    if filters.period_year is not None:
        conditions.append(Installment.period_year == filters.period_year)
    if filters.period_month is not None:
        conditions.append(Installment.period_month == filters.period_month)
    if filters.overdue:
        conditions.append(Installment.due_date < today)
        conditions.append(Installment.status.notin_(SETTLED_STATUSES))

    total = (
        await db.execute(select(sa_func.count(Installment.id)).where(*conditions))
    ).scalar() or 0
    result = await db.execute(
        select(Installment)
        .where(*conditions)
        .order_by(Installment.due_date, Installment.period_year, Installment.period_month)
        .offset(pagination.offset)
        .limit(pagination.normalized_limit)
    )
    return Page(
        items=list(result.scalars().all()),
        page=pagination.normalized_page,
        limit=pagination.normalized_limit,
        total=total,
    )


async def _lease_installments(db: AsyncSession, tenant_id: int, lease_id: int) -> list[Installment]:
    result = await db.execute(
        select(Installment)
        .where(Installment.tenant_id == tenant_id, Installment.lease_id == lease_id)
        .order_by(Installment.due_date, Installment.id)
    )
    return list(result.scalars().all())


async def lease_balance_summary(
    db: AsyncSession, tenant_id: int, lease_id: int, *, today: date | None = None
) -> LeaseBalanceSummary:
    """Aggregate what is owed, paid and overdue on one lease."""
    lease = await require_lease(db, tenant_id, lease_id)
    today = today or date.today()

    total_due = ZERO
    total_paid = ZERO
    overdue_amount = ZERO
    overdue_count = 0
    oldest_overdue: date | None = None
    next_due: Installment | None = None
    installments = [
        i for i in await _lease_installments(db, tenant_id, lease_id)
        if i.status != InstallmentStatus.CANCELED
    ]

    for inst in installments:
        total_due += inst.total_due
        total_paid += Decimal(inst.amount_paid)
        balance = max(inst.outstanding, ZERO)
        if balance <= 0:
            continue
        if inst.due_date < today:
            overdue_amount += balance
            overdue_count += 1
            if oldest_overdue is None or inst.due_date < oldest_overdue:
                oldest_overdue = inst.due_date
        elif next_due is None:
            next_due = inst

    return LeaseBalanceSummary(
        lease_id=lease.id,
        currency=lease.currency,
        installment_count=len(installments),
        total_due=to_money(total_due),
        total_paid=to_money(total_paid),
        outstanding=to_money(max(total_due - total_paid, ZERO)),
        overdue_amount=to_money(overdue_amount),
        overdue_count=overdue_count,
        days_past_due=(today - oldest_overdue).days if oldest_overdue else 0,
        next_due_installment_id=next_due.id if next_due else None,
        next_due_date=next_due.due_date if next_due else None,
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def generate_installments(
    db: AsyncSession,
    tenant_id: int,
    lease_id: int,
    *,
    actor_user_id: int | None = None,
) -> list[Installment]:
    """Create every installment of the lease in one batch. Runs once per lease."""
    lease = await require_lease(db, tenant_id, lease_id, for_update=True)
    if lease.is_terminal:
        raise InvariantViolation(
            f"Cannot generate installments for a lease in {lease.status.value} status"
        )

    existing = (
        await db.execute(
            select(sa_func.count(Installment.id)).where(
                Installment.tenant_id == tenant_id, Installment.lease_id == lease_id
            )
        )
    ).scalar()
    if existing:
        raise InvariantViolation(
            "Installments already exist for this lease. Delete them before regenerating."
        )

    periods = compute_billing_periods(
        lease.start_date,
        lease.end_date,
        lease.billing_frequency,
        lease.due_day_of_month,
        default_term_months=settings.default_lease_term_months,
    )

    installments = [
        Installment(
            tenant_id=tenant_id,
            lease_id=lease.id,
            period_year=p.period_year,
            period_month=p.period_month,
            due_date=p.due_date,
            currency=lease.currency,
            amount_rent=to_money(lease.rent_amount),
            amount_service=to_money(lease.service_charge_amount),
            amount_other_fees=ZERO,
            penalty_amount=ZERO,
            amount_paid=ZERO,
            status=InstallmentStatus.DRAFT,
        )
        for p in periods
    ]
    db.add_all(installments)
    await db.flush()

    logger.info(
        "Generated %d installments for lease %s (%s → %s)",
        len(installments), lease.id, periods[0].start_date, periods[-1].end_date,
    )
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_INSTALLMENTS_GENERATED",
        entity_type="RENTAL_LEASE",
        entity_id=lease.id,
        payload={
            "count": len(installments),
            "first_due_date": installments[0].due_date,
            "last_due_date": installments[-1].due_date,
        },
    )
    return installments


async def recalculate_statuses(
    db: AsyncSession, tenant_id: int, lease_id: int, *, today: date | None = None
) -> int:
    """Re-derive every non-canceled installment's status. Returns rows changed."""
    await require_lease(db, tenant_id, lease_id)
    today = today or date.today()

    changed = 0
    for inst in await _lease_installments(db, tenant_id, lease_id):
        if refresh_installment_status(inst, today):
            changed += 1
    if changed:
        await db.flush()

    logger.info("Recalculated installment statuses for lease %s: %d changed", lease_id, changed)
    return changed


async def delete_all_installments(
    db: AsyncSession,
    tenant_id: int,
    lease_id: int,
    *,
    actor_user_id: int | None = None,
    today: date | None = None,
) -> int:
    """Delete all installments of a lease (and their penalties).

    Blocked while an ended lease is inside its cooling-off window, and
    whenever any installment carries a payment allocation.
    """
    lease = await require_lease(db, tenant_id, lease_id, for_update=True)
    today = today or date.today()

    if lease.status == LeaseStatus.ENDED and lease.end_date is not None:
        days_since_end = (today - lease.end_date).days
        if days_since_end < settings.installment_deletion_cooling_off_days:
            raise InvariantViolation(
                "Cannot delete installments of a recently ended lease. "
                f"Wait {settings.installment_deletion_cooling_off_days} days after the end date."
            )

    installment_ids = (
        await db.execute(
            select(Installment.id).where(
                Installment.tenant_id == tenant_id, Installment.lease_id == lease_id
            )
        )
    ).scalars().all()
    if not installment_ids:
        return 0

    allocated = (
        await db.execute(
            select(sa_func.count(PaymentAllocation.id)).where(
                PaymentAllocation.installment_id.in_(installment_ids)
            )
        )
    ).scalar()
    if allocated:
        raise InvariantViolation(
            "Cannot delete installments: some have payment allocations. Unwind the payments first."
        )

    await db.execute(delete(Penalty).where(Penalty.installment_id.in_(installment_ids)))
    await db.execute(delete(Installment).where(Installment.id.in_(installment_ids)))
    await db.flush()

    count = len(installment_ids)
    logger.info("Deleted %d installments for lease %s", count, lease_id)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_INSTALLMENTS_DELETED",
        entity_type="RENTAL_LEASE",
        entity_id=lease_id,
        payload={"count": count},
    )
    return count
