"""Payment allocator.

Payments are recorded after the fact (cash, transfer, mobile money...) and
are idempotent on ``(tenant_id, idempotency_key)``: a replayed submission
returns the stored payment and writes nothing.

Allocation applies a payment to installments oldest due date first. An
installment's balance is its total due minus what *all* payments have
already allocated to it, so neither a payment nor an installment can ever be
over-allocated.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select, func as sa_func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.installment import Installment, InstallmentStatus
from app.models.payment import (
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
    MobileMoneyOperator,
)
from app.services.rentals.audit import record_audit_event
from app.services.rentals.errors import (
    ValidationError,
    NotFoundError,
    InvariantViolation,
    NotEligibleError,
)
from app.services.rentals.filters import PaymentFilters, Pagination, Page
from app.services.rentals.installments import refresh_installment_status
from app.services.rentals.leases import require_lease
from app.services.rentals.money import ZERO, to_money

logger = logging.getLogger(__name__)

ENTITY_TYPE = "RENTAL_PAYMENT"

# Timestamp column stamped the first time a payment reaches each status
_STATUS_TIMESTAMPS = {
    PaymentStatus.SUCCESS: "succeeded_at",
    PaymentStatus.FAILED: "failed_at",
    PaymentStatus.CANCELED: "canceled_at",
}


@dataclass
class AllocationResult:
    payment: Payment
    allocations: list[PaymentAllocation] = field(default_factory=list)
    total_allocated: Decimal = ZERO
    remaining_amount: Decimal = ZERO


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def _find_by_idempotency_key(db: AsyncSession, tenant_id: int, key: str) -> Payment | None:
    result = await db.execute(
        select(Payment).where(Payment.tenant_id == tenant_id, Payment.idempotency_key == key)
    )
    return result.scalar_one_or_none()


async def get_payment(db: AsyncSession, tenant_id: int, payment_id: int) -> Payment | None:
    result = await db.execute(
        select(Payment).where(Payment.id == payment_id, Payment.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def _require_payment(
    db: AsyncSession, tenant_id: int, payment_id: int, *, for_update: bool = False
) -> Payment:
    q = select(Payment).where(Payment.id == payment_id, Payment.tenant_id == tenant_id)
    if for_update:
        q = q.with_for_update()
    payment = (await db.execute(q)).scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


async def list_payment_allocations(
    db: AsyncSession, tenant_id: int, payment_id: int
) -> list[PaymentAllocation]:
    result = await db.execute(
        select(PaymentAllocation)
        .where(PaymentAllocation.tenant_id == tenant_id, PaymentAllocation.payment_id == payment_id)
        .order_by(PaymentAllocation.id)
    )
    return list(result.scalars().all())


async def allocated_total(db: AsyncSession, payment_id: int) -> Decimal:
    total = (
        await db.execute(
            select(sa_func.coalesce(sa_func.sum(PaymentAllocation.amount), 0)).where(
                PaymentAllocation.payment_id == payment_id
            )
        )
    ).scalar()
    return to_money(total)


async def _installment_allocated_totals(
    db: AsyncSession, installment_ids: list[int]
) -> dict[int, Decimal]:
    result = await db.execute(
        select(PaymentAllocation.installment_id, sa_func.sum(PaymentAllocation.amount))
        .where(PaymentAllocation.installment_id.in_(installment_ids))
        .group_by(PaymentAllocation.installment_id)
    )
    return {inst_id: to_money(total) for inst_id, total in result.all()}


async def list_payments(
    db: AsyncSession,
    tenant_id: int,
    filters: PaymentFilters | None = None,
    pagination: Pagination | None = None,
) -> Page[Payment]:
    filters = filters or PaymentFilters()
    pagination = pagination or Pagination()

    conditions = [Payment.tenant_id == tenant_id]
    if filters.lease_id is not None:
        conditions.append(Payment.lease_id == filters.lease_id)
    if filters.renter_id is not None:
        conditions.append(Payment.renter_id == filters.renter_id)
    if filters.status is not None:
        conditions.append(Payment.status == filters.status)
    if filters.method is not None:
        conditions.append(Payment.method == filters.method)
    if filters.created_from is not None:
        conditions.append(Payment.created_at >= filters.created_from)
    if filters.created_to is not None:
        conditions.append(Payment.created_at <= filters.created_to)

    total = (await db.execute(select(sa_func.count(Payment.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Payment)
        .where(*conditions)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset(pagination.offset)
        .limit(pagination.normalized_limit)
    )
    return Page(
        items=list(result.scalars().all()),
        page=pagination.normalized_page,
        limit=pagination.normalized_limit,
        total=total,
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_payment(
    db: AsyncSession,
    tenant_id: int,
    *,
    amount: Decimal,
    method: PaymentMethod,
    idempotency_key: str,
    lease_id: int | None = None,
    renter_id: int | None = None,
    currency: str | None = None,
    mm_operator: MobileMoneyOperator | None = None,
    mm_phone: str | None = None,
    psp_name: str | None = None,
    psp_transaction_id: str | None = None,
    psp_reference: str | None = None,
    actor_user_id: int | None = None,
) -> Payment:
    """Record a received payment, or return the existing one for a replayed key."""
    idempotency_key = (idempotency_key or "").strip()
    if not idempotency_key:
        raise ValidationError("An idempotency key is required")

    existing = await _find_by_idempotency_key(db, tenant_id, idempotency_key)
    if existing is not None:
        logger.warning(
            "Payment replay for key %r (tenant=%s), returning payment %s",
            idempotency_key, tenant_id, existing.id,
        )
        return existing

    try:
        amount = to_money(amount)
        method = PaymentMethod(method)
        mm_operator = MobileMoneyOperator(mm_operator) if mm_operator is not None else None
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")

    if lease_id is not None:
        lease = await require_lease(db, tenant_id, lease_id)
        currency = currency or lease.currency
        renter_id = renter_id or lease.primary_renter_id

    now = datetime.now(timezone.utc)
    payment = Payment(
        tenant_id=tenant_id,
        lease_id=lease_id,
        renter_id=renter_id,
        method=method,
        amount=amount,
        currency=currency or settings.default_currency,
        idempotency_key=idempotency_key,
        status=PaymentStatus.SUCCESS,
        mm_operator=mm_operator,
        mm_phone=mm_phone,
        psp_name=psp_name,
        psp_transaction_id=psp_transaction_id,
        psp_reference=psp_reference,
        initiated_at=now,
        succeeded_at=now,
        created_by=actor_user_id,
    )
    try:
        async with db.begin_nested():
            db.add(payment)
    except IntegrityError:
        # Lost a race on the idempotency constraint
        existing = await _find_by_idempotency_key(db, tenant_id, idempotency_key)
        if existing is None:
            raise
        logger.warning("Concurrent payment for key %r resolved to payment %s", idempotency_key, existing.id)
        return existing

    logger.info(
        "Payment recorded: id=%s %s %s via %s (lease=%s)",
        payment.id, payment.amount, payment.currency, method.value, lease_id,
    )
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PAYMENT_CREATED",
        entity_type=ENTITY_TYPE,
        entity_id=payment.id,
        payload={
            "amount": payment.amount,
            "method": method,
            "lease_id": lease_id,
            "idempotency_key": idempotency_key,
        },
    )
    return payment


async def allocate_payment(
    db: AsyncSession,
    tenant_id: int,
    payment_id: int,
    installment_ids: list[int],
    amounts: dict[int, Decimal] | None = None,
    *,
    actor_user_id: int | None = None,
    today: date | None = None,
) -> AllocationResult:
    """Apply a payment to installments, oldest due date first.

    ``amounts`` optionally caps what goes to each installment. Either every
    allocation row and installment update is written, or none is.
    """
    if not installment_ids:
        raise ValidationError("At least one installment is required")
    caps: dict[int, Decimal] = {}
    for inst_id, value in (amounts or {}).items():
        try:
            caps[int(inst_id)] = to_money(value)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if caps[int(inst_id)] <= 0:
            raise ValidationError("Allocation amounts must be positive")
    today = today or date.today()

    async with db.begin_nested():
        payment = await _require_payment(db, tenant_id, payment_id, for_update=True)
        if payment.status != PaymentStatus.SUCCESS:
            raise NotEligibleError(
                f"Only successful payments can be allocated (status: {payment.status.value})"
            )

        remaining = to_money(payment.amount) - await allocated_total(db, payment.id)
        if remaining <= 0:
            raise NotEligibleError("Payment is already fully allocated")

        q = select(Installment).where(
            Installment.tenant_id == tenant_id,
            Installment.id.in_(installment_ids),
            Installment.status != InstallmentStatus.CANCELED,
        )
        if payment.lease_id is not None:
            q = q.where(Installment.lease_id == payment.lease_id)
        installments = list(
            (
                await db.execute(q.order_by(Installment.due_date, Installment.id).with_for_update())
            ).scalars().all()
        )
        if not installments:
            raise NotFoundError("No installments found")

        already = await _installment_allocated_totals(db, [i.id for i in installments])
        allocations: list[PaymentAllocation] = []
        for inst in installments:
            if remaining <= 0:
                break
            balance = to_money(inst.total_due) - already.get(inst.id, ZERO)
            if balance <= 0:
                continue
            portion = min(balance, remaining)
            if inst.id in caps:
                portion = min(portion, caps[inst.id])

            allocations.append(
                PaymentAllocation(
                    tenant_id=tenant_id,
                    payment_id=payment.id,
                    installment_id=inst.id,
                    amount=portion,
                    currency=payment.currency,
                    created_by=actor_user_id,
                )
            )
            remaining -= portion

        if not allocations:
            raise InvariantViolation("No allocation possible: the selected installments are fully paid")

        db.add_all(allocations)
        await db.flush()

        touched = {a.installment_id for a in allocations}
        paid_totals = await _installment_allocated_totals(db, list(touched))
        for inst in installments:
            if inst.id not in touched:
                continue
            inst.amount_paid = paid_totals.get(inst.id, ZERO)
            refresh_installment_status(inst, today)
        await db.flush()

    total = sum((a.amount for a in allocations), ZERO)
    logger.info(
        "Payment %s allocated %s across %d installments (remaining %s)",
        payment.id, total, len(allocations), remaining,
    )
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PAYMENT_ALLOCATED",
        entity_type=ENTITY_TYPE,
        entity_id=payment.id,
        payload={
            "allocations": [
                {"installment_id": a.installment_id, "amount": a.amount} for a in allocations
            ],
            "total": total,
        },
    )
    return AllocationResult(
        payment=payment,
        allocations=allocations,
        total_allocated=to_money(total),
        remaining_amount=to_money(remaining),
    )


async def update_payment_status(
    db: AsyncSession,
    tenant_id: int,
    payment_id: int,
    new_status: PaymentStatus,
    *,
    actor_user_id: int | None = None,
) -> Payment:
    """Change a payment's status; each status timestamp is stamped at most once."""
    try:
        new_status = PaymentStatus(new_status)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    payment = await _require_payment(db, tenant_id, payment_id, for_update=True)
    old_status = payment.status
    if new_status == old_status:
        return payment

    payment.status = new_status
    column = _STATUS_TIMESTAMPS.get(new_status)
    if column and getattr(payment, column) is None:
        setattr(payment, column, datetime.now(timezone.utc))
    await db.flush()

    logger.info("Payment %s status %s → %s", payment.id, old_status.value, new_status.value)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PAYMENT_STATUS_UPDATED",
        entity_type=ENTITY_TYPE,
        entity_id=payment.id,
        payload={"old_status": old_status, "new_status": new_status},
    )
    return payment
