"""Security deposit ledger.

One deposit per lease with an append-only movement log. The deposit's four
running totals are updated in the same savepoint as each movement insert:

    collect     collected += amount   (once, exactly the target, needs a payment)
    hold        held += amount
    release     held -= amount        (at most the held amount)
    refund      refunded += amount    (at most the available amount)
    forfeit     forfeited += amount   (at most the available amount)
    adjustment  collected += amount   (signed, available stays >= 0)

``collected_amount`` is gross; available = collected − refunded − forfeited.
"""

import logging
from decimal import Decimal

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.deposit import SecurityDeposit, DepositMovement, DepositMovementType
from app.models.payment import Payment
from app.services.rentals.audit import record_audit_event
from app.services.rentals.errors import (
    ValidationError,
    NotFoundError,
    InvariantViolation,
    InsufficientBalanceError,
)
from app.services.rentals.leases import require_lease
from app.services.rentals.money import ZERO, to_money

logger = logging.getLogger(__name__)

ENTITY_TYPE = "RENTAL_DEPOSIT"


async def get_deposit(db: AsyncSession, tenant_id: int, lease_id: int) -> SecurityDeposit | None:
    result = await db.execute(
        select(SecurityDeposit).where(
            SecurityDeposit.tenant_id == tenant_id, SecurityDeposit.lease_id == lease_id
        )
    )
    return result.scalar_one_or_none()


async def _require_deposit(
    db: AsyncSession, tenant_id: int, deposit_id: int, *, for_update: bool = False
) -> SecurityDeposit:
    q = select(SecurityDeposit).where(
        SecurityDeposit.id == deposit_id, SecurityDeposit.tenant_id == tenant_id
    )
    if for_update:
        q = q.with_for_update()
    deposit = (await db.execute(q)).scalar_one_or_none()
    if deposit is None:
        raise NotFoundError("Security deposit not found")
    return deposit


async def create_deposit(
    db: AsyncSession,
    tenant_id: int,
    lease_id: int,
    *,
    actor_user_id: int | None = None,
) -> SecurityDeposit:
    lease = await require_lease(db, tenant_id, lease_id)
    if await get_deposit(db, tenant_id, lease_id) is not None:
        raise InvariantViolation("Security deposit already exists for this lease")

    deposit = SecurityDeposit(
        tenant_id=tenant_id,
        lease_id=lease.id,
        currency=lease.currency,
        target_amount=to_money(lease.security_deposit_amount),
        collected_amount=ZERO,
        held_amount=ZERO,
        refunded_amount=ZERO,
        forfeited_amount=ZERO,
    )
    db.add(deposit)
    await db.flush()

    logger.info("Security deposit %s created for lease %s (target %s)", deposit.id, lease.id, deposit.target_amount)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_DEPOSIT_CREATED",
        entity_type=ENTITY_TYPE,
        entity_id=deposit.id,
        payload={"lease_id": lease.id, "target_amount": deposit.target_amount},
    )
    return deposit


async def list_movements(db: AsyncSession, tenant_id: int, deposit_id: int) -> list[DepositMovement]:
    await _require_deposit(db, tenant_id, deposit_id)
    result = await db.execute(
        select(DepositMovement)
        .where(DepositMovement.tenant_id == tenant_id, DepositMovement.deposit_id == deposit_id)
        .order_by(DepositMovement.created_at.desc(), DepositMovement.id.desc())
    )
    return list(result.scalars().all())


async def record_movement(
    db: AsyncSession,
    tenant_id: int,
    deposit_id: int,
    movement_type: DepositMovementType,
    amount: Decimal,
    *,
    payment_id: int | None = None,
    installment_id: int | None = None,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> DepositMovement:
    """Append one movement and update the deposit totals atomically."""
    try:
        movement_type = DepositMovementType(movement_type)
        amount = to_money(amount)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    if movement_type == DepositMovementType.ADJUSTMENT:
        if amount == 0:
            raise ValidationError("Adjustment amount cannot be zero")
    elif amount <= 0:
        raise ValidationError("Movement amount must be positive")

    async with db.begin_nested():
        deposit = await _require_deposit(db, tenant_id, deposit_id, for_update=True)

        if movement_type == DepositMovementType.COLLECT:
            collects = (
                await db.execute(
                    select(sa_func.count(DepositMovement.id)).where(
                        DepositMovement.deposit_id == deposit.id,
                        DepositMovement.type == DepositMovementType.COLLECT,
                    )
                )
            ).scalar()
            if collects:
                raise InvariantViolation("Security deposit can only be collected once")
            if amount != to_money(deposit.target_amount):
                raise InvariantViolation(
                    f"Collection amount ({amount}) must equal target amount ({deposit.target_amount})"
                )
            if payment_id is None:
                raise ValidationError("Payment ID is required for deposit collection")
            payment = (
                await db.execute(
                    select(Payment.id).where(Payment.id == payment_id, Payment.tenant_id == tenant_id)
                )
            ).scalar_one_or_none()
            if payment is None:
                raise NotFoundError("Payment not found")
            deposit.collected_amount = to_money(deposit.collected_amount) + amount

        elif movement_type == DepositMovementType.HOLD:
            deposit.held_amount = to_money(deposit.held_amount) + amount

        elif movement_type == DepositMovementType.RELEASE:
            if amount > to_money(deposit.held_amount):
                raise InsufficientBalanceError(
                    f"Cannot release more than is held. Held: {deposit.held_amount}, Requested: {amount}"
                )
            deposit.held_amount = to_money(deposit.held_amount) - amount

        elif movement_type in (DepositMovementType.REFUND, DepositMovementType.FORFEIT):
            available = to_money(deposit.available_amount)
            if amount > available:
                raise InsufficientBalanceError(
                    f"Insufficient deposit balance. Available: {available}, Requested: {amount}"
                )
            if movement_type == DepositMovementType.REFUND:
                deposit.refunded_amount = to_money(deposit.refunded_amount) + amount
            else:
                deposit.forfeited_amount = to_money(deposit.forfeited_amount) + amount

        else:
            available = to_money(deposit.available_amount)
            if available + amount < 0:
                raise InsufficientBalanceError(
                    f"Adjustment would make the deposit balance negative. Available: {available}"
                )
            deposit.collected_amount = to_money(deposit.collected_amount) + amount

        movement = DepositMovement(
            tenant_id=tenant_id,
            deposit_id=deposit.id,
            type=movement_type,
            amount=amount,
            currency=deposit.currency,
            payment_id=payment_id,
            installment_id=installment_id,
            note=note,
            created_by=actor_user_id,
        )
        db.add(movement)
        await db.flush()

    logger.info(
        "Deposit %s movement %s %s (collected=%s held=%s refunded=%s forfeited=%s)",
        deposit.id, movement_type.value, amount, deposit.collected_amount,
        deposit.held_amount, deposit.refunded_amount, deposit.forfeited_amount,
    )
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_DEPOSIT_MOVEMENT_CREATED",
        entity_type=ENTITY_TYPE,
        entity_id=deposit.id,
        payload={
            "movement_id": movement.id,
            "type": movement_type,
            "amount": amount,
            "payment_id": payment_id,
        },
    )
    return movement
