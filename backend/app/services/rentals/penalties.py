"""Penalty engine.

Computes late fees for overdue installments, supports manual overrides with
a justification document, and runs the daily batch over every overdue
installment.

Terms are resolved field by field: a non-null value on the lease wins over
the tenant's active ``PenaltyRule``. An installment becomes penalizable once
``today > due_date + grace_days``.

Modes:
    FIXED_AMOUNT        flat ``fixed_amount``
    PERCENT_OF_RENT     ``rent × rate / 100``
    PERCENT_OF_BALANCE  ``(rent + service + other fees − paid) × rate / 100``

``cap_amount`` clamps the result from above. ``min_balance_to_apply``
zeroes it when the balance (penalty excluded) is below the threshold.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.installment import Installment, InstallmentStatus
from app.models.lease import Lease, PenaltyMode
from app.models.penalty import Penalty, PenaltyRule
from app.services.rentals.audit import record_audit_event
from app.services.rentals.errors import (
    ValidationError,
    NotFoundError,
    NotEligibleError,
    NotOverdueError,
)
from app.services.rentals.filters import PenaltyFilters
from app.services.rentals.installments import (
    SETTLED_STATUSES,
    refresh_installment_status,
    require_installment,
)
from app.services.rentals.money import ZERO, to_money, percent_of
from app.services.rentals.storage import JustificationStore, LocalJustificationStore

logger = logging.getLogger(__name__)

ENTITY_TYPE = "RENTAL_PENALTY"


@dataclass(frozen=True)
class PenaltyTerms:
    grace_days: int
    mode: PenaltyMode
    rate: Decimal
    fixed_amount: Decimal
    cap_amount: Decimal | None = None
    min_balance_to_apply: Decimal | None = None


@dataclass
class PenaltyRunResult:
    processed: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    penalties: list[Penalty] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": self.errors,
            "penalties": [
                {
                    "id": p.id,
                    "tenant_id": p.tenant_id,
                    "installment_id": p.installment_id,
                    "days_late": p.days_late,
                    "mode": p.mode.value,
                    "amount": str(p.amount),
                    "currency": p.currency,
                }
                for p in self.penalties
            ],
        }


# ---------------------------------------------------------------------------
# Rules and terms
# ---------------------------------------------------------------------------

async def get_default_penalty_rule(db: AsyncSession, tenant_id: int) -> PenaltyRule:
    """Return the tenant's active rule, creating the configured default if none exists."""
    result = await db.execute(
        select(PenaltyRule)
        .where(PenaltyRule.tenant_id == tenant_id, PenaltyRule.is_active == True)  # noqa: E712
        .order_by(PenaltyRule.id)
        .limit(1)
    )
    rule = result.scalar_one_or_none()
    if rule is not None:
        return rule

    rule = PenaltyRule(
        tenant_id=tenant_id,
        is_active=True,
        grace_days=settings.default_penalty_grace_days,
        mode=PenaltyMode(settings.default_penalty_mode.lower()),
        rate=Decimal(settings.default_penalty_rate),
        fixed_amount=ZERO,
    )
    db.add(rule)
    await db.flush()
    logger.info("Created default penalty rule for tenant %s (%s, %s%%)", tenant_id, rule.mode.value, rule.rate)
    return rule


def resolve_penalty_terms(lease: Lease, rule: PenaltyRule) -> PenaltyTerms:
    def pick(lease_value, rule_value):
        return lease_value if lease_value is not None else rule_value

    return PenaltyTerms(
        grace_days=int(pick(lease.penalty_grace_days, rule.grace_days) or 0),
        mode=PenaltyMode(pick(lease.penalty_mode, rule.mode)),
        rate=Decimal(pick(lease.penalty_rate, rule.rate) or 0),
        fixed_amount=to_money(pick(lease.penalty_fixed_amount, rule.fixed_amount)),
        cap_amount=pick(lease.penalty_cap_amount, rule.cap_amount),
        min_balance_to_apply=rule.min_balance_to_apply,
    )


def compute_penalty_amount(
    terms: PenaltyTerms,
    *,
    rent_amount: Decimal,
    base_due: Decimal,
    amount_paid: Decimal,
) -> Decimal:
    """Pure penalty formula. ``base_due`` excludes any penalty already applied."""
    balance = max(Decimal(base_due) - Decimal(amount_paid), ZERO)

    if terms.min_balance_to_apply is not None and balance < Decimal(terms.min_balance_to_apply):
        return ZERO

    if terms.mode == PenaltyMode.FIXED_AMOUNT:
        amount = to_money(terms.fixed_amount)
    elif terms.mode == PenaltyMode.PERCENT_OF_RENT:
        amount = percent_of(rent_amount, terms.rate)
    else:
        amount = percent_of(balance, terms.rate)

    if terms.cap_amount is not None and amount > Decimal(terms.cap_amount):
        amount = to_money(terms.cap_amount)
    return max(amount, ZERO)


def penalizable_from(due_date: date, grace_days: int) -> date:
    """First day on which a penalty may be applied."""
    return due_date + timedelta(days=grace_days + 1)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_penalty(db: AsyncSession, tenant_id: int, penalty_id: int) -> Penalty | None:
    result = await db.execute(
        select(Penalty).where(Penalty.id == penalty_id, Penalty.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def _require_penalty(
    db: AsyncSession, tenant_id: int, penalty_id: int, *, for_update: bool = False
) -> Penalty:
    q = select(Penalty).where(Penalty.id == penalty_id, Penalty.tenant_id == tenant_id)
    if for_update:
        q = q.with_for_update()
    penalty = (await db.execute(q)).scalar_one_or_none()
    if penalty is None:
        raise NotFoundError("Penalty not found")
    return penalty


async def _current_penalty(db: AsyncSession, installment_id: int) -> Penalty | None:
    result = await db.execute(
        select(Penalty)
        .where(Penalty.installment_id == installment_id)
        .order_by(Penalty.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_penalties(
    db: AsyncSession, tenant_id: int, filters: PenaltyFilters | None = None
) -> list[Penalty]:
    filters = filters or PenaltyFilters()

    q = select(Penalty).where(Penalty.tenant_id == tenant_id)
    if filters.installment_id is not None:
        q = q.where(Penalty.installment_id == filters.installment_id)
    if filters.lease_id is not None:
        q = q.join(Installment, Installment.id == Penalty.installment_id).where(
            Installment.lease_id == filters.lease_id
        )
    result = await db.execute(q.order_by(Penalty.calculated_at.desc(), Penalty.id.desc()))
    return list(result.scalars().all())


async def _sync_installment_penalty(db: AsyncSession, installment: Installment, today: date) -> None:
    """Set ``penalty_amount`` to the sum of the installment's penalties and re-derive status."""
    await db.flush()
    total = (
        await db.execute(
            select(sa_func.coalesce(sa_func.sum(Penalty.amount), 0)).where(
                Penalty.installment_id == installment.id
            )
        )
    ).scalar()
    installment.penalty_amount = to_money(total)
    refresh_installment_status(installment, today)
    await db.flush()


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------

async def _apply_penalty(
    db: AsyncSession,
    tenant_id: int,
    installment_id: int,
    *,
    rule: PenaltyRule | None,
    actor_user_id: int | None,
    today: date,
) -> tuple[Penalty, bool]:
    """Compute and store the installment's current penalty.

    Returns ``(penalty, applied)``; ``applied`` is False when a manual
    override froze the existing penalty.
    """
    async with db.begin_nested():
        installment = await require_installment(db, tenant_id, installment_id, for_update=True)
        if installment.status == InstallmentStatus.PAID:
            raise NotEligibleError("Installment is already paid")
        if installment.status == InstallmentStatus.CANCELED:
            raise NotEligibleError("Installment is canceled")

        lease = (
            await db.execute(
                select(Lease).where(Lease.id == installment.lease_id, Lease.tenant_id == tenant_id)
            )
        ).scalar_one()
        rule = rule or await get_default_penalty_rule(db, tenant_id)
        terms = resolve_penalty_terms(lease, rule)

        if today < penalizable_from(installment.due_date, terms.grace_days):
            raise NotOverdueError("Installment is not yet overdue (within grace period)")

        current = await _current_penalty(db, installment.id)
        if current is not None and current.is_manual_override:
            logger.warning(
                "Penalty %s on installment %s is a manual override; recalculation skipped",
                current.id, installment.id,
            )
            return current, False

        amount = compute_penalty_amount(
            terms,
            rent_amount=installment.amount_rent,
            base_due=installment.base_due,
            amount_paid=installment.amount_paid,
        )
        snapshot = dict(
            calculated_at=datetime.now(timezone.utc),
            days_late=(today - installment.due_date).days,
            mode=terms.mode,
            rate=None if terms.mode == PenaltyMode.FIXED_AMOUNT else terms.rate,
            fixed_amount=terms.fixed_amount if terms.mode == PenaltyMode.FIXED_AMOUNT else None,
            amount=amount,
        )
        if current is None:
            current = Penalty(
                tenant_id=tenant_id,
                installment_id=installment.id,
                currency=installment.currency,
                is_manual_override=False,
                created_by=actor_user_id,
                **snapshot,
            )
            db.add(current)
        else:
            for key, value in snapshot.items():
                setattr(current, key, value)

        await _sync_installment_penalty(db, installment, today)

    logger.info(
        "Penalty %s for installment %s: %s %s (%d days late, %s)",
        current.id, installment_id, current.amount, current.currency,
        current.days_late, terms.mode.value,
    )
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PENALTY_CALCULATED",
        entity_type=ENTITY_TYPE,
        entity_id=current.id,
        payload={
            "installment_id": installment_id,
            "amount": current.amount,
            "days_late": current.days_late,
            "mode": terms.mode,
        },
    )
    return current, True


async def calculate_penalty(
    db: AsyncSession,
    tenant_id: int,
    installment_id: int,
    *,
    rule: PenaltyRule | None = None,
    actor_user_id: int | None = None,
    today: date | None = None,
) -> Penalty:
    """Calculate (or recalculate in place) the installment's penalty.

    Raises ``NotOverdueError`` while the installment is within its grace
    period. A manually overridden penalty is returned unchanged.
    """
    penalty, _ = await _apply_penalty(
        db,
        tenant_id,
        installment_id,
        rule=rule,
        actor_user_id=actor_user_id,
        today=today or date.today(),
    )
    return penalty


async def run_penalty_calculation(
    db: AsyncSession, tenant_id: int | None = None, *, today: date | None = None
) -> PenaltyRunResult:
    """Penalize every overdue installment, optionally for one tenant only.

    Each installment is processed in its own savepoint; a failure is recorded
    in ``errors`` and the run moves on.
    """
    today = today or date.today()
    run = PenaltyRunResult()

    q = select(Installment, Lease).join(Lease, Lease.id == Installment.lease_id).where(
        Installment.status.notin_(SETTLED_STATUSES),
        Installment.due_date < today,
    )
    if tenant_id is not None:
        q = q.where(Installment.tenant_id == tenant_id)
    rows = (
        await db.execute(q.order_by(Installment.tenant_id, Installment.due_date, Installment.id))
    ).all()

    logger.info("Penalty run %s: %d candidate installments (tenant=%s)", today, len(rows), tenant_id or "all")

    rules: dict[int, PenaltyRule] = {}
    for installment, lease in rows:
        inst_id, inst_tenant = installment.id, installment.tenant_id
        try:
            if inst_tenant not in rules:
                rules[inst_tenant] = await get_default_penalty_rule(db, inst_tenant)
            terms = resolve_penalty_terms(lease, rules[inst_tenant])
            if today < penalizable_from(installment.due_date, terms.grace_days):
                run.skipped += 1
                continue

            penalty, applied = await _apply_penalty(
                db, inst_tenant, inst_id, rule=rules[inst_tenant], actor_user_id=None, today=today
            )
            if applied:
                run.processed += 1
                run.penalties.append(penalty)
            else:
                run.skipped += 1
        except Exception as exc:
            logger.exception("Penalty calculation failed for installment %s (tenant=%s)", inst_id, inst_tenant)
            run.errors.append({"installment_id": inst_id, "tenant_id": inst_tenant, "error": str(exc)})

    logger.info(
        "Penalty run %s done: processed=%d skipped=%d errors=%d",
        today, run.processed, run.skipped, len(run.errors),
    )
    return run


# ---------------------------------------------------------------------------
# Override, deletion, justification
# ---------------------------------------------------------------------------

async def update_penalty(
    db: AsyncSession,
    tenant_id: int,
    penalty_id: int,
    *,
    amount: Decimal,
    reason: str,
    actor_user_id: int | None = None,
    today: date | None = None,
) -> Penalty:
    """Manually override a penalty amount. The penalty is then frozen from recalculation."""
    try:
        amount = to_money(amount)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if amount < 0:
        raise ValidationError("Penalty amount cannot be negative")
    if not reason or not reason.strip():
        raise ValidationError("An override reason is required")
    today = today or date.today()

    async with db.begin_nested():
        penalty = await _require_penalty(db, tenant_id, penalty_id, for_update=True)
        installment = await require_installment(db, tenant_id, penalty.installment_id, for_update=True)
        old_amount = penalty.amount

        penalty.amount = amount
        penalty.is_manual_override = True
        penalty.override_reason = reason.strip()
        await _sync_installment_penalty(db, installment, today)

    logger.info("Penalty %s overridden: %s → %s", penalty.id, old_amount, amount)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PENALTY_UPDATED",
        entity_type=ENTITY_TYPE,
        entity_id=penalty.id,
        payload={"old_amount": old_amount, "new_amount": amount, "reason": penalty.override_reason},
    )
    return penalty


async def delete_penalty(
    db: AsyncSession,
    tenant_id: int,
    penalty_id: int,
    *,
    actor_user_id: int | None = None,
    today: date | None = None,
) -> Installment:
    """Delete a penalty and return its installment with the penalty total recomputed."""
    today = today or date.today()

    async with db.begin_nested():
        penalty = await _require_penalty(db, tenant_id, penalty_id, for_update=True)
        installment = await require_installment(db, tenant_id, penalty.installment_id, for_update=True)
        amount = penalty.amount

        await db.delete(penalty)
        await _sync_installment_penalty(db, installment, today)

    logger.info("Penalty %s deleted from installment %s", penalty_id, installment.id)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PENALTY_DELETED",
        entity_type=ENTITY_TYPE,
        entity_id=penalty_id,
        payload={"installment_id": installment.id, "amount": amount},
    )
    return installment


async def upload_penalty_justification(
    db: AsyncSession,
    tenant_id: int,
    penalty_id: int,
    *,
    filename: str,
    content: bytes,
    content_type: str | None,
    store: JustificationStore | None = None,
    actor_user_id: int | None = None,
) -> Penalty:
    """Attach (or replace) the penalty's justification document. Never touches the amount."""
    allowed = settings.justification_type_list
    if content_type not in allowed:
        raise ValidationError(f"Invalid file type. Allowed: {', '.join(allowed)}")
    if not content:
        raise ValidationError("Justification file is empty")
    if len(content) > settings.max_upload_size_mb * 1024 * 1024:
        raise ValidationError(f"File too large. Maximum size is {settings.max_upload_size_mb} MB")
    if not filename:
        raise ValidationError("File name is required")

    penalty = await _require_penalty(db, tenant_id, penalty_id, for_update=True)
    store = store or LocalJustificationStore()
    url = store.save(penalty.id, filename, content)

    replaced = penalty.justification_file_url
    penalty.justification_file_name = filename
    penalty.justification_file_url = url
    penalty.justification_uploaded_by = actor_user_id
    penalty.justification_uploaded_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("Justification uploaded for penalty %s: %s", penalty.id, url)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action="RENTAL_PENALTY_JUSTIFICATION_UPLOADED",
        entity_type=ENTITY_TYPE,
        entity_id=penalty.id,
        payload={"file_name": filename, "file_url": url, "replaced": replaced},
    )
    return penalty
