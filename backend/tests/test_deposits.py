"""Tests for the security deposit ledger."""

from decimal import Decimal

import pytest

from app.models.deposit import DepositMovementType
from app.models.payment import PaymentMethod
from app.services.rentals.deposits import (
    create_deposit,
    get_deposit,
    list_movements,
    record_movement,
)
from app.services.rentals.errors import (
    InsufficientBalanceError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from app.services.rentals.payments import create_payment

TENANT_ID = 1


@pytest.fixture
def collected_deposit(db, lease_factory):
    """Deposit of 300,000 collected against a cash payment."""

    async def _make():
        lease = await lease_factory(security_deposit_amount=Decimal("300000"))
        deposit = await create_deposit(db, TENANT_ID, lease.id)
        payment = await create_payment(
            db, TENANT_ID, amount=Decimal("300000"), method=PaymentMethod.CASH,
            idempotency_key=f"dep-{lease.id}", lease_id=lease.id,
        )
        await record_movement(
            db, TENANT_ID, deposit.id, DepositMovementType.COLLECT, Decimal("300000"),
            payment_id=payment.id,
        )
        return deposit, payment

    return _make


class TestCreateDeposit:
    @pytest.mark.asyncio
    async def test_target_taken_from_lease(self, db, lease_factory):
        lease = await lease_factory(security_deposit_amount=Decimal("300000"))
        deposit = await create_deposit(db, TENANT_ID, lease.id)
        assert deposit.target_amount == Decimal("300000.00")
        assert deposit.currency == "FCFA"
        assert deposit.collected_amount == Decimal("0")
        assert deposit.available_amount == Decimal("0")
        assert await get_deposit(db, TENANT_ID, lease.id) is deposit

    @pytest.mark.asyncio
    async def test_one_deposit_per_lease(self, db, lease_factory):
        lease = await lease_factory()
        await create_deposit(db, TENANT_ID, lease.id)
        with pytest.raises(InvariantViolation, match="already exists"):
            await create_deposit(db, TENANT_ID, lease.id)

    @pytest.mark.asyncio
    async def test_unknown_lease(self, db, lease_factory):
        lease = await lease_factory(2)
        with pytest.raises(NotFoundError):
            await create_deposit(db, TENANT_ID, lease.id)


class TestCollect:
    @pytest.mark.asyncio
    async def test_collect_once_for_exact_target(self, db, collected_deposit):
        deposit, payment = await collected_deposit()
        assert deposit.collected_amount == Decimal("300000.00")
        assert deposit.available_amount == Decimal("300000.00")

        with pytest.raises(InvariantViolation, match="once"):
            await record_movement(
                db, TENANT_ID, deposit.id, DepositMovementType.COLLECT, Decimal("300000"),
                payment_id=payment.id,
            )

    @pytest.mark.asyncio
    async def test_collect_rules(self, db, lease_factory):
        lease = await lease_factory(security_deposit_amount=Decimal("300000"))
        deposit = await create_deposit(db, TENANT_ID, lease.id)

        with pytest.raises(InvariantViolation, match="must equal target"):
            await record_movement(
                db, TENANT_ID, deposit.id, DepositMovementType.COLLECT, Decimal("250000"), payment_id=1
            )
        with pytest.raises(ValidationError, match="Payment ID"):
            await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.COLLECT, Decimal("300000"))
        with pytest.raises(NotFoundError, match="Payment"):
            await record_movement(
                db, TENANT_ID, deposit.id, DepositMovementType.COLLECT, Decimal("300000"), payment_id=999
            )
        assert deposit.collected_amount == Decimal("0")
        assert await list_movements(db, TENANT_ID, deposit.id) == []


class TestMovements:
    @pytest.mark.asyncio
    async def test_refund_and_forfeit_limited_by_available(self, db, collected_deposit):
        deposit, _ = await collected_deposit()

        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.FORFEIT, Decimal("50000"))
        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.REFUND, Decimal("200000"))
        assert deposit.available_amount == Decimal("50000.00")
        assert deposit.collected_amount == Decimal("300000.00")

        with pytest.raises(InsufficientBalanceError, match="Available: 50000.00"):
            await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.REFUND, Decimal("50000.01"))
        assert deposit.refunded_amount == Decimal("200000.00")

    @pytest.mark.asyncio
    async def test_hold_and_release(self, db, collected_deposit):
        deposit, _ = await collected_deposit()

        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.HOLD, Decimal("40000"))
        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.RELEASE, Decimal("15000"))
        assert deposit.held_amount == Decimal("25000.00")

        with pytest.raises(InsufficientBalanceError, match="release more"):
            await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.RELEASE, Decimal("25000.01"))
        assert deposit.held_amount == Decimal("25000.00")

    @pytest.mark.asyncio
    async def test_adjustment_is_signed(self, db, collected_deposit):
        deposit, _ = await collected_deposit()

        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.ADJUSTMENT, Decimal("-100000"))
        assert deposit.available_amount == Decimal("200000.00")
        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.ADJUSTMENT, Decimal("5000"))
        assert deposit.available_amount == Decimal("205000.00")

        with pytest.raises(InsufficientBalanceError, match="negative"):
            await record_movement(
                db, TENANT_ID, deposit.id, DepositMovementType.ADJUSTMENT, Decimal("-205000.01")
            )
        with pytest.raises(ValidationError, match="zero"):
            await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.ADJUSTMENT, Decimal("0"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "movement_type",
        [DepositMovementType.HOLD, DepositMovementType.REFUND, DepositMovementType.FORFEIT],
    )
    async def test_non_adjustment_amounts_must_be_positive(self, db, collected_deposit, movement_type):
        deposit, _ = await collected_deposit()
        with pytest.raises(ValidationError, match="positive"):
            await record_movement(db, TENANT_ID, deposit.id, movement_type, Decimal("-1"))

    @pytest.mark.asyncio
    async def test_movement_log_newest_first(self, db, collected_deposit):
        deposit, _ = await collected_deposit()
        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.HOLD, Decimal("10"), note="keys")
        await record_movement(db, TENANT_ID, deposit.id, DepositMovementType.RELEASE, Decimal("10"))

        movements = await list_movements(db, TENANT_ID, deposit.id)
        assert [m.type for m in movements] == [
            DepositMovementType.RELEASE,
            DepositMovementType.HOLD,
            DepositMovementType.COLLECT,
        ]
        assert movements[1].note == "keys"

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_deposit(self, db, collected_deposit):
        deposit, _ = await collected_deposit()
        with pytest.raises(NotFoundError):
            await list_movements(db, 2, deposit.id)
        with pytest.raises(NotFoundError):
            await record_movement(db, 2, deposit.id, DepositMovementType.HOLD, Decimal("10"))
