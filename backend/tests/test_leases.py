"""Tests for the lease provider: creation, numbering, updates and lifecycle."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models.audit import AuditLog
from app.models.lease import LeaseStatus, PenaltyMode
from app.services.rentals.errors import (
    InvalidStatusTransition,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from app.services.rentals.filters import LeaseFilters, Pagination
from app.services.rentals.leases import (
    LeaseUpdate,
    get_lease,
    list_leases,
    require_lease,
    update_lease,
    update_lease_status,
)

TENANT_ID = 1


class TestCreateLease:
    @pytest.mark.asyncio
    async def test_generates_sequential_lease_numbers(self, lease_factory):
        first = await lease_factory()
        second = await lease_factory()
        year = date.today().year
        assert first.lease_number == f"BAIL-{year}-0001"
        assert second.lease_number == f"BAIL-{year}-0002"

    @pytest.mark.asyncio
    async def test_numbering_is_per_tenant(self, lease_factory):
        await lease_factory(TENANT_ID)
        other = await lease_factory(2)
        assert other.lease_number.endswith("-0001")

    @pytest.mark.asyncio
    async def test_duplicate_explicit_number_rejected(self, lease_factory):
        await lease_factory(lease_number="BAIL-CUSTOM-1")
        with pytest.raises(InvariantViolation, match="already exists"):
            await lease_factory(lease_number="BAIL-CUSTOM-1")

    @pytest.mark.asyncio
    async def test_defaults_and_amounts(self, lease_factory):
        lease = await lease_factory(currency=None, service_charge_amount="10000.005")
        assert lease.status == LeaseStatus.ACTIVE
        assert lease.currency == "FCFA"
        assert lease.rent_amount == Decimal("150000.00")
        assert lease.service_charge_amount == Decimal("10000.01")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"end_date": date(2024, 12, 31)}, "End date"),
            ({"due_day_of_month": 32}, "Due day"),
            ({"due_day_of_month": 0}, "Due day"),
            ({"rent_amount": Decimal("0")}, "Rent amount"),
            ({"property_id": None}, "Property"),
            ({"primary_renter_id": None}, "renter"),
            ({"penalty_rate": Decimal("150")}, "rate"),
            ({"penalty_grace_days": -1}, "grace"),
            ({"status": LeaseStatus.ENDED}, "draft or active"),
        ],
    )
    async def test_validation_errors(self, lease_factory, overrides, message):
        with pytest.raises(ValidationError, match=message):
            await lease_factory(**overrides)

    @pytest.mark.asyncio
    async def test_creation_is_audited(self, db, lease_factory):
        lease = await lease_factory()
        events = (
            await db.execute(select(AuditLog).where(AuditLog.entity_id == lease.id))
        ).scalars().all()
        assert [e.action for e in events] == ["RENTAL_LEASE_CREATED"]
        assert events[0].actor_user_id == 42
        assert events[0].payload["lease_number"] == lease.lease_number


class TestLeaseQueries:
    @pytest.mark.asyncio
    async def test_lookup_is_tenant_scoped(self, db, lease_factory):
        lease = await lease_factory()
        assert await get_lease(db, TENANT_ID, lease.id) is lease
        assert await get_lease(db, 2, lease.id) is None
        with pytest.raises(NotFoundError):
            await require_lease(db, 2, lease.id)

    @pytest.mark.asyncio
    async def test_list_filters_and_pagination(self, db, lease_factory):
        await lease_factory(property_id=1)
        await lease_factory(property_id=2)
        draft = await lease_factory(property_id=2, status=LeaseStatus.DRAFT)

        page = await list_leases(db, TENANT_ID, LeaseFilters(property_id=2))
        assert page.total == 2

        page = await list_leases(db, TENANT_ID, LeaseFilters(status=LeaseStatus.DRAFT))
        assert [lease.id for lease in page.items] == [draft.id]

        page = await list_leases(db, TENANT_ID, pagination=Pagination(page=2, limit=2))
        assert page.total == 3
        assert len(page.items) == 1
        assert page.total_pages == 2


class TestUpdateLease:
    @pytest.mark.asyncio
    async def test_updates_only_given_fields(self, db, lease_factory):
        lease = await lease_factory()
        updated = await update_lease(
            db,
            TENANT_ID,
            lease.id,
            LeaseUpdate(rent_amount=Decimal("175000"), penalty_mode=PenaltyMode.FIXED_AMOUNT),
        )
        assert updated.rent_amount == Decimal("175000.00")
        assert updated.penalty_mode == PenaltyMode.FIXED_AMOUNT
        assert updated.end_date == date(2025, 3, 31)

    @pytest.mark.asyncio
    async def test_end_date_must_follow_start(self, db, lease_factory):
        lease = await lease_factory()
        with pytest.raises(ValidationError):
            await update_lease(db, TENANT_ID, lease.id, LeaseUpdate(end_date=date(2024, 6, 1)))

    @pytest.mark.asyncio
    async def test_terminal_lease_is_immutable(self, db, lease_factory):
        lease = await lease_factory()
        await update_lease_status(db, TENANT_ID, lease.id, LeaseStatus.CANCELED)
        with pytest.raises(InvariantViolation):
            await update_lease(db, TENANT_ID, lease.id, LeaseUpdate(notes="late"))


class TestLeaseStatus:
    @pytest.mark.asyncio
    async def test_allowed_lifecycle(self, db, lease_factory):
        lease = await lease_factory(status=LeaseStatus.DRAFT)
        for target in (
            LeaseStatus.ACTIVE,
            LeaseStatus.SUSPENDED,
            LeaseStatus.ACTIVE,
            LeaseStatus.ENDED,
        ):
            lease = await update_lease_status(db, TENANT_ID, lease.id, target)
            assert lease.status == target

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", [LeaseStatus.ENDED, LeaseStatus.CANCELED])
    async def test_terminal_states_are_absorbing(self, db, lease_factory, terminal):
        lease = await lease_factory()
        await update_lease_status(db, TENANT_ID, lease.id, terminal)
        for target in LeaseStatus:
            with pytest.raises(InvalidStatusTransition):
                await update_lease_status(db, TENANT_ID, lease.id, target)

    @pytest.mark.asyncio
    async def test_draft_cannot_be_suspended(self, db, lease_factory):
        lease = await lease_factory(status=LeaseStatus.DRAFT)
        with pytest.raises(InvalidStatusTransition, match="draft to suspended"):
            await update_lease_status(db, TENANT_ID, lease.id, LeaseStatus.SUSPENDED)
