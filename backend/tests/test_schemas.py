"""Tests for API schemas covering request validation and ORM-backed responses."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.models.deposit import SecurityDeposit
from app.models.installment import Installment, InstallmentStatus
from app.models.lease import PenaltyMode
from app.models.penalty import Penalty
from app.schemas import (
    AllocationRequest,
    DepositResponse,
    InstallmentResponse,
    LeaseCreate,
    PaymentCreate,
    PenaltyOverride,
    PenaltyResponse,
)


class TestLeaseCreate:
    """Lease creation request defaults."""

    def test_defaults(self):
        """Frequency, due day and status default to monthly / 5 / active."""
        data = LeaseCreate(
            property_id=1,
            primary_renter_id=2,
            start_date=date(2025, 1, 1),
            rent_amount="150000",
        )
        assert data.billing_frequency.value == "monthly"
        assert data.due_day_of_month == 5
        assert data.status.value == "active"
        assert data.rent_amount == Decimal("150000")
        assert data.penalty_mode is None

    def test_rejects_unknown_penalty_mode(self):
        """Penalty mode must be one of the known modes."""
        with pytest.raises(ValidationError):
            LeaseCreate(
                property_id=1,
                primary_renter_id=2,
                start_date=date(2025, 1, 1),
                rent_amount="1",
                penalty_mode="daily",
            )


class TestPaymentCreate:
    """Payment recording request."""

    def test_idempotency_key_required(self):
        """An empty idempotency key is rejected."""
        with pytest.raises(ValidationError):
            PaymentCreate(method="cash", amount="100", idempotency_key="")

    def test_mobile_money_fields(self):
        """Operator is parsed into the enum."""
        data = PaymentCreate(
            method="mobile_money", amount="100", idempotency_key="K", mm_operator="wave", mm_phone="+221"
        )
        assert data.mm_operator.value == "wave"


class TestAllocationRequest:
    """Allocation request validation."""

    def test_requires_installments(self):
        """At least one installment id must be given."""
        with pytest.raises(ValidationError):
            AllocationRequest(installment_ids=[])

    def test_amount_keys_coerced_to_int(self):
        """JSON object keys arrive as strings and become installment ids."""
        data = AllocationRequest(installment_ids=[3], amounts={"3": "500.50"})
        assert data.amounts == {3: Decimal("500.50")}


class TestPenaltyOverride:
    """Manual penalty override request."""

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            PenaltyOverride(amount="-1", reason="typo")

    def test_reason_required(self):
        with pytest.raises(ValidationError):
            PenaltyOverride(amount="0", reason="")


class TestResponsesFromOrm:
    """Responses read computed properties off ORM objects."""

    def test_installment_total_due(self):
        inst = Installment(
            id=1,
            lease_id=1,
            period_year=2025,
            period_month=1,
            due_date=date(2025, 1, 5),
            currency="FCFA",
            amount_rent=Decimal("150000"),
            amount_service=Decimal("5000"),
            amount_other_fees=Decimal("0"),
            penalty_amount=Decimal("3000"),
            amount_paid=Decimal("0"),
            status=InstallmentStatus.OVERDUE,
        )
        resp = InstallmentResponse.model_validate(inst)
        assert resp.total_due == Decimal("158000")
        assert resp.paid_at is None

    def test_deposit_available_amount(self):
        deposit = SecurityDeposit(
            id=1,
            lease_id=1,
            currency="FCFA",
            target_amount=Decimal("300000"),
            collected_amount=Decimal("300000"),
            held_amount=Decimal("10000"),
            refunded_amount=Decimal("50000"),
            forfeited_amount=Decimal("25000"),
        )
        assert DepositResponse.model_validate(deposit).available_amount == Decimal("225000")

    def test_penalty_justification_flag(self):
        penalty = Penalty(
            id=1,
            installment_id=1,
            calculated_at=datetime(2025, 1, 20, tzinfo=timezone.utc),
            days_late=15,
            mode=PenaltyMode.PERCENT_OF_BALANCE,
            rate=Decimal("2"),
            amount=Decimal("3000"),
            currency="FCFA",
            is_manual_override=False,
        )
        assert PenaltyResponse.model_validate(penalty).has_justification is False

        penalty.justification_file_url = "/uploads/rental/penalties/1/justification.pdf"
        assert PenaltyResponse.model_validate(penalty).has_justification is True
