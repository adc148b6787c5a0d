"""Create rental billing tables: leases, installments, payments, penalties, deposits, audit log.

Revision ID: 001_rental_billing
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001_rental_billing"
down_revision = None
branch_labels = None
depends_on = None

# Labels match the Python enum member names stored by the ORM
lease_status = sa.Enum("DRAFT", "ACTIVE", "SUSPENDED", "ENDED", "CANCELED", name="leasestatus")
billing_frequency = sa.Enum("MONTHLY", "QUARTERLY", "SEMIANNUAL", "ANNUAL", name="billingfrequency")
penalty_mode = sa.Enum("FIXED_AMOUNT", "PERCENT_OF_RENT", "PERCENT_OF_BALANCE", name="penaltymode")
installment_status = sa.Enum(
    "DRAFT", "DUE", "PARTIAL", "PAID", "OVERDUE", "CANCELED", name="installmentstatus"
)
payment_method = sa.Enum(
    "CASH", "BANK_TRANSFER", "CHEQUE", "MOBILE_MONEY", "CARD", "OTHER", name="paymentmethod"
)
payment_status = sa.Enum(
    "PENDING", "SUCCESS", "FAILED", "CANCELED", "REFUNDED", "PARTIALLY_REFUNDED", name="paymentstatus"
)
mobile_money_operator = sa.Enum(
    "ORANGE_MONEY", "MTN_MOMO", "MOOV_MONEY", "WAVE", "FREE_MONEY", "OTHER", name="mobilemoneyoperator"
)
deposit_movement_type = sa.Enum(
    "COLLECT", "HOLD", "RELEASE", "REFUND", "FORFEIT", "ADJUSTMENT", name="depositmovementtype"
)


def upgrade() -> None:
    op.create_table(
        "rental_leases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("lease_number", sa.String(length=30), nullable=False),
        sa.Column("property_id", sa.Integer(), nullable=False),
        sa.Column("primary_renter_id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column("status", lease_status, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("move_in_date", sa.Date(), nullable=True),
        sa.Column("move_out_date", sa.Date(), nullable=True),
        sa.Column("billing_frequency", billing_frequency, nullable=False),
        sa.Column("due_day_of_month", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("rent_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("service_charge_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("security_deposit_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("penalty_grace_days", sa.Integer(), nullable=True),
        sa.Column("penalty_mode", penalty_mode, nullable=True),
        sa.Column("penalty_rate", sa.Numeric(7, 4), nullable=True),
        sa.Column("penalty_fixed_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("penalty_cap_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms_json", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "lease_number", name="uq_rental_lease_number"),
        sa.CheckConstraint("due_day_of_month BETWEEN 1 AND 31", name="ck_rental_lease_due_day"),
        sa.CheckConstraint("rent_amount > 0", name="ck_rental_lease_rent_positive"),
    )
    op.create_index("ix_rental_leases_tenant_id", "rental_leases", ["tenant_id"], unique=False)
    op.create_index("ix_rental_leases_property_id", "rental_leases", ["property_id"], unique=False)
    op.create_index("ix_rental_leases_primary_renter_id", "rental_leases", ["primary_renter_id"], unique=False)

    op.create_table(
        "rental_installments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("lease_id", sa.Integer(), nullable=False),
        sa.Column("period_year", sa.Integer(), nullable=False),
        sa.Column("period_month", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("amount_rent", sa.Numeric(14, 2), nullable=False),
        sa.Column("amount_service", sa.Numeric(14, 2), nullable=False),
        sa.Column("amount_other_fees", sa.Numeric(14, 2), nullable=False),
        sa.Column("penalty_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", installment_status, nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["lease_id"], ["rental_leases.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lease_id", "period_year", "period_month", name="uq_rental_installment_period"),
        sa.CheckConstraint("period_month BETWEEN 1 AND 12", name="ck_rental_installment_month"),
        sa.CheckConstraint(
            "amount_rent >= 0 AND amount_service >= 0 AND amount_other_fees >= 0 "
            "AND penalty_amount >= 0 AND amount_paid >= 0",
            name="ck_rental_installment_amounts_nonnegative",
        ),
    )
    op.create_index("ix_rental_installments_tenant_id", "rental_installments", ["tenant_id"], unique=False)
    op.create_index("ix_rental_installments_lease_id", "rental_installments", ["lease_id"], unique=False)
    op.create_index("ix_rental_installments_tenant_due", "rental_installments", ["tenant_id", "due_date"], unique=False)

    op.create_table(
        "rental_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("lease_id", sa.Integer(), nullable=True),
        sa.Column("renter_id", sa.Integer(), nullable=True),
        sa.Column("method", payment_method, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("mm_operator", mobile_money_operator, nullable=True),
        sa.Column("mm_phone", sa.String(length=30), nullable=True),
        sa.Column("psp_name", sa.String(length=50), nullable=True),
        sa.Column("psp_transaction_id", sa.String(length=100), nullable=True),
        sa.Column("psp_reference", sa.String(length=100), nullable=True),
        sa.Column("initiated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("succeeded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["lease_id"], ["rental_leases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_rental_payment_idempotency"),
        sa.CheckConstraint("amount > 0", name="ck_rental_payment_amount_positive"),
    )
    op.create_index("ix_rental_payments_tenant_id", "rental_payments", ["tenant_id"], unique=False)
    op.create_index("ix_rental_payments_lease_id", "rental_payments", ["lease_id"], unique=False)
    op.create_index("ix_rental_payments_renter_id", "rental_payments", ["renter_id"], unique=False)

    op.create_table(
        "rental_payment_allocations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("installment_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["payment_id"], ["rental_payments.id"]),
        sa.ForeignKeyConstraint(["installment_id"], ["rental_installments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount > 0", name="ck_rental_allocation_amount_positive"),
    )
    op.create_index("ix_rental_payment_allocations_tenant_id", "rental_payment_allocations", ["tenant_id"], unique=False)
    op.create_index("ix_rental_payment_allocations_payment_id", "rental_payment_allocations", ["payment_id"], unique=False)
    op.create_index(
        "ix_rental_payment_allocations_installment_id", "rental_payment_allocations", ["installment_id"], unique=False
    )

    op.create_table(
        "rental_penalty_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("grace_days", sa.Integer(), nullable=False),
        sa.Column("mode", penalty_mode, nullable=False),
        sa.Column("rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("fixed_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("cap_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("min_balance_to_apply", sa.Numeric(14, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rental_penalty_rules_tenant_id", "rental_penalty_rules", ["tenant_id"], unique=False)

    op.create_table(
        "rental_penalties",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("installment_id", sa.Integer(), nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("days_late", sa.Integer(), nullable=False),
        sa.Column("mode", penalty_mode, nullable=False),
        sa.Column("rate", sa.Numeric(7, 4), nullable=True),
        sa.Column("fixed_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("is_manual_override", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("override_reason", sa.Text(), nullable=True),
        sa.Column("justification_file_name", sa.String(length=255), nullable=True),
        sa.Column("justification_file_url", sa.String(length=500), nullable=True),
        sa.Column("justification_uploaded_by", sa.Integer(), nullable=True),
        sa.Column("justification_uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["installment_id"], ["rental_installments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount >= 0", name="ck_rental_penalty_amount_nonnegative"),
    )
    op.create_index("ix_rental_penalties_tenant_id", "rental_penalties", ["tenant_id"], unique=False)
    op.create_index("ix_rental_penalties_installment_id", "rental_penalties", ["installment_id"], unique=False)

    op.create_table(
        "rental_security_deposits",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("lease_id", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("target_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("collected_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("held_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("refunded_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("forfeited_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["lease_id"], ["rental_leases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "collected_amount >= 0 AND held_amount >= 0 "
            "AND refunded_amount >= 0 AND forfeited_amount >= 0",
            name="ck_rental_deposit_totals_nonnegative",
        ),
    )
    op.create_index("ix_rental_security_deposits_tenant_id", "rental_security_deposits", ["tenant_id"], unique=False)
    op.create_index("ix_rental_security_deposits_lease_id", "rental_security_deposits", ["lease_id"], unique=True)

    op.create_table(
        "rental_deposit_movements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("deposit_id", sa.Integer(), nullable=False),
        sa.Column("type", deposit_movement_type, nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("installment_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["deposit_id"], ["rental_security_deposits.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["rental_payments.id"]),
        sa.ForeignKeyConstraint(["installment_id"], ["rental_installments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rental_deposit_movements_tenant_id", "rental_deposit_movements", ["tenant_id"], unique=False)
    op.create_index("ix_rental_deposit_movements_deposit_id", "rental_deposit_movements", ["deposit_id"], unique=False)

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_tenant_id", "audit_log", ["tenant_id"], unique=False)
    op.create_index("ix_audit_log_action", "audit_log", ["action"], unique=False)
    op.create_index("ix_audit_log_entity_type", "audit_log", ["entity_type"], unique=False)


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("rental_deposit_movements")
    op.drop_table("rental_security_deposits")
    op.drop_table("rental_penalties")
    op.drop_table("rental_penalty_rules")
    op.drop_table("rental_payment_allocations")
    op.drop_table("rental_payments")
    op.drop_table("rental_installments")
    op.drop_table("rental_leases")

    bind = op.get_bind()
    for enum_type in (
        deposit_movement_type,
        mobile_money_operator,
        payment_status,
        payment_method,
        installment_status,
        penalty_mode,
        billing_frequency,
        lease_status,
    ):
        enum_type.drop(bind, checkfirst=True)
