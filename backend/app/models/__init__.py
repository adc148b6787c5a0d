"""SQLAlchemy models for the rental billing and collections engine."""

from app.models.lease import (
    Lease,
    LeaseStatus,
    BillingFrequency,
    PenaltyMode,
    LEASE_STATUS_TRANSITIONS,
    TERMINAL_LEASE_STATUSES,
)
from app.models.installment import Installment, InstallmentStatus
from app.models.payment import (
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
    MobileMoneyOperator,
)
from app.models.penalty import Penalty, PenaltyRule
from app.models.deposit import SecurityDeposit, DepositMovement, DepositMovementType
from app.models.audit import AuditLog

__all__ = [
    # Leases
    "Lease",
    "LeaseStatus",
    "BillingFrequency",
    "PenaltyMode",
    "LEASE_STATUS_TRANSITIONS",
    "TERMINAL_LEASE_STATUSES",
    # Installments
    "Installment",
    "InstallmentStatus",
    # Payments
    "Payment",
    "PaymentAllocation",
    "PaymentMethod",
    "PaymentStatus",
    "MobileMoneyOperator",
    # Penalties
    "Penalty",
    "PenaltyRule",
    # Deposits
    "SecurityDeposit",
    "DepositMovement",
    "DepositMovementType",
    # Audit
    "AuditLog",
]
