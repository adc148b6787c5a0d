"""Explicit query filters and pagination for the rental list operations.

Every field is optional; ``None`` means "do not filter on this".
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, TypeVar

from app.models.installment import InstallmentStatus
from app.models.lease import LeaseStatus
from app.models.payment import PaymentMethod, PaymentStatus

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class LeaseFilters:
    status: LeaseStatus | None = None
    property_id: int | None = None
    primary_renter_id: int | None = None
    search: str | None = None


@dataclass(frozen=True)
class InstallmentFilters:
    lease_id: int | None = None
    status: InstallmentStatus | None = None
    period_year: int | None = None
    period_month: int | None = None
    overdue: bool | None = None


@dataclass(frozen=True)
class PaymentFilters:
    lease_id: int | None = None
    renter_id: int | None = None
    status: PaymentStatus | None = None
    method: PaymentMethod | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


@dataclass(frozen=True)
class PenaltyFilters:
    lease_id: int | None = None
    installment_id: int | None = None


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.normalized_page - 1) * self.normalized_limit

    @property
    def normalized_page(self) -> int:
        return max(self.page, 1)

    @property
    def normalized_limit(self) -> int:
        return min(max(self.limit, 1), MAX_PAGE_SIZE)


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
