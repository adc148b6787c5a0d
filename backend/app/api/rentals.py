"""Rental billing endpoints: leases, installments, payments, penalties, deposits.

Authentication happens upstream; the gateway forwards the caller's tenant
and user ids as ``X-Tenant-Id`` / ``X-User-Id`` headers. Engine errors are
mapped to HTTP status codes by the handler registered in ``app.main``.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, UploadFile, File, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.installment import InstallmentStatus
from app.models.lease import LeaseStatus
from app.models.payment import PaymentMethod, PaymentStatus
from app.schemas import (
    LeaseCreate,
    LeaseUpdateRequest,
    LeaseStatusUpdate,
    LeaseResponse,
    LeaseListResponse,
    InstallmentResponse,
    InstallmentListResponse,
    InstallmentCountResponse,
    LeaseBalanceSummaryResponse,
    PaymentCreate,
    PaymentResponse,
    PaymentListResponse,
    PaymentDetailResponse,
    PaymentAllocationResponse,
    AllocationRequest,
    AllocationResponse,
    PaymentStatusUpdate,
    PenaltyResponse,
    PenaltyOverride,
    PenaltyRunResponse,
    DepositResponse,
    DepositMovementCreate,
    DepositMovementResponse,
)
from app.services.rentals import deposits, installments, leases, payments, penalties
from app.services.rentals.filters import (
    LeaseFilters,
    InstallmentFilters,
    PaymentFilters,
    PenaltyFilters,
    Pagination,
)
from app.services.rentals.storage import JustificationStore, LocalJustificationStore

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_tenant_id(x_tenant_id: int = Header(...)) -> int:
    return x_tenant_id


async def get_actor_id(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    return x_user_id


def get_justification_store() -> JustificationStore:
    return LocalJustificationStore()


def _page_payload(page) -> dict:
    return {
        "items": page.items,
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "total_pages": page.total_pages,
    }


# ══════════════════════════════════════════════════════════════════════════
# Leases
# ══════════════════════════════════════════════════════════════════════════

@router.post("/leases", response_model=LeaseResponse, status_code=status.HTTP_201_CREATED)
async def create_lease(
    data: LeaseCreate,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await leases.create_lease(db, tenant_id, **data.model_dump(), actor_user_id=actor_id)


@router.get("/leases", response_model=LeaseListResponse)
async def list_leases(
    status_filter: Optional[LeaseStatus] = Query(None, alias="status"),
    property_id: Optional[int] = None,
    primary_renter_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    result = await leases.list_leases(
        db,
        tenant_id,
        LeaseFilters(
            status=status_filter,
            property_id=property_id,
            primary_renter_id=primary_renter_id,
            search=search,
        ),
        Pagination(page=page, limit=limit),
    )
    return _page_payload(result)


@router.get("/leases/{lease_id}", response_model=LeaseResponse)
async def get_lease(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    lease = await leases.get_lease(db, tenant_id, lease_id)
    if not lease:
        raise HTTPException(status_code=404, detail="Lease not found")
    return lease


@router.patch("/leases/{lease_id}", response_model=LeaseResponse)
async def update_lease(
    lease_id: int,
    data: LeaseUpdateRequest,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await leases.update_lease(
        db, tenant_id, lease_id, leases.LeaseUpdate(**data.model_dump()), actor_user_id=actor_id
    )


@router.post("/leases/{lease_id}/status", response_model=LeaseResponse)
async def update_lease_status(
    lease_id: int,
    data: LeaseStatusUpdate,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await leases.update_lease_status(db, tenant_id, lease_id, data.status, actor_user_id=actor_id)


@router.get("/leases/{lease_id}/balance", response_model=LeaseBalanceSummaryResponse)
async def get_lease_balance(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    return await installments.lease_balance_summary(db, tenant_id, lease_id)


# ── Installments of a lease ──────────────────────────

@router.post(
    "/leases/{lease_id}/installments/generate",
    response_model=list[InstallmentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def generate_installments(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await installments.generate_installments(db, tenant_id, lease_id, actor_user_id=actor_id)


@router.post("/leases/{lease_id}/installments/recalculate", response_model=InstallmentCountResponse)
async def recalculate_installment_statuses(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    count = await installments.recalculate_statuses(db, tenant_id, lease_id)
    return {"count": count}


@router.delete("/leases/{lease_id}/installments", response_model=InstallmentCountResponse)
async def delete_installments(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    count = await installments.delete_all_installments(db, tenant_id, lease_id, actor_user_id=actor_id)
    return {"count": count}


# ── Security deposit of a lease ──────────────────────

@router.post("/leases/{lease_id}/deposit", response_model=DepositResponse, status_code=status.HTTP_201_CREATED)
async def create_deposit(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await deposits.create_deposit(db, tenant_id, lease_id, actor_user_id=actor_id)


@router.get("/leases/{lease_id}/deposit", response_model=DepositResponse)
async def get_deposit(
    lease_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    deposit = await deposits.get_deposit(db, tenant_id, lease_id)
    if not deposit:
        raise HTTPException(status_code=404, detail="Security deposit not found")
    return deposit


# ══════════════════════════════════════════════════════════════════════════
# Installments
# ══════════════════════════════════════════════════════════════════════════

@router.get("/installments", response_model=InstallmentListResponse)
async def list_installments(
    lease_id: Optional[int] = None,
    status_filter: Optional[InstallmentStatus] = Query(None, alias="status"),
    period_year: Optional[int] = None,
    period_month: Optional[int] = Query(None, ge=1, le=12),
    overdue: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    result = await installments.list_installments(
        db,
        tenant_id,
        InstallmentFilters(
            lease_id=lease_id,
            status=status_filter,
            period_year=period_year,
            period_month=period_month,
            overdue=overdue,
        ),
        Pagination(page=page, limit=limit),
    )
    return _page_payload(result)


@router.get("/installments/{installment_id}", response_model=InstallmentResponse)
async def get_installment(
    installment_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    installment = await installments.get_installment(db, tenant_id, installment_id)
    if not installment:
        raise HTTPException(status_code=404, detail="Installment not found")
    return installment


@router.post("/installments/{installment_id}/penalty", response_model=PenaltyResponse)
async def calculate_penalty(
    installment_id: int,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await penalties.calculate_penalty(db, tenant_id, installment_id, actor_user_id=actor_id)


# ══════════════════════════════════════════════════════════════════════════
# Payments
# ══════════════════════════════════════════════════════════════════════════

@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    data: PaymentCreate,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await payments.create_payment(db, tenant_id, **data.model_dump(), actor_user_id=actor_id)


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    lease_id: Optional[int] = None,
    renter_id: Optional[int] = None,
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    method: Optional[PaymentMethod] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    result = await payments.list_payments(
        db,
        tenant_id,
        PaymentFilters(
            lease_id=lease_id,
            renter_id=renter_id,
            status=status_filter,
            method=method,
            created_from=created_from,
            created_to=created_to,
        ),
        Pagination(page=page, limit=limit),
    )
    return _page_payload(result)


@router.get("/payments/{payment_id}", response_model=PaymentDetailResponse)
async def get_payment(
    payment_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    payment = await payments.get_payment(db, tenant_id, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    allocations = await payments.list_payment_allocations(db, tenant_id, payment_id)
    return PaymentDetailResponse(
        payment=PaymentResponse.model_validate(payment),
        allocations=[PaymentAllocationResponse.model_validate(a) for a in allocations],
        allocated_total=sum((a.amount for a in allocations), 0),
    )


@router.post("/payments/{payment_id}/allocate", response_model=AllocationResponse)
async def allocate_payment(
    payment_id: int,
    data: AllocationRequest,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    result = await payments.allocate_payment(
        db, tenant_id, payment_id, data.installment_ids, data.amounts, actor_user_id=actor_id
    )
    return AllocationResponse(
        payment=PaymentResponse.model_validate(result.payment),
        allocations=[PaymentAllocationResponse.model_validate(a) for a in result.allocations],
        total_allocated=result.total_allocated,
        remaining_amount=result.remaining_amount,
    )


@router.post("/payments/{payment_id}/status", response_model=PaymentResponse)
async def update_payment_status(
    payment_id: int,
    data: PaymentStatusUpdate,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await payments.update_payment_status(db, tenant_id, payment_id, data.status, actor_user_id=actor_id)


# ══════════════════════════════════════════════════════════════════════════
# Penalties
# ══════════════════════════════════════════════════════════════════════════

@router.get("/penalties", response_model=list[PenaltyResponse])
async def list_penalties(
    lease_id: Optional[int] = None,
    installment_id: Optional[int] = None,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    return await penalties.list_penalties(
        db, tenant_id, PenaltyFilters(lease_id=lease_id, installment_id=installment_id)
    )


@router.post("/penalties/run", response_model=PenaltyRunResponse)
async def run_penalties(
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    """Manual trigger of the daily penalty calculation for the caller's tenant."""
    run = await penalties.run_penalty_calculation(db, tenant_id)
    return run.as_dict()


@router.get("/penalties/{penalty_id}", response_model=PenaltyResponse)
async def get_penalty(
    penalty_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    penalty = await penalties.get_penalty(db, tenant_id, penalty_id)
    if not penalty:
        raise HTTPException(status_code=404, detail="Penalty not found")
    return penalty


@router.put("/penalties/{penalty_id}", response_model=PenaltyResponse)
async def override_penalty(
    penalty_id: int,
    data: PenaltyOverride,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await penalties.update_penalty(
        db, tenant_id, penalty_id, amount=data.amount, reason=data.reason, actor_user_id=actor_id
    )


@router.delete("/penalties/{penalty_id}", response_model=InstallmentResponse)
async def delete_penalty(
    penalty_id: int,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await penalties.delete_penalty(db, tenant_id, penalty_id, actor_user_id=actor_id)


@router.post("/penalties/{penalty_id}/justification", response_model=PenaltyResponse)
async def upload_penalty_justification(
    penalty_id: int,
    file: UploadFile = File(...),
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    store: JustificationStore = Depends(get_justification_store),
    db: AsyncSession = Depends(get_db),
):
    content = await file.read()
    return await penalties.upload_penalty_justification(
        db,
        tenant_id,
        penalty_id,
        filename=file.filename or "justification",
        content=content,
        content_type=file.content_type,
        store=store,
        actor_user_id=actor_id,
    )


# ══════════════════════════════════════════════════════════════════════════
# Security deposits
# ══════════════════════════════════════════════════════════════════════════

@router.post(
    "/deposits/{deposit_id}/movements",
    response_model=DepositMovementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_deposit_movement(
    deposit_id: int,
    data: DepositMovementCreate,
    tenant_id: int = Depends(get_tenant_id),
    actor_id: Optional[int] = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await deposits.record_movement(
        db,
        tenant_id,
        deposit_id,
        data.type,
        data.amount,
        payment_id=data.payment_id,
        installment_id=data.installment_id,
        note=data.note,
        actor_user_id=actor_id,
    )


@router.get("/deposits/{deposit_id}/movements", response_model=list[DepositMovementResponse])
async def list_deposit_movements(
    deposit_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
):
    return await deposits.list_movements(db, tenant_id, deposit_id)
