# fee_ledger/fee_structures/router.py

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fee_ledger.core.db import get_db
from fee_ledger.core.dependencies import TenantContext, get_tenant_context
from fee_ledger.fee_structures.exceptions import (
    FeeStructureError,
    FeeStructureNotFoundError,
    FeeStructureValidationError,
)
from fee_ledger.fee_structures.schemas import (
    FeeStructureResponse,
    FeeStructureUpsertRequest,
    TransportFeeResponse,
    TransportFeeUpsertRequest,
)
from fee_ledger.fee_structures.services import FeeStructureService
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/fee-structures", tags=["Fee Structures"])


def get_fee_structure_service(db: Session = Depends(get_db)) -> FeeStructureService:
    """Provides an instance of FeeStructureService with the current DB session."""
    return FeeStructureService(db)


@router.get("/classes", response_model=List[FeeStructureResponse], summary="List Class Fee Structures")
def list_fee_structures(
    period_id: Optional[int] = Query(None, description="Filter by academic period."),
    tenant: TenantContext = Depends(get_tenant_context),
    service: FeeStructureService = Depends(get_fee_structure_service),
):
    return service.list_structures(tenant.branch_id, period_id)


@router.get(
    "/classes/{class_id}/periods/{period_id}",
    response_model=FeeStructureResponse,
    summary="Get Class Fee Structure",
)
def get_fee_structure(
    class_id: int,
    period_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    service: FeeStructureService = Depends(get_fee_structure_service),
):
    try:
        return service.get_structure(tenant.branch_id, class_id, period_id)
    except FeeStructureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.put(
    "/classes/{class_id}/periods/{period_id}",
    response_model=FeeStructureResponse,
    summary="Create or Replace Class Fee Structure",
)
def upsert_fee_structure(
    class_id: int,
    period_id: int,
    payload: FeeStructureUpsertRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    service: FeeStructureService = Depends(get_fee_structure_service),
):
    """
    Saves the base fees of a class. Balance records already created for the
    class keep their original amounts.
    """
    try:
        return service.upsert_structure(
            branch_id=tenant.branch_id,
            class_id=class_id,
            period_id=period_id,
            book_fee=payload.book_fee,
            tuition_fee=payload.tuition_fee,
        )
    except FeeStructureValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except FeeStructureError as e:
        logger.error("Error saving fee structure: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while saving the fee structure.",
        ) from e


@router.get("/transport", response_model=List[TransportFeeResponse], summary="List Transport Fees")
def list_transport_fees(
    period_id: Optional[int] = Query(None, description="Filter by academic period."),
    tenant: TenantContext = Depends(get_tenant_context),
    service: FeeStructureService = Depends(get_fee_structure_service),
):
    return service.list_transport_fees(tenant.branch_id, period_id)


@router.put(
    "/transport/periods/{period_id}/routes/{route_id}/slabs/{slab_id}",
    response_model=TransportFeeResponse,
    summary="Create or Replace Transport Fee",
)
def upsert_transport_fee(
    period_id: int,
    route_id: int,
    slab_id: int,
    payload: TransportFeeUpsertRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    service: FeeStructureService = Depends(get_fee_structure_service),
):
    try:
        return service.upsert_transport_fee(
            branch_id=tenant.branch_id,
            period_id=period_id,
            route_id=route_id,
            slab_id=slab_id,
            amount=payload.amount,
        )
    except FeeStructureValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except FeeStructureError as e:
        logger.error("Error saving transport fee: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while saving the transport fee.",
        ) from e
