from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.api.v1.errors import raise_http_error
from billing_ledger.core.exceptions import BillingLedgerError
from billing_ledger.db.mongo import get_db
from billing_ledger.models.penalty import PenaltySummary
from billing_ledger.schemas.penalty import (
    AllTenantsRecalculateRequest,
    AllTenantsRecalculateResponse,
    PenaltyRecalculateRequest,
    PenaltyRecalculateResponse,
)
from billing_ledger.services.penalty_service import PenaltyRecalculationService

router = APIRouter()


def _to_response(result) -> PenaltyRecalculateResponse:
    return PenaltyRecalculateResponse(surgical=result.surgical, **result.model_dump())


@router.post("/tenants/{tenant_id}/penalties/recalculate", response_model=PenaltyRecalculateResponse)
async def recalculate_penalties(
    tenant_id: str,
    request: PenaltyRecalculateRequest = PenaltyRecalculateRequest(),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Bring penalties up to date; pass unit_ids for a surgical run"""
    service = PenaltyRecalculationService(db)
    try:
        if request.unit_ids is not None:
            result = await service.recalculate_units(tenant_id, request.unit_ids, request.as_of)
        else:
            result = await service.recalculate(tenant_id, request.as_of)
    except BillingLedgerError as exc:
        raise_http_error(exc)
    return _to_response(result)

@router.get("/tenants/{tenant_id}/penalties/summary", response_model=PenaltySummary)
async def get_penalty_summary(
    tenant_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return await PenaltyRecalculationService(db).penalty_summary(tenant_id)

@router.post("/penalties/recalculate-all", response_model=AllTenantsRecalculateResponse)
async def recalculate_all_penalties(
    request: AllTenantsRecalculateRequest = AllTenantsRecalculateRequest(),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Scheduled sweep over every configured tenant"""
    outcome = await PenaltyRecalculationService(db).recalculate_all_tenants(request.as_of)
    return AllTenantsRecalculateResponse(
        results={tenant_id: _to_response(result) for tenant_id, result in outcome["results"].items()},
        errors=outcome["errors"]
    )
