from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.db.mongo import get_db
from billing_ledger.models.tenant import TenantConfig
from billing_ledger.repositories.tenant_repo import TenantConfigRepository
from billing_ledger.schemas.tenant import TenantConfigUpdate

router = APIRouter()

@router.get("/{tenant_id}/config", response_model=TenantConfig)
async def get_config(
    tenant_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    config = await TenantConfigRepository(db).get(tenant_id)
    if not config:
        raise HTTPException(status_code=404, detail="Tenant configuration not found")
    return config

@router.put("/{tenant_id}/config", response_model=TenantConfig)
async def put_config(
    tenant_id: str,
    config_in: TenantConfigUpdate,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Create or replace the tenant's billing configuration"""
    config = TenantConfig(tenant_id=tenant_id, **config_in.model_dump())
    return await TenantConfigRepository(db).upsert(config)
