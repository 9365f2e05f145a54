from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from billing_ledger.core.config import settings
from billing_ledger.core.exceptions import PenaltyPolicyConfigError
from billing_ledger.models.tenant import PenaltyPolicy, TenantConfig


class TenantConfigRepository:
    """Read access to per-tenant billing configuration."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["tenant_configs"]

    async def get(self, tenant_id: str) -> Optional[TenantConfig]:
        doc = await self.collection.find_one({"_id": tenant_id})
        if not doc:
            return None
        doc.pop("_id", None)
        doc.pop("updated_at", None)
        return TenantConfig(tenant_id=tenant_id, **{k: v for k, v in doc.items() if k != "tenant_id"})

    async def get_or_default(self, tenant_id: str) -> TenantConfig:
        return await self.get(tenant_id) or TenantConfig(tenant_id=tenant_id)

    async def upsert(self, config: TenantConfig) -> TenantConfig:
        doc = config.model_dump(exclude={"tenant_id"})
        doc["updated_at"] = datetime.now(timezone.utc)
        await self.collection.update_one(
            {"_id": config.tenant_id},
            {"$set": doc},
            upsert=True
        )
        return config

    async def get_penalty_policy(self, tenant_id: str) -> PenaltyPolicy:
        """
        Load and validate the penalty policy.

        A missing document, a missing policy or an invalid field is fatal:
        penalties are never computed from a partial policy.
        """
        doc = await self.collection.find_one({"_id": tenant_id})
        if not doc or not doc.get("penalty_policy"):
            raise PenaltyPolicyConfigError(
                f"Penalty policy not configured for tenant {tenant_id}",
                tenant_id=tenant_id
            )
        try:
            return PenaltyPolicy(**doc["penalty_policy"])
        except (ValidationError, TypeError) as exc:
            raise PenaltyPolicyConfigError(
                f"Invalid penalty policy for tenant {tenant_id}: {exc}",
                tenant_id=tenant_id
            ) from exc

    async def currency_tolerance(self, tenant_id: str) -> float:
        config = await self.get(tenant_id)
        if config and config.currency_tolerance is not None:
            return config.currency_tolerance
        return settings.CURRENCY_TOLERANCE

    async def list_tenant_ids(self) -> List[str]:
        return sorted(await self.collection.distinct("_id"))
