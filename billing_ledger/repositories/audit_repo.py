from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase


class AuditLogRepository:
    """Append-only audit trail of ledger mutations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["audit_log"]

    async def write(self, tenant_id: str, module: str, action: str, doc_id: str, notes: str) -> None:
        await self.collection.insert_one({
            "tenant_id": tenant_id,
            "module": module,
            "action": action,
            "doc_id": doc_id,
            "notes": notes,
            "timestamp": datetime.now(timezone.utc)
        })
