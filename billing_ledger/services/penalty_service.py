"""
Penalty recalculation - brings late-payment penalties up to date.

Rules:
- The grace period ends ``grace_days`` after the period due date
- Only bills with an unpaid base charge strictly after the grace end accrue
- Months overdue = max(1, ceil(days past grace end / 30))
- Compounding: each month's penalty applies to base plus previous penalties
- Simple: overdue base * rate * months
- Rounded half-up to whole centavos; never below what was already paid
- A bill is rewritten only when the penalty moves by more than the tolerance

A call with ``unit_ids`` only touches those accounts (surgical mode); without
it every account of the tenant is swept. Both give the same result for the
accounts they cover.
"""

import logging
import math
import time
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.core.config import settings
from billing_ledger.core.exceptions import BillingLedgerError, InvalidPaymentError
from billing_ledger.models.bill import Bill, BillStatus
from billing_ledger.models.penalty import PenaltyRecalculationResult, PenaltySummary
from billing_ledger.models.tenant import PenaltyPolicy
from billing_ledger.repositories.bill_repo import BillRepository
from billing_ledger.repositories.tenant_repo import TenantConfigRepository
from billing_ledger.utils.periods import due_date_for_period, grace_period_end, utcnow

logger = logging.getLogger(__name__)

CENTAVO = Decimal("1")


def months_overdue(due: date, as_of: date, grace_days: int) -> int:
    """0 within the grace period, at least 1 once past it."""
    grace_end = grace_period_end(due, grace_days)
    if as_of <= grace_end:
        return 0
    days = (as_of - grace_end).days
    return max(1, math.ceil(days / 30))


def calculate_penalty(bill: Bill, due: date, as_of: date, policy: PenaltyPolicy) -> int:
    """
    Penalty a bill should carry on ``as_of``.

    Bills that are not overdue keep their current penalty.
    """
    overdue = bill.base_due
    months = months_overdue(due, as_of, policy.grace_days)
    if overdue <= 0 or months == 0:
        return bill.penalty_amount

    rate = Decimal(str(policy.rate))
    if policy.compounding:
        running = Decimal(overdue)
        total = Decimal(0)
        for _ in range(months):
            monthly = running * rate
            total += monthly
            running += monthly
    else:
        total = Decimal(overdue) * rate * months

    penalty = int(total.quantize(CENTAVO, rounding=ROUND_HALF_UP))
    return max(penalty, bill.penalty_paid)


class PenaltyRecalculationService:
    """Recalculates penalties for one tenant, some of its accounts, or everyone."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.bills = BillRepository(db)
        self.tenants = TenantConfigRepository(db)

    async def recalculate(
        self,
        tenant_id: str,
        as_of: Optional[date] = None,
        unit_ids: Optional[Iterable[str]] = None
    ) -> PenaltyRecalculationResult:
        """
        Recalculate penalties as of a date (default today, UTC).

        Raises PenaltyPolicyConfigError before any bill is read when the
        tenant has no valid penalty policy.
        """
        policy = await self.tenants.get_penalty_policy(tenant_id)
        config = await self.tenants.get_or_default(tenant_id)
        as_of = as_of or utcnow().date()
        scope = sorted(set(unit_ids)) if unit_ids is not None else None
        scope_set = set(scope) if scope is not None else None

        started = time.perf_counter()
        result = PenaltyRecalculationResult(tenant_id=tenant_id, scope=scope)
        updated_at = utcnow().isoformat()

        async for doc in self.bills.iter_period_documents(tenant_id):
            period_key = doc["period_key"]
            if doc.get("due_date"):
                due = date.fromisoformat(doc["due_date"])
            else:
                due = due_date_for_period(period_key, config.due_day_of_month)

            changed: Dict[str, dict] = {}
            for account_id, unit in doc.get("units", {}).items():
                if scope_set is not None and account_id not in scope_set:
                    result.bills_skipped_out_of_scope += 1
                    continue
                bill = Bill.from_document(account_id, period_key, unit)
                if bill.status == BillStatus.PAID:
                    result.bills_skipped_paid += 1
                    continue

                result.bills_processed += 1
                penalty = calculate_penalty(bill, due, as_of, policy)
                delta = penalty - bill.penalty_amount
                if abs(delta) <= settings.PENALTY_UPDATE_TOLERANCE:
                    continue

                changed[account_id] = bill.with_penalty(penalty, updated_at).to_document()
                result.bills_updated += 1
                result.total_penalties_updated += delta

            await self.bills.save_period_units(tenant_id, period_key, changed)

        result.processing_time_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info(
            "Penalty recalculation finished",
            extra={
                "tenant_id": tenant_id,
                "surgical": result.surgical,
                "scope_size": len(scope) if scope is not None else None,
                "bills_processed": result.bills_processed,
                "bills_updated": result.bills_updated,
                "bills_skipped_paid": result.bills_skipped_paid,
                "bills_skipped_out_of_scope": result.bills_skipped_out_of_scope,
                "processing_time_ms": result.processing_time_ms
            }
        )
        return result

    async def recalculate_units(
        self,
        tenant_id: str,
        unit_ids: List[str],
        as_of: Optional[date] = None
    ) -> PenaltyRecalculationResult:
        """Surgical recalculation after a payment or reversal touched these accounts."""
        if not unit_ids:
            raise InvalidPaymentError("unit_ids must not be empty", tenant_id=tenant_id)
        return await self.recalculate(tenant_id, as_of, unit_ids)

    async def recalculate_all_tenants(self, as_of: Optional[date] = None) -> dict:
        """
        Sweep every configured tenant.

        One tenant failing does not stop the others; failures are returned
        next to the successful results.
        """
        results = {}
        errors = {}
        for tenant_id in await self.tenants.list_tenant_ids():
            try:
                results[tenant_id] = await self.recalculate(tenant_id, as_of)
            except BillingLedgerError as exc:
                logger.error(
                    "Penalty recalculation failed for tenant",
                    extra={"tenant_id": tenant_id, "error": str(exc)}
                )
                errors[tenant_id] = exc.to_dict()
        return {"results": results, "errors": errors}

    async def penalty_summary(self, tenant_id: str) -> PenaltySummary:
        """Outstanding penalties and unpaid bill count of a tenant."""
        total = 0
        unpaid = 0
        for bill in await self.bills.list(tenant_id):
            if bill.status == BillStatus.PAID:
                continue
            unpaid += 1
            total += bill.penalty_due
        return PenaltySummary(tenant_id=tenant_id, total_penalties=total, unpaid_bills=unpaid)
