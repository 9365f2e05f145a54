"""
Credit ledger - per-account running balance with an append-only history.

Core rules:
1. Every amount passes the centavos validation before it is written
2. ``balance_after`` of each entry is the running sum in timestamp order
3. Removing or editing an entry replays the whole history
4. Writes are compare-and-set on the account version, retried on conflict
5. Negative balances are allowed (credit repair state)
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing_ledger.core.config import settings
from billing_ledger.core.exceptions import (
    AccountNotFoundError,
    ConcurrentModificationError,
    EntryNotFoundError,
)
from billing_ledger.core.locks import account_lock
from billing_ledger.models.base import validate_key_segment
from billing_ledger.models.credit import (
    AccountCredit,
    CreditEntryType,
    CreditHistoryEntry,
    LastChange,
)
from billing_ledger.repositories.audit_repo import AuditLogRepository
from billing_ledger.repositories.credit_repo import CreditBalanceRepository
from billing_ledger.repositories.tenant_repo import TenantConfigRepository
from billing_ledger.utils.currency_validation import normalize_centavos
from billing_ledger.utils.periods import fiscal_year

logger = logging.getLogger(__name__)

AUDIT_MODULE = "credit_balances"


def new_entry_id(now: datetime) -> str:
    return f"credit_{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


def normalize_timestamp(value) -> str:
    """ISO-8601 in UTC so that timestamps sort as strings."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def entry_type(amount: int) -> CreditEntryType:
    return CreditEntryType.CREDIT_ADDED if amount >= 0 else CreditEntryType.CREDIT_USED


def replay(history: List[CreditHistoryEntry]) -> Tuple[int, List[CreditHistoryEntry]]:
    """Sort entries chronologically and recompute every balance_after."""
    running = 0
    replayed = []
    for entry in sorted(history, key=lambda e: e.timestamp):
        running += entry.amount
        replayed.append(entry.model_copy(update={
            "balance_after": running,
            "type": entry_type(entry.amount)
        }))
    return running, replayed


class CreditLedgerService:
    """Reads and mutations of account credit ledgers."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.repo = CreditBalanceRepository(db)
        self.tenants = TenantConfigRepository(db)
        self.audit = AuditLogRepository(db)

    # ===== READS =====

    async def get_balance(self, tenant_id: str, account_id: str) -> int:
        account = await self.repo.get_account(tenant_id, account_id)
        return account.credit_balance if account else 0

    async def get_all_balances(self, tenant_id: str) -> Dict[str, int]:
        accounts = await self.repo.get_all_accounts(tenant_id)
        return {account_id: account.credit_balance for account_id, account in accounts.items()}

    async def get_history(self, tenant_id: str, account_id: str, limit: Optional[int] = None) -> dict:
        """Balance and the most recent entries, newest first."""
        limit = limit or settings.CREDIT_HISTORY_LIMIT
        account = await self.repo.get_account(tenant_id, account_id)
        if account is None:
            return {"balance": 0, "history": []}
        history = sorted(account.history, key=lambda e: e.timestamp, reverse=True)
        return {"balance": account.credit_balance, "history": history[:limit]}

    # ===== WRITES =====

    async def apply(
        self,
        tenant_id: str,
        account_id: str,
        amount: int,
        note: str = "",
        transaction_id: Optional[str] = None,
        source: str = "payment"
    ) -> Tuple[int, CreditHistoryEntry]:
        """Append a signed credit change; returns (new_balance, entry)."""
        async with account_lock(tenant_id, account_id):
            return await self.apply_in_lock(tenant_id, account_id, amount, note, transaction_id, source)

    async def apply_in_lock(
        self,
        tenant_id: str,
        account_id: str,
        amount: int,
        note: str = "",
        transaction_id: Optional[str] = None,
        source: str = "payment"
    ) -> Tuple[int, CreditHistoryEntry]:
        """apply() for callers already holding the account lock."""
        validate_key_segment(account_id, "account_id")
        tolerance = await self.tenants.currency_tolerance(tenant_id)
        amount = normalize_centavos(amount, "credit.amount", tolerance)
        created = {}

        def mutate(account: AccountCredit) -> AccountCredit:
            current = normalize_centavos(account.credit_balance, "credit_balance", tolerance)
            now = datetime.now(timezone.utc)
            entry = CreditHistoryEntry(
                id=new_entry_id(now),
                timestamp=now.isoformat(),
                amount=amount,
                balance_after=current + amount,
                transaction_id=transaction_id,
                note=note,
                source=source,
                type=entry_type(amount)
            )
            created["entry"] = entry
            account.history.append(entry)
            account.credit_balance = entry.balance_after
            return account

        account = await self._write(tenant_id, account_id, mutate, create=True)
        entry = created["entry"]
        logger.info(
            "Credit applied",
            extra={
                "tenant_id": tenant_id,
                "account_id": account_id,
                "amount": amount,
                "balance_after": account.credit_balance,
                "transaction_id": transaction_id
            }
        )
        return account.credit_balance, entry

    async def reverse(self, tenant_id: str, account_id: str, transaction_id: str) -> int:
        """Remove every entry of a transaction and replay; returns the new balance."""
        async with account_lock(tenant_id, account_id):
            return await self.reverse_in_lock(tenant_id, account_id, transaction_id)

    async def reverse_in_lock(self, tenant_id: str, account_id: str, transaction_id: str) -> int:
        def mutate(account: AccountCredit) -> AccountCredit:
            if not account.find_by_transaction(transaction_id):
                raise EntryNotFoundError(
                    "No credit entry for transaction",
                    tenant_id=tenant_id,
                    account_id=account_id,
                    transaction_id=transaction_id
                )
            remaining = [e for e in account.history if e.transaction_id != transaction_id]
            return self._replayed(account, remaining)

        account = await self._write(tenant_id, account_id, mutate)
        logger.info(
            "Credit reversed",
            extra={
                "tenant_id": tenant_id,
                "account_id": account_id,
                "transaction_id": transaction_id,
                "balance_after": account.credit_balance
            }
        )
        return account.credit_balance

    # ===== ADMIN HISTORY EDITS =====

    async def add_history_entry(
        self,
        tenant_id: str,
        account_id: str,
        amount: int,
        timestamp=None,
        note: str = "",
        source: str = "admin",
        transaction_id: Optional[str] = None
    ) -> CreditHistoryEntry:
        """Insert a dated entry in its chronological position."""
        tolerance = await self.tenants.currency_tolerance(tenant_id)
        amount = normalize_centavos(amount, "credit.amount", tolerance)
        ts = normalize_timestamp(timestamp or datetime.now(timezone.utc))
        entry = CreditHistoryEntry(
            id=new_entry_id(datetime.fromisoformat(ts)),
            timestamp=ts,
            amount=amount,
            balance_after=0,
            transaction_id=transaction_id,
            note=note,
            source=source,
            type=entry_type(amount)
        )

        def mutate(account: AccountCredit) -> AccountCredit:
            return self._replayed(account, account.history + [entry])

        async with account_lock(tenant_id, account_id):
            validate_key_segment(account_id, "account_id")
            account = await self._write(tenant_id, account_id, mutate, create=True)

        await self.audit.write(
            tenant_id, AUDIT_MODULE, "add_history_entry", account_id,
            f"Added {amount} dated {ts} ({source})"
        )
        return next(e for e in account.history if e.id == entry.id)

    async def delete_history_entry(self, tenant_id: str, account_id: str, entry_id: str) -> int:
        """Remove one entry by id and replay; returns the new balance."""
        def mutate(account: AccountCredit) -> AccountCredit:
            self._find_entry(account, tenant_id, account_id, entry_id)
            return self._replayed(account, [e for e in account.history if e.id != entry_id])

        async with account_lock(tenant_id, account_id):
            account = await self._write(tenant_id, account_id, mutate)

        await self.audit.write(
            tenant_id, AUDIT_MODULE, "delete_history_entry", account_id,
            f"Deleted entry {entry_id}"
        )
        return account.credit_balance

    async def update_history_entry(
        self,
        tenant_id: str,
        account_id: str,
        entry_id: str,
        amount: Optional[int] = None,
        timestamp=None,
        note: Optional[str] = None,
        source: Optional[str] = None
    ) -> CreditHistoryEntry:
        """Edit one entry in place and replay."""
        changes = {}
        if amount is not None:
            tolerance = await self.tenants.currency_tolerance(tenant_id)
            changes["amount"] = normalize_centavos(amount, "credit.amount", tolerance)
        if timestamp is not None:
            changes["timestamp"] = normalize_timestamp(timestamp)
        if note is not None:
            changes["note"] = note
        if source is not None:
            changes["source"] = source

        def mutate(account: AccountCredit) -> AccountCredit:
            self._find_entry(account, tenant_id, account_id, entry_id)
            edited = [e.model_copy(update=changes) if e.id == entry_id else e for e in account.history]
            return self._replayed(account, edited)

        async with account_lock(tenant_id, account_id):
            account = await self._write(tenant_id, account_id, mutate)

        await self.audit.write(
            tenant_id, AUDIT_MODULE, "update_history_entry", account_id,
            f"Updated entry {entry_id}: {sorted(changes)}"
        )
        return next(e for e in account.history if e.id == entry_id)

    # ===== INTERNALS =====

    @staticmethod
    def _find_entry(account: AccountCredit, tenant_id: str, account_id: str, entry_id: str) -> CreditHistoryEntry:
        for entry in account.history:
            if entry.id == entry_id:
                return entry
        raise EntryNotFoundError(
            "Credit history entry not found",
            tenant_id=tenant_id,
            account_id=account_id,
            entry_id=entry_id
        )

    def _replayed(self, account: AccountCredit, history: List[CreditHistoryEntry]) -> AccountCredit:
        balance, replayed = replay(history)
        account.history = replayed
        account.credit_balance = balance
        return account

    async def _write(self, tenant_id: str, account_id: str, mutate, create: bool = False) -> AccountCredit:
        """
        Read, mutate and compare-and-set one account ledger.

        ``mutate`` receives a fresh copy on every attempt. Accounts without a
        ledger raise AccountNotFoundError unless ``create`` is set.
        """
        config = await self.tenants.get_or_default(tenant_id)

        for attempt in range(settings.CREDIT_WRITE_RETRIES):
            account = await self.repo.get_account(tenant_id, account_id)
            if account is None:
                if not create:
                    raise AccountNotFoundError(
                        "No credit ledger for account",
                        tenant_id=tenant_id,
                        account_id=account_id
                    )
                account = AccountCredit()
            expected_version = account.version

            account = mutate(account)
            if account.history:
                now = datetime.now(timezone.utc)
                account.last_change = LastChange(
                    timestamp=now.isoformat(),
                    history_index=len(account.history) - 1,
                    fiscal_year=fiscal_year(now.date(), config.fiscal_year_start_month)
                )
            else:
                account.last_change = None

            if await self.repo.save_account(
                tenant_id, account_id, account, expected_version, config.currency_tolerance
            ):
                return account

            logger.warning(
                "Credit write conflict, retrying",
                extra={"tenant_id": tenant_id, "account_id": account_id, "attempt": attempt + 1}
            )

        raise ConcurrentModificationError(
            "Credit ledger changed concurrently too many times",
            tenant_id=tenant_id,
            account_id=account_id,
            retries=settings.CREDIT_WRITE_RETRIES
        )
