"""
Credit Ledger
Lab Report Analyzer

Quota collaborator for the pipeline: check() before any work, deduct() only
after a successful analysis. Nothing is reserved in between, and there is
no refund operation.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.credit import CreditBalance

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


@dataclass(frozen=True)
class CreditCheck:
    allowed: bool
    available: int
    required: int

    @property
    def remaining_after(self) -> int:
        return max(self.available - self.required, 0)


class CreditLedger(Protocol):
    async def check(self, owner_id: str, amount: int) -> CreditCheck:
        ...

    async def deduct(self, owner_id: str, amount: int) -> int:
        ...


class DatabaseCreditLedger:
    """Credit balances stored in the credit_balances table."""

    def __init__(self, db: AsyncSession, free_credits: Optional[int] = None):
        self.db = db
        self.free_credits = (
            settings.default_free_credits if free_credits is None else free_credits
        )

    async def _find(self, owner_id: str) -> Optional[CreditBalance]:
        result = await self.db.execute(
            select(CreditBalance)
            .where(CreditBalance.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, owner_id: str) -> CreditBalance:
        account = await self._find(owner_id)
        if account is not None:
            return account

        # Concurrent first requests for one owner may both get here; the loser's insert is a no-op
        insert = _DIALECT_INSERTS[self.db.get_bind().dialect.name]
        result = await self.db.execute(
            insert(CreditBalance)
            .values(owner_id=owner_id, balance=self.free_credits)
            .on_conflict_do_nothing(index_elements=["owner_id"])
        )
        if result.rowcount:
            logger.info("Opened credit account for %s with %d credits", owner_id, self.free_credits)
        return await self._find(owner_id)

    async def check(self, owner_id: str, amount: int) -> CreditCheck:
        account = await self._get_or_create(owner_id)
        return CreditCheck(
            allowed=account.balance >= amount,
            available=account.balance,
            required=amount,
        )

    async def deduct(self, owner_id: str, amount: int) -> int:
        """Subtract amount in a single UPDATE and return the new balance."""
        account = await self._get_or_create(owner_id)
        await self.db.execute(
            update(CreditBalance)
            .where(CreditBalance.owner_id == owner_id)
            .values(balance=CreditBalance.balance - amount)
        )
        await self.db.commit()
        await self.db.refresh(account)
        logger.info("Deducted %d credit(s) from %s, %d remaining", amount, owner_id, account.balance)
        return account.balance

    async def balance(self, owner_id: str) -> int:
        account = await self._get_or_create(owner_id)
        return account.balance
