"""Credit ledger store: per-account balance rows and their atomic accessors."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func

from config import settings
from models.credit_balance import CreditBalance


@dataclass(frozen=True)
class DebitResult:
    applied: bool
    balance: int


def _default_balance() -> int:
    return max(int(settings.DEFAULT_STARTING_CREDITS), 0)


def dialect_insert(db: AsyncSession):
    """Return the dialect insert construct that supports ON CONFLICT DO NOTHING."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported database dialect for credit ledger: {dialect}")


async def ensure_account(user_id: str, db: AsyncSession) -> None:
    """Create the balance row if missing. Concurrent first calls converge on one row."""
    insert = dialect_insert(db)
    statement = (
        insert(CreditBalance)
        .values(user_id=user_id, balance=_default_balance())
        .on_conflict_do_nothing(index_elements=[CreditBalance.user_id])
    )
    await db.execute(statement)
    await db.commit()


async def get_balance(user_id: str, db: AsyncSession) -> int:
    result = await db.execute(select(CreditBalance.balance).where(CreditBalance.user_id == user_id))
    balance = result.scalar_one_or_none()
    return int(balance) if balance is not None else 0


async def try_debit(user_id: str, amount: int, db: AsyncSession) -> DebitResult:
    """Atomically decrement the balance when it covers ``amount``.

    The check and the decrement are one conditional UPDATE, so concurrent debits
    against the same row can never take the balance below zero.
    """
    debit = int(amount)
    if debit < 0:
        raise ValueError("debit amount must be non-negative")
    if debit == 0:
        return DebitResult(applied=True, balance=await get_balance(user_id, db))

    statement = (
        update(CreditBalance)
        .where(CreditBalance.user_id == user_id, CreditBalance.balance >= debit)
        .values(balance=CreditBalance.balance - debit, updated_at=func.now())
        .returning(CreditBalance.balance)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(statement)
    new_balance = result.scalar_one_or_none()
    await db.commit()
    if new_balance is None:
        return DebitResult(applied=False, balance=await get_balance(user_id, db))
    return DebitResult(applied=True, balance=int(new_balance))


async def credit_account(user_id: str, amount: int, db: AsyncSession, *, commit: bool = True) -> int:
    """Atomically increment the balance and return the new value.

    The account row must exist when ``commit`` is False, so the increment can
    share a transaction with the caller's other writes.
    """
    grant = int(amount)
    if grant < 0:
        raise ValueError("credit amount must be non-negative")

    statement = (
        update(CreditBalance)
        .where(CreditBalance.user_id == user_id)
        .values(balance=CreditBalance.balance + grant, updated_at=func.now())
        .returning(CreditBalance.balance)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(statement)
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        if not commit:
            raise LookupError(f"No credit account for user {user_id}")
        await db.rollback()
        await ensure_account(user_id, db)
        result = await db.execute(statement)
        new_balance = result.scalar_one()
    if commit:
        await db.commit()
    return int(new_balance)
