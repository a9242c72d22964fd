import asyncio

import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from models.credit_balance import CreditBalance
from services.credits import credit_account, ensure_account, get_balance, try_debit


async def _seed(session_maker, user_id: str, balance: int) -> None:
    async with session_maker() as db:
        await ensure_account(user_id, db)
        if balance:
            await credit_account(user_id, balance, db)


async def _debit(session_maker, user_id: str, amount: int):
    async with session_maker() as db:
        return await try_debit(user_id, amount, db)


@pytest.mark.asyncio
async def test_get_balance_defaults_to_zero_without_account(session_maker):
    async with session_maker() as db:
        assert await get_balance("nobody", db) == 0


@pytest.mark.asyncio
async def test_concurrent_ensure_account_creates_single_row(session_maker):
    async def _ensure():
        async with session_maker() as db:
            await ensure_account("new-user", db)

    await asyncio.gather(*[_ensure() for _ in range(5)])

    async with session_maker() as db:
        count = await db.execute(select(func.count()).select_from(CreditBalance).where(CreditBalance.user_id == "new-user"))
        assert count.scalar() == 1
        assert await get_balance("new-user", db) == 0


@pytest.mark.asyncio
async def test_ensure_account_does_not_reset_existing_balance(session_maker):
    await _seed(session_maker, "kept", 7)
    async with session_maker() as db:
        await ensure_account("kept", db)
        assert await get_balance("kept", db) == 7


@pytest.mark.asyncio
async def test_debit_applies_when_balance_covers_cost(session_maker):
    await _seed(session_maker, "scenario-a", 5)

    result = await _debit(session_maker, "scenario-a", 3)

    assert result.applied is True
    assert result.balance == 2


@pytest.mark.asyncio
async def test_rejected_debit_leaves_balance_untouched(session_maker):
    await _seed(session_maker, "scenario-b", 2)

    result = await _debit(session_maker, "scenario-b", 3)

    assert result.applied is False
    assert result.balance == 2
    async with session_maker() as db:
        assert await get_balance("scenario-b", db) == 2


@pytest.mark.asyncio
async def test_concurrent_debits_only_one_succeeds(session_maker):
    await _seed(session_maker, "scenario-e", 5)

    results = await asyncio.gather(
        _debit(session_maker, "scenario-e", 3),
        _debit(session_maker, "scenario-e", 3),
    )

    applied = [result for result in results if result.applied]
    rejected = [result for result in results if not result.applied]
    assert len(applied) == 1
    assert len(rejected) == 1
    assert applied[0].balance == 2
    assert rejected[0].balance == 2


@pytest.mark.asyncio
async def test_many_concurrent_debits_never_overdraw(session_maker):
    await _seed(session_maker, "stampede", 10)

    results = await asyncio.gather(*[_debit(session_maker, "stampede", 3) for _ in range(8)])

    successful = sum(3 for result in results if result.applied)
    async with session_maker() as db:
        final_balance = await get_balance("stampede", db)
    assert successful == 9
    assert final_balance == 1
    assert final_balance >= 0


@pytest.mark.asyncio
async def test_credit_account_creates_missing_row(session_maker):
    async with session_maker() as db:
        assert await credit_account("late-user", 4, db) == 4
        assert await get_balance("late-user", db) == 4


@pytest.mark.asyncio
async def test_negative_amounts_are_rejected(session_maker):
    await _seed(session_maker, "guarded", 1)
    async with session_maker() as db:
        with pytest.raises(ValueError):
            await try_debit("guarded", -1, db)
        with pytest.raises(ValueError):
            await credit_account("guarded", -1, db)
