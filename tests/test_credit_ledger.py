from app.services.credit_ledger import DatabaseCreditLedger


async def test_new_owner_gets_free_credits(db) -> None:
    ledger = DatabaseCreditLedger(db, free_credits=5)

    check = await ledger.check("owner-1", 1)

    assert check.allowed is True
    assert check.available == 5
    assert check.remaining_after == 4


async def test_deduct_reduces_balance(db) -> None:
    ledger = DatabaseCreditLedger(db, free_credits=2)

    assert await ledger.deduct("owner-1", 1) == 1
    assert await ledger.deduct("owner-1", 1) == 0

    check = await ledger.check("owner-1", 1)
    assert check.allowed is False
    assert check.available == 0


async def test_balances_are_per_owner(db) -> None:
    ledger = DatabaseCreditLedger(db, free_credits=3)

    await ledger.deduct("owner-1", 2)

    assert await ledger.balance("owner-1") == 1
    assert await ledger.balance("owner-2") == 3


async def test_opening_an_existing_account_keeps_its_balance(session_factory) -> None:
    async with session_factory() as first:
        ledger = DatabaseCreditLedger(first, free_credits=5)
        await ledger.deduct("owner-1", 2)

    async with session_factory() as second:
        check = await DatabaseCreditLedger(second, free_credits=9).check("owner-1", 1)

    assert check.available == 3
