"""Example 02: Transactions and Locks.

This example demonstrates the Lock protocol:
- Locking a document inside a transaction with a dummy write
- Passing Lock values between steps of a read-modify-write sequence
- Retrying the whole transaction on WriteConflictError

Requires a MongoDB replica set (transactions are not available on standalone servers).
"""

import asyncio

from docmap import (
    Column,
    Entity,
    Lock,
    RawUpdate,
    Transaction,
    WriteConflictError,
    connect,
    require_lock,
)


class Account(Entity):
    """A balance that two concurrent transfers must never both read stale."""

    id: Column[str] = Column(rename="_id")
    owner: Column[str]
    balance: Column[int]


async def debit(trx: Transaction, account: Lock[Account], amount: int) -> None:
    """Only callable with an account locked in `trx`."""
    current = require_lock(account, trx)
    if current.balance < amount:
        raise ValueError(f"insufficient funds on {current.id}")
    await current.patch(trx, Account.TypedUpdate(balance=current.balance - amount))


async def transfer(db, source: str, target: str, amount: int) -> None:
    for attempt in range(5):
        async with db.start_session() as session:
            await session.start_transaction()
            trx = Transaction(db, session)
            try:
                locked = await Account.find_one_and_lock(trx, Account.by_id(source))
                if locked is None:
                    raise LookupError(source)
                await debit(trx, locked, amount)
                credited = await Account.update_by_id_locked(
                    trx, target, RawUpdate({"$inc": {Account.Fields.BALANCE: amount}})
                )
                if credited is None:
                    raise LookupError(target)
                await session.commit_transaction()
                return
            except WriteConflictError:
                await session.abort_transaction()
                print(f"  ! write conflict, retrying (attempt {attempt + 1})")
    raise RuntimeError("transfer did not commit after 5 attempts")


async def main():
    print("=" * 80)
    print("DOCMAP TRANSACTIONS AND LOCKS EXAMPLE")
    print("=" * 80)

    db = connect()
    try:
        await Account.delete(db, None)
        await Account.insert_many(
            db,
            [
                Account(id="acc-1", owner="Alice", balance=100),
                Account(id="acc-2", owner="Bob", balance=20),
            ],
        )

        await transfer(db, "acc-1", "acc-2", 30)
        for account in await Account.find(db):
            print(f"  {account.owner:6} {account.balance}")
        print("=" * 80)
    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
