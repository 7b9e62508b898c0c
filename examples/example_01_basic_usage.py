"""Example 01: Basic Usage - docmap Fundamentals.

This example demonstrates the fundamental operations:
- Declaring an Entity with Column[T] annotations, a projection and an index
- Enforcing declared indexes at startup
- Inserting records and reading them back through typed filters
- Reading a projection that fetches only some fields
- Updating through TypedUpdate and patching an in-memory record

Requires a MongoDB server; set DOCMAP_URI / DOCMAP_DATABASE to point at it.
"""

import asyncio

from bson import ObjectId

from docmap import Column, Entity, Gte, Index, Order, connect, enforce_indexes


# Step 1: Declare record types
# The identity field must be renamed to "_id". Projections list field names;
# the "_" index name asks the server to derive the index name.
class Customer(
    Entity,
    projections={"Contact": ["id", "email"]},
    indexes={"_": Index(keys={"email": Order.ASC}, options={"unique": True})},
):
    """A customer document in the `customer` collection."""

    id: Column[ObjectId] = Column(rename="_id")
    name: Column[str]
    email: Column[str]
    tier: Column[str] = "standard"
    lifetime_value: Column[float] = Column(0.0, rename="ltv")


async def main():
    """Run the basic usage example."""
    print("=" * 80)
    print("DOCMAP BASIC USAGE EXAMPLE")
    print("=" * 80)

    db = connect()
    try:
        # Step 2: Create declared indexes
        created = await enforce_indexes(db)
        print(f"\n✓ Indexes enforced: {created}")
        await Customer.delete(db, None)

        # Step 3: Insert records
        alice = Customer(
            id=ObjectId(), name="Alice", email="alice@example.com", lifetime_value=1200
        )
        bob = Customer(id=ObjectId(), name="Bob", email="bob@example.com", tier="gold")
        await Customer.insert_many(db, [alice, bob])
        print(f"✓ Inserted {await Customer.count(db)} customers")

        # Step 4: Typed filters; bare values mean equality
        gold = await Customer.find(db, Customer.TypedFilter(tier="gold"))
        print(f"\n1. Gold customers: {[c.name for c in gold]}")

        valuable = await Customer.find_with_options(
            db,
            Customer.TypedFilter(lifetime_value=Gte(1000)),
            sort={Customer.Fields.NAME: Order.ASC},
            limit=10,
        )
        print(f"2. Lifetime value >= 1000: {[c.name for c in valuable]}")

        # Step 5: Projections fetch only their fields
        contact = await Customer.Contact.find_one(db, Customer.by_id(alice.id))
        print(f"3. Contact projection: {contact}")

        # Step 6: Updates
        matched = await Customer.update_one(
            db, Customer.by_id(bob.id), Customer.TypedUpdate(tier="platinum")
        )
        print(f"\n4. update_one matched {matched} document")

        await alice.patch(db, Customer.TypedUpdate(email="alice@new.example"))
        print(f"5. Patched in memory and in the database: {alice.email}")

        print("\nKey concepts demonstrated:")
        print("  ✓ Declaration errors surface when the class is created")
        print("  ✓ Fields enum members render to wire names (ltv)")
        print("  ✓ Projection reads send a minimal projection document")
        print("=" * 80)
    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
