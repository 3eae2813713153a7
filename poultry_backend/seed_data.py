"""
Database seeding script for development data.

Creates a few trucks and customer accounts through the transaction
coordinator so every seeded row carries its audit entry.
Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from poultry_backend.app.db.session import AsyncSessionLocal, Base, engine
import poultry_backend.app.main  # noqa: F401  (registers every model with Base)
from poultry_backend.app.models.customer import Customer
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator

SEED_ACTOR = "seed"

TRUCKS = [
    ("TRK-101", "Sami Haddad", "0599100101"),
    ("TRK-102", "Omar Nasser", "0599100102"),
]

CUSTOMERS = [
    ("Al Noor Restaurant", "0599000001", "Main Street 12", Decimal("15000")),
    ("Dar Al Khair Catering", "0599000002", "Industrial Zone 4", Decimal("25000")),
    ("Corner Butcher", "0599000003", None, None),
]


async def seed_data():
    """
    Seed master data.

    Creates:
    - 2 trucks with their drivers
    - 3 customer accounts with zero balance
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        existing = (await db.execute(select(Customer.id).limit(1))).scalar_one_or_none()
    if existing is not None:
        print("ℹ️  Customers already exist, skipping seeding")
        return

    print("🌱 Starting seeding...")
    coordinator = TransactionCoordinator(AsyncSessionLocal)

    for number, driver, phone in TRUCKS:
        truck = await coordinator.register_truck(number, driver, phone, actor=SEED_ACTOR)
        print(f"✅ Registered truck {truck.truck_number} (id: {truck.id})")

    for name, phone, address, credit_limit in CUSTOMERS:
        customer = await coordinator.create_customer(name, phone, address, credit_limit, actor=SEED_ACTOR)
        print(f"✅ Created customer {customer.customer_name} (id: {customer.id})")

    print("\n🎉 Seeding completed successfully!")


async def main():
    try:
        await seed_data()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
