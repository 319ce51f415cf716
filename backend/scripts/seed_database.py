"""
Seed development data: users (two policyholders, an agent, an admin),
policies with their premium schedules, and a few claims.

Run: python -m scripts.seed_database  (from backend/, after `alembic upgrade head`)
Pass --reset to delete existing rows first.
"""

import argparse
import asyncio
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy import delete

from app.core.constants import PolicyType, PremiumFrequency, UserRole
from app.core.logging import get_logger, setup_logging
from app.db.models import Claim, Policy, Premium, User
from app.db.models.base import today
from app.db.session import async_session
from app.repositories import claims as claim_repository
from app.repositories import policies as policy_repository
from app.repositories import premiums as premium_repository
from app.repositories import users as user_repository
from app.services.premium_settlement import settle_premium

logger = get_logger("seed")

SEED_PASSWORD = "Password123!"  # Change in production!

SEED_USERS = [
    {
        "first_name": "John",
        "last_name": "Doe",
        "email": "john.doe@example.com",
        "phone": "+1234567890",
        "date_of_birth": date(1985, 6, 15),
        "address": {"street": "123 Main St", "city": "New York", "state": "NY", "zip_code": "10001", "country": "USA"},
        "role": UserRole.USER,
    },
    {
        "first_name": "Jane",
        "last_name": "Smith",
        "email": "jane.smith@example.com",
        "phone": "+1234567891",
        "date_of_birth": date(1990, 3, 22),
        "address": {"street": "456 Oak Ave", "city": "Los Angeles", "state": "CA", "zip_code": "90001", "country": "USA"},
        "role": UserRole.USER,
    },
    {
        "first_name": "Mike",
        "last_name": "Johnson",
        "email": "mike.johnson@metlife.com",
        "phone": "+1234567892",
        "date_of_birth": date(1982, 11, 8),
        "address": {"street": "789 Pine St", "city": "Chicago", "state": "IL", "zip_code": "60601", "country": "USA"},
        "role": UserRole.AGENT,
    },
    {
        "first_name": "Admin",
        "last_name": "User",
        "email": "admin@metlife.com",
        "phone": "+1234567893",
        "date_of_birth": date(1980, 1, 1),
        "address": None,
        "role": UserRole.ADMIN,
    },
]


async def reset(session) -> None:
    for model in (Claim, Premium, Policy, User):
        await session.execute(delete(model))
    await session.flush()
    logger.info("Existing data removed")


async def seed(reset_first: bool = False) -> None:
    async with async_session() as session:
        if reset_first:
            await reset(session)

        users = {}
        for data in SEED_USERS:
            user = await user_repository.create_user(
                session,
                password=SEED_PASSWORD,
                is_email_verified=True,
                **{**data, "role": data["role"].value},
            )
            users[data["email"]] = user
            logger.info("Created user", email=user.email, role=user.role)

        john = users["john.doe@example.com"]
        jane = users["jane.smith@example.com"]
        agent = users["mike.johnson@metlife.com"]
        start = today() - timedelta(days=90)

        life, first_premium = await policy_repository.create_policy_with_first_premium(
            session,
            user_id=john.id,
            agent_id=agent.id,
            policy_type=PolicyType.LIFE,
            coverage_amount=500000.0,
            premium_amount=250.0,
            premium_frequency=PremiumFrequency.MONTHLY,
            start_date=start,
            end_date=start + relativedelta(years=20),
            beneficiaries=[
                {"name": "Mary Doe", "relationship": "spouse", "percentage": 70.0},
                {"name": "Tom Doe", "relationship": "child", "percentage": 30.0},
            ],
            documents=[],
        )
        health, _ = await policy_repository.create_policy_with_first_premium(
            session,
            user_id=jane.id,
            agent_id=agent.id,
            policy_type=PolicyType.HEALTH,
            coverage_amount=100000.0,
            premium_amount=1200.0,
            premium_frequency=PremiumFrequency.QUARTERLY,
            start_date=start,
            end_date=start + relativedelta(years=1),
            beneficiaries=[],
            documents=[],
        )
        auto, _ = await policy_repository.create_policy_with_first_premium(
            session,
            user_id=john.id,
            agent_id=None,
            policy_type=PolicyType.AUTO,
            coverage_amount=25000.0,
            premium_amount=900.0,
            premium_frequency=PremiumFrequency.SEMI_ANNUAL,
            start_date=today() + timedelta(days=10),
            end_date=today() + timedelta(days=375),
            beneficiaries=[],
            documents=[],
        )
        logger.info("Created policies", count=3)

        # Life policy: first two installments paid, the third left past due
        await settle_premium(session, first_premium, method="credit-card", transaction_id=f"SEED-{first_premium.id}")
        for months in (1, 2):
            premium = await premium_repository.create_premium(
                session,
                policy_id=life.id,
                user_id=john.id,
                amount=life.premium_amount,
                due_date=start + relativedelta(months=months),
            )
            if months == 1:
                await settle_premium(session, premium, method="bank-transfer", transaction_id=f"SEED-{premium.id}")

        await claim_repository.create_claim(
            session,
            policy_id=health.id,
            user_id=jane.id,
            claim_type="medical",
            claim_amount=3500.0,
            incident_date=today() - timedelta(days=20),
            description="Emergency room visit and two nights of observation.",
            documents=[{"name": "Hospital invoice", "url": "https://files.example.com/invoice.pdf", "type": "receipt"}],
        )
        await claim_repository.create_claim(
            session,
            policy_id=auto.id,
            user_id=john.id,
            claim_type="accident",
            claim_amount=1800.0,
            incident_date=today() - timedelta(days=3),
            description="Rear bumper damage in a parking lot collision.",
            documents=[],
        )
        logger.info("Created claims", count=2)

        await session.commit()
    logger.info("Seeding complete", password=SEED_PASSWORD)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--reset", action="store_true", help="delete existing rows before seeding")
    args = parser.parse_args()

    setup_logging("INFO")
    asyncio.run(seed(reset_first=args.reset))
