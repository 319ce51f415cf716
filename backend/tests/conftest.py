"""Shared fixtures for the insurance API test suite."""
import os
import tempfile

# Settings are read at import time, so the test environment must be in
# place before anything under `app` is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="insurance-tests-")
os.environ.update(
    {
        "DATABASE_URL_OVERRIDE": f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}",
        "APP_ENV": "test",
        "LOG_DIR": os.path.join(_TMP_DIR, "logs"),
        "CELERY_TASK_ALWAYS_EAGER": "1",
        "EMAIL_ENABLED": "false",
        "RATE_LIMIT_MAX_REQUESTS": "0",
        "RAZORPAY_KEY_ID": "rzp_test_key",
        "RAZORPAY_KEY_SECRET": "rzp_test_secret",
        "RAZORPAY_WEBHOOK_SECRET": "rzp_webhook_secret",
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
    }
)

import asyncio
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.security import create_access_token
from app.db.models import Base
from app.db.models.base import today
from app.db.session import async_session, build_engine
from app.main import app
from app.repositories import policies as policy_repository
from app.repositories import users as user_repository
from app.services import email as email_service
from app.tasks import premium_tasks

PASSWORD = "Password123!"


def run_in_session(fn):
    """Run `fn(session)` in its own session and commit."""

    async def _run():
        async with async_session() as session:
            result = await fn(session)
            await session.commit()
            return result

    return asyncio.run(_run())


def bearer(user: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {user['token']}"}


@pytest.fixture
def database():
    """Recreate every table so each test starts from an empty database."""
    engine = build_engine(settings.DATABASE_URL)

    async def _reset():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(_reset())
    yield


@pytest.fixture
def client(database):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def outbox(monkeypatch):
    """Capture templated emails instead of queueing them."""
    sent: list[dict] = []

    def _capture(template, to, context):
        sent.append({"template": template, "to": to, "context": context})

    for module in (email_service, premium_tasks):
        monkeypatch.setattr(module, "dispatch_email", _capture)
    return sent


@pytest.fixture
def make_user(database):
    """Create a user row and return {id, email, role, token}."""
    counter = {"n": 0}

    def _make(role: str = "user", *, email: str | None = None, first_name: str = "Test", **fields) -> dict:
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"

        async def _create(session):
            return await user_repository.create_user(
                session,
                email=email,
                password=PASSWORD,
                first_name=first_name,
                last_name="User",
                role=role,
                **fields,
            )

        user = run_in_session(_create)
        token = create_access_token({"sub": str(user.id), "role": user.role, "email": user.email})
        return {"id": user.id, "email": user.email, "role": user.role, "token": token}

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", first_name="Ada")


@pytest.fixture
def agent(make_user):
    return make_user("agent", first_name="Mike")


@pytest.fixture
def holder(make_user):
    return make_user("user", first_name="John")


@pytest.fixture
def make_policy(database):
    """Create a policy with its first premium; returns {id, policy_number, premium_id}."""

    def _make(
        holder: dict,
        *,
        agent: dict | None = None,
        policy_type: str = "health",
        coverage_amount: float = 100000.0,
        premium_amount: float = 500.0,
        premium_frequency: str = "monthly",
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict:
        start = start_date or today()
        end = end_date or start + timedelta(days=365)

        async def _create(session):
            return await policy_repository.create_policy_with_first_premium(
                session,
                user_id=holder["id"],
                agent_id=agent["id"] if agent else None,
                policy_type=policy_type,
                coverage_amount=coverage_amount,
                premium_amount=premium_amount,
                premium_frequency=premium_frequency,
                start_date=start,
                end_date=end,
                beneficiaries=[],
                documents=[],
            )

        policy, premium = run_in_session(_create)
        return {"id": policy.id, "policy_number": policy.policy_number, "premium_id": premium.id}

    return _make
