"""
Celery tasks — periodic premium upkeep (scheduled by beat, see celeryconfig).

Each task opens its own engine inside `asyncio.run` so it never shares an
event loop or connection pool with the web process.
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.db.models.base import today, utcnow
from app.db.session import build_engine
from app.repositories import premiums as premium_repository
from app.services.email import dispatch_email
from app.tasks import celery_app

logger = structlog.get_logger("tasks.premiums")


async def _mark_overdue() -> list[dict]:
    engine = build_engine(settings.DATABASE_URL)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    notices: list[dict] = []
    try:
        async with factory() as session:
            async with session.begin():
                premiums = await premium_repository.list_past_due(session)
                for premium in premiums:
                    if not premium.mark_overdue():
                        continue
                    notices.append(
                        {
                            "to": premium.holder.email,
                            "context": {
                                "first_name": premium.holder.first_name,
                                "policy_number": premium.policy.policy_number,
                                "late_fee": premium.late_fee,
                                "final_amount": premium.final_amount,
                                "due_date": premium.due_date.isoformat(),
                            },
                        }
                    )
    finally:
        await engine.dispose()
    return notices


async def _collect_reminders(days: int) -> list[dict]:
    engine = build_engine(settings.DATABASE_URL)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    reminders: list[dict] = []
    try:
        async with factory() as session:
            async with session.begin():
                premiums = await premium_repository.list_due_for_reminder(session, days=days)
                stamp = utcnow()
                for premium in premiums:
                    premium.reminders_sent = (premium.reminders_sent or 0) + 1
                    premium.last_reminder_date = stamp
                    reminders.append(
                        {
                            "to": premium.holder.email,
                            "context": {
                                "first_name": premium.holder.first_name,
                                "policy_number": premium.policy.policy_number,
                                "final_amount": premium.final_amount,
                                "due_date": premium.due_date.isoformat(),
                            },
                        }
                    )
    finally:
        await engine.dispose()
    return reminders


@celery_app.task(bind=True, name="app.tasks.premium_tasks.mark_overdue_premiums")
def mark_overdue_premiums(self) -> int:
    """Flag every pending premium past its due date as overdue (2% late fee)."""
    task_log = logger.bind(task_id=self.request.id, run_date=today().isoformat())

    notices = asyncio.run(_mark_overdue())
    for notice in notices:
        dispatch_email("premium_overdue", notice["to"], notice["context"])

    task_log.info("Overdue sweep complete", marked=len(notices))
    return len(notices)


@celery_app.task(bind=True, name="app.tasks.premium_tasks.send_premium_reminders")
def send_premium_reminders(self, days: int | None = None) -> int:
    """Email holders of pending premiums due within the reminder window."""
    window = days if days is not None else settings.PREMIUM_REMINDER_DAYS
    task_log = logger.bind(task_id=self.request.id, window_days=window)

    reminders = asyncio.run(_collect_reminders(window))
    for reminder in reminders:
        dispatch_email("premium_reminder", reminder["to"], reminder["context"])

    task_log.info("Premium reminders queued", count=len(reminders))
    return len(reminders)
