"""
Celery tasks — transactional email.
"""

import smtplib

import structlog

from app.services.email import render_template, send_email
from app.tasks import celery_app

logger = structlog.get_logger("tasks.email")


@celery_app.task(
    bind=True,
    name="app.tasks.email_tasks.send_templated_email",
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    max_retries=3,
)
def send_templated_email(self, template: str, to: str, context: dict) -> bool:
    """Render `template` with `context` and send it to `to`."""
    task_log = logger.bind(task_id=self.request.id, template=template, to=to)

    rendered = render_template(template, context)
    sent = send_email(to, rendered.subject, rendered.html)

    task_log.info("Templated email processed", sent=sent)
    return sent
