"""
Transactional email: HTML templates, SMTP delivery and async dispatch.

`dispatch_email(template, to, context)` queues the Celery task
`send_templated_email`.  A broker failure is logged and swallowed so email
never blocks (or fails) an API response.

Routers use `dispatch_after_commit(db, ...)` instead: the email is held on
the session and only queued once its transaction commits.  A rollback
drops it.
"""

from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

BRAND = "MetLife"

PENDING_EMAILS_KEY = "pending_emails"
_HOOKED_KEY = "email_hooks_installed"

_LAYOUT = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: {accent};">{heading}</h2>
  <p>Dear {name},</p>
  {intro}
  {details}
  <p>Best regards,<br>The {brand} Team</p>
</div>"""

_DETAILS = """\
<div style="background-color: #f5f5f5; padding: 20px; margin: 20px 0; border-radius: 5px;">
  <h3>{title}</h3>
  {rows}
</div>"""


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


class UnknownTemplateError(KeyError):
    pass


def _money(value: Any) -> str:
    return f"{float(value or 0):,.2f}"


def _page(*, heading: str, name: str, intro: str, details: dict[str, Any] | None = None,
          details_title: str = "Details:", accent: str = "#009688") -> str:
    block = ""
    if details:
        rows = "\n  ".join(
            f"<p><strong>{escape(label)}:</strong> {escape(str(value))}</p>" for label, value in details.items()
        )
        block = _DETAILS.format(title=escape(details_title), rows=rows)
    return _LAYOUT.format(
        accent=accent,
        heading=escape(heading),
        name=escape(name),
        intro=intro,
        details=block,
        brand=BRAND,
    )


def _welcome(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Welcome to {BRAND}",
        html=_page(
            heading=f"Welcome to {BRAND}, {ctx['first_name']}!",
            name=ctx["first_name"],
            intro="<p>Your account is ready. You can now view your policies, file claims and pay premiums online.</p>",
        ),
    )


def _password_reset(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject="Password Reset Request",
        html=_page(
            heading="Reset your password",
            name=ctx["first_name"],
            intro=(
                "<p>Use the token below to reset your password. "
                f"It expires in {int(ctx.get('expires_minutes', settings.PASSWORD_RESET_EXPIRE_MINUTES))} minutes.</p>"
            ),
            details={"Reset token": ctx["reset_token"]},
            details_title="Reset details:",
        ),
    )


def _policy_created(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"New Policy Created - {ctx['policy_number']}",
        html=_page(
            heading="New Policy Created",
            name=ctx["first_name"],
            intro="<p>Your new insurance policy has been created.</p>",
            details={
                "Policy Number": ctx["policy_number"],
                "Policy Type": ctx["policy_type"],
                "Coverage Amount": _money(ctx["coverage_amount"]),
                "Premium Amount": _money(ctx["premium_amount"]),
                "Start Date": ctx["start_date"],
                "End Date": ctx["end_date"],
            },
            details_title="Policy Details:",
        ),
    )


def _claim_submitted(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Claim Submitted - {ctx['claim_number']}",
        html=_page(
            heading="Claim Submitted Successfully",
            name=ctx["first_name"],
            intro="<p>We have received your claim and will review it shortly.</p>",
            details={
                "Claim Number": ctx["claim_number"],
                "Claim Type": ctx["claim_type"],
                "Claim Amount": _money(ctx["claim_amount"]),
                "Incident Date": ctx["incident_date"],
                "Status": ctx["status"],
            },
            details_title="Claim Details:",
        ),
    )


def _claim_approved(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Claim Approved - {ctx['claim_number']}",
        html=_page(
            heading="Claim Approved!",
            name=ctx["first_name"],
            intro="<p>Good news: your claim has been approved.</p>",
            details={
                "Claim Number": ctx["claim_number"],
                "Approved Amount": _money(ctx["approved_amount"]),
                "Review Date": ctx["review_date"],
            },
            details_title="Claim Details:",
            accent="#4CAF50",
        ),
    )


def _claim_rejected(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Claim Update - {ctx['claim_number']}",
        html=_page(
            heading="Claim Update",
            name=ctx["first_name"],
            intro="<p>After review, we are unable to approve your claim.</p>",
            details={
                "Claim Number": ctx["claim_number"],
                "Status": ctx.get("status", "rejected"),
                "Reason": ctx.get("rejection_reason") or "Not specified",
                "Review Date": ctx["review_date"],
            },
            details_title="Claim Details:",
            accent="#f44336",
        ),
    )


def _premium_reminder(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Premium Payment Reminder - Due {ctx['due_date']}",
        html=_page(
            heading="Premium Payment Reminder",
            name=ctx["first_name"],
            intro="<p>This is a reminder that your premium payment is due soon.</p>",
            details={
                "Policy Number": ctx["policy_number"],
                "Amount Due": _money(ctx["final_amount"]),
                "Due Date": ctx["due_date"],
            },
            details_title="Payment Details:",
            accent="#FF9800",
        ),
    )


def _premium_overdue(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Overdue Premium Payment - {ctx['policy_number']}",
        html=_page(
            heading="Premium Payment Overdue",
            name=ctx["first_name"],
            intro="<p>Your premium payment is overdue and a late fee has been applied.</p>",
            details={
                "Policy Number": ctx["policy_number"],
                "Late Fee": _money(ctx["late_fee"]),
                "Amount Due": _money(ctx["final_amount"]),
                "Due Date": ctx["due_date"],
            },
            details_title="Payment Details:",
            accent="#f44336",
        ),
    )


def _payment_confirmation(ctx: dict[str, Any]) -> RenderedEmail:
    return RenderedEmail(
        subject=f"Payment Received - {ctx['policy_number']}",
        html=_page(
            heading="Payment Confirmation",
            name=ctx["first_name"],
            intro="<p>Thank you, we have received your premium payment.</p>",
            details={
                "Policy Number": ctx["policy_number"],
                "Amount Paid": _money(ctx["amount"]),
                "Payment Method": ctx["payment_method"],
                "Transaction ID": ctx.get("transaction_id") or "-",
                "Paid On": ctx["paid_date"],
            },
            details_title="Payment Details:",
            accent="#4CAF50",
        ),
    )


TEMPLATES: dict[str, Callable[[dict[str, Any]], RenderedEmail]] = {
    "welcome": _welcome,
    "password_reset": _password_reset,
    "policy_created": _policy_created,
    "claim_submitted": _claim_submitted,
    "claim_approved": _claim_approved,
    "claim_rejected": _claim_rejected,
    "premium_reminder": _premium_reminder,
    "premium_overdue": _premium_overdue,
    "payment_confirmation": _payment_confirmation,
}


def render_template(template: str, context: dict[str, Any]) -> RenderedEmail:
    try:
        builder = TEMPLATES[template]
    except KeyError:
        raise UnknownTemplateError(template) from None
    return builder(context)


def send_email(to: str, subject: str, html: str) -> bool:
    """Deliver one HTML email over SMTP. Returns False when email is disabled."""
    if not settings.EMAIL_ENABLED:
        logger.info("Email disabled; skipping send", to=to, subject=subject)
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.EMAIL_FROM
    message["To"] = to
    message.attach(MIMEText(html, "html"))

    with smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=30) as server:
        if settings.EMAIL_USE_TLS:
            server.starttls()
        if settings.EMAIL_USER:
            server.login(settings.EMAIL_USER, settings.EMAIL_PASSWORD)
        server.sendmail(settings.EMAIL_FROM, [to], message.as_string())

    logger.info("Email sent", to=to, subject=subject)
    return True


def dispatch_email(template: str, to: str, context: dict[str, Any]) -> None:
    """Queue a templated email; never raises."""
    from app.tasks.email_tasks import send_templated_email

    try:
        send_templated_email.delay(template, to, context)
    except Exception as exc:  # broker down, serialization error, ...
        logger.warning("Email dispatch failed", template=template, to=to, error=str(exc))


def _send_pending(session: Session) -> None:
    for template, to, context in session.info.pop(PENDING_EMAILS_KEY, []):
        dispatch_email(template, to, context)


def _drop_pending(session: Session) -> None:
    dropped = session.info.pop(PENDING_EMAILS_KEY, [])
    if dropped:
        logger.info("Emails dropped on rollback", count=len(dropped), templates=[t for t, _, _ in dropped])


def dispatch_after_commit(db: AsyncSession, template: str, to: str, context: dict[str, Any]) -> None:
    """Hold a templated email on `db` until its transaction commits."""
    session = db.sync_session
    if not session.info.get(_HOOKED_KEY):
        event.listen(session, "after_commit", _send_pending)
        event.listen(session, "after_rollback", _drop_pending)
        session.info[_HOOKED_KEY] = True
    session.info.setdefault(PENDING_EMAILS_KEY, []).append((template, to, context))
