"""
Notification, audit and email emission shared by the dispatcher and SLA sweeps.

Writes (notifications, actions) are only added to the session; the caller owns
the transaction. Emails are collected as OutgoingEmail values and delivered
after commit with deliver_emails(), which never raises.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.complaint import ComplaintAction
from app.models.notification import Notification
from app.models.user import User
from app.security.rbac import Role
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)


@dataclass
class OutgoingEmail:
    """A single message queued for delivery after the database commit."""

    to: list[str]
    subject: str
    html: str
    reference: Optional[str] = None  # complaint number, for logging


@dataclass
class DeliveryReport:
    sent: int = 0
    failed: int = 0
    failed_references: list[str] = field(default_factory=list)


def unique_emails(addresses: Iterable[Optional[str]]) -> list[str]:
    """Drop blanks and duplicates (case-insensitive), keeping first-seen order."""
    seen = set()
    result = []
    for addr in addresses:
        if not addr:
            continue
        key = addr.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(addr.strip())
    return result


def add_notification(
    db: AsyncSession,
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    now: datetime,
    complaint_id: Optional[uuid.UUID] = None,
) -> Notification:
    notification = Notification(
        id=uuid.uuid4(),
        user_id=user_id,
        complaint_id=complaint_id,
        type=type,
        title=title,
        message=message,
        read=False,
        created_at=now,
    )
    db.add(notification)
    return notification


def add_action(
    db: AsyncSession,
    *,
    complaint_id: uuid.UUID,
    user_id: int,
    description: str,
    now: datetime,
) -> ComplaintAction:
    action = ComplaintAction(
        id=uuid.uuid4(),
        complaint_id=complaint_id,
        user_id=user_id,
        description=description,
        created_at=now,
    )
    db.add(action)
    return action


async def get_admins(db: AsyncSession) -> list[User]:
    result = await db.execute(
        select(User)
        .where(User.role == Role.ADMIN.value, User.is_active == True)  # noqa: E712
        .order_by(User.id)
    )
    return list(result.scalars().all())


async def notify_admins(
    db: AsyncSession,
    *,
    type: str,
    title: str,
    message: str,
    now: datetime,
    complaint_id: Optional[uuid.UUID] = None,
) -> int:
    """Add one notification per active admin. Returns how many were added."""
    admins = await get_admins(db)
    for admin in admins:
        add_notification(
            db,
            user_id=admin.id,
            type=type,
            title=title,
            message=message,
            now=now,
            complaint_id=complaint_id,
        )
    return len(admins)


async def _deliver_one(
    email_service: EmailService,
    email: OutgoingEmail,
    semaphore: asyncio.Semaphore,
    timeout: float,
) -> bool:
    async with semaphore:
        try:
            result = await asyncio.wait_for(
                email_service.send_email(to=email.to, subject=email.subject, html_body=email.html),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Email delivery timed out",
                extra={"reference": email.reference, "timeout_seconds": timeout},
            )
            return False
        except Exception as e:
            logger.error(
                f"Email delivery failed for {email.reference}: {e}",
                extra={"reference": email.reference},
            )
            return False

    if not result.get("success"):
        logger.warning(
            f"Email not delivered for {email.reference}: {result.get('error')}",
            extra={"reference": email.reference},
        )
        return False
    return True


async def deliver_emails(
    email_service: EmailService,
    emails: list[OutgoingEmail],
    concurrency: Optional[int] = None,
    timeout: Optional[float] = None,
) -> DeliveryReport:
    """Send queued emails on a bounded pool. Failures are logged and counted."""
    report = DeliveryReport()
    if not emails:
        return report

    semaphore = asyncio.Semaphore(max(1, concurrency or settings.SLA_SWEEP_CONCURRENCY))
    timeout = timeout or settings.EMAIL_SEND_TIMEOUT_SECONDS

    outcomes = await asyncio.gather(
        *(_deliver_one(email_service, email, semaphore, timeout) for email in emails)
    )
    for email, ok in zip(emails, outcomes):
        if ok:
            report.sent += 1
        else:
            report.failed += 1
            report.failed_references.append(email.reference or "")

    logger.info(f"Email delivery complete: sent={report.sent}, failed={report.failed}")
    return report
