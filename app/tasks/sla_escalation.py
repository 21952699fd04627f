"""SLA Escalation - Reminder and breach sweeps over unresolved complaints.

Three sweeps, each a time window over complaint age plus a dedup window:

    REMINDER_1H  now-2h <= created_at < now-1h   once per 23h   SLA_REMINDER_1H
    REMINDER_2H  now-4h <= created_at < now-2h   once per 6h    SLA_REMINDER_2H
    BREACH       due_date < now                  once per 24h   SLA_BREACH

A complaint is skipped while it has a notification of the sweep's type newer
than now - window; those notification rows are the only state the sweeps keep,
so a sweep can be re-run at any time. RESOLVED complaints are never swept.

Each complaint is handled in its own savepoint; a failure is logged and the
sweep moves on. Emails are sent after the commit on a bounded pool, and a
failed email never undoes the notifications.

Runs of the same kind are serialized by a per-kind lock held until the commit,
and the eligibility query skips complaint rows locked by another worker's
sweep, so overlapping triggers notify each complaint once.

Triggered by the cron endpoint, the /sla endpoints, or (when
SLA_SCHEDULER_ENABLED) an in-process APScheduler interval job.
"""

import asyncio
import logging
import math
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import Clock, system_clock
from app.database import async_session_maker
from app.middleware.correlation import bind_request_id, generate_id
from app.models.complaint import Complaint
from app.models.lookups import ComplaintStatus, ComplaintStatusRecord
from app.models.notification import Notification, NotificationType
from app.services import email_templates
from app.services.email_service import EmailService, get_email_service
from app.services.notification_service import (
    OutgoingEmail,
    add_notification,
    deliver_emails,
    get_admins,
    unique_emails,
)

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None

SUMMARY_WINDOW = timedelta(hours=24)

# One lock per sweep kind and event loop; see _sweep_lock
_sweep_locks: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


class SweepKind(str, Enum):
    REMINDER_1H = "REMINDER_1H"
    REMINDER_2H = "REMINDER_2H"
    BREACH = "BREACH"


@dataclass(frozen=True)
class SweepPolicy:
    kind: SweepKind
    notification_type: str
    title: str
    dedup_window: timedelta
    # Age window for reminders: min_age < now - created_at <= max_age
    min_age: Optional[timedelta] = None
    max_age: Optional[timedelta] = None


SWEEP_POLICIES: dict[SweepKind, SweepPolicy] = {
    SweepKind.REMINDER_1H: SweepPolicy(
        kind=SweepKind.REMINDER_1H,
        notification_type=NotificationType.SLA_REMINDER_1H,
        title="SLA Reminder - 1 Hour",
        dedup_window=timedelta(hours=23),
        min_age=timedelta(hours=1),
        max_age=timedelta(hours=2),
    ),
    SweepKind.REMINDER_2H: SweepPolicy(
        kind=SweepKind.REMINDER_2H,
        notification_type=NotificationType.SLA_REMINDER_2H,
        title="SLA Reminder - 2 Hours",
        dedup_window=timedelta(hours=6),
        min_age=timedelta(hours=2),
        max_age=timedelta(hours=4),
    ),
    SweepKind.BREACH: SweepPolicy(
        kind=SweepKind.BREACH,
        notification_type=NotificationType.SLA_BREACH,
        title="SLA Breach Alert",
        dedup_window=timedelta(hours=24),
    ),
}


@dataclass
class SweepReport:
    kind: SweepKind
    ran_at: datetime
    matched: int = 0
    processed: int = 0
    failed: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    summary_notifications: int = 0


@dataclass
class SweepRunReport:
    """All three sweeps of one trigger."""

    ran_at: datetime
    reports: list[SweepReport] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(r.processed for r in self.reports)

    @property
    def failed(self) -> int:
        return sum(r.failed for r in self.reports)

    @property
    def emails_sent(self) -> int:
        return sum(r.emails_sent for r in self.reports)

    @property
    def emails_failed(self) -> int:
        return sum(r.emails_failed for r in self.reports)


def _whole_hours(delta: timedelta) -> int:
    return max(0, math.floor(delta.total_seconds() / 3600))


def _unresolved(query):
    return query.join(ComplaintStatusRecord, Complaint.status_id == ComplaintStatusRecord.id).where(
        ComplaintStatusRecord.name != ComplaintStatus.RESOLVED.value
    )


def eligible_complaints_query(policy: SweepPolicy, now: datetime):
    """Complaints in the policy's trigger window with no notification of its type inside the dedup window."""
    recently_notified = select(Notification.id).where(
        Notification.complaint_id == Complaint.id,
        Notification.type == policy.notification_type,
        Notification.created_at > now - policy.dedup_window,
    )
    query = _unresolved(select(Complaint)).where(~recently_notified.exists())

    if policy.kind == SweepKind.BREACH:
        query = query.where(Complaint.due_date < now)
    else:
        query = query.where(
            Complaint.created_at >= now - policy.max_age,
            Complaint.created_at < now - policy.min_age,
        )
    # Rows another worker is sweeping right now are left to it
    return query.order_by(Complaint.created_at.asc()).with_for_update(of=Complaint, skip_locked=True)


def _messages(policy: SweepPolicy, complaint: Complaint, now: datetime) -> tuple[str, str]:
    """(assignee message, creator message)."""
    number = complaint.complaint_number
    if policy.kind == SweepKind.BREACH:
        return (
            f"Complaint {number} - {complaint.customer_name} has breached its SLA deadline",
            f"Complaint {number} you created has breached its SLA deadline",
        )
    elapsed = email_templates.plural_hours(_whole_hours(now - complaint.created_at))
    return (
        f"Complaint {number} is still unresolved after {elapsed}",
        f"Complaint {number} you created is still unresolved after {elapsed}",
    )


def _email(policy: SweepPolicy, complaint: Complaint, recipients: list[str], now: datetime) -> OutgoingEmail:
    if policy.kind == SweepKind.BREACH:
        subject, html = email_templates.sla_breach(complaint, _whole_hours(now - complaint.due_date))
    else:
        subject, html = email_templates.sla_reminder(complaint, _whole_hours(now - complaint.created_at))
    return OutgoingEmail(to=recipients, subject=subject, html=html, reference=complaint.complaint_number)


async def process_complaint(
    db: AsyncSession,
    policy: SweepPolicy,
    complaint: Complaint,
    admin_emails: list[str],
    now: datetime,
) -> Optional[OutgoingEmail]:
    """
    Notify the assignee and (when different) the creator, and build the email
    for assignee, creator and admins. Returns None when nobody can be reached.
    """
    assignee = complaint.assigned_to
    creator = complaint.created_by
    creator_differs = complaint.created_by_id != complaint.assigned_to_id

    recipients = unique_emails(
        [
            assignee.email if assignee else None,
            creator.email if creator and creator_differs else None,
            *admin_emails,
        ]
    )
    if not recipients:
        logger.warning(
            f"No recipients for {policy.kind.value} on complaint {complaint.complaint_number}",
            extra={"complaint_id": str(complaint.id)},
        )
        return None

    assignee_message, creator_message = _messages(policy, complaint, now)
    if assignee:
        add_notification(
            db,
            user_id=assignee.id,
            complaint_id=complaint.id,
            type=policy.notification_type,
            title=policy.title,
            message=assignee_message,
            now=now,
        )
    if creator_differs:
        add_notification(
            db,
            user_id=complaint.created_by_id,
            complaint_id=complaint.id,
            type=policy.notification_type,
            title=policy.title,
            message=creator_message,
            now=now,
        )

    return _email(policy, complaint, recipients, now)


async def count_breaching(db: AsyncSession, now: datetime) -> int:
    result = await db.execute(
        _unresolved(select(func.count(Complaint.id))).where(Complaint.due_date < now)
    )
    return result.scalar() or 0


async def send_breach_summaries(db: AsyncSession, now: datetime) -> int:
    """One SLA_BREACH_SUMMARY per admin per 24h while anything is in breach."""
    breaching = await count_breaching(db, now)
    if breaching == 0:
        return 0

    sent = 0
    for admin in await get_admins(db):
        recent = await db.execute(
            select(Notification.id)
            .where(
                Notification.user_id == admin.id,
                Notification.type == NotificationType.SLA_BREACH_SUMMARY,
                Notification.created_at > now - SUMMARY_WINDOW,
            )
            .limit(1)
        )
        if recent.scalar_one_or_none() is not None:
            continue
        add_notification(
            db,
            user_id=admin.id,
            type=NotificationType.SLA_BREACH_SUMMARY,
            title="SLA Breach Alert",
            message=f"{breaching} complaints have breached their SLA deadline",
            now=now,
        )
        sent += 1
    return sent


def _sweep_lock(kind: SweepKind) -> asyncio.Lock:
    """Overlapping triggers of one sweep kind run one at a time within a process.

    asyncio locks belong to the loop they first wait on, so each loop gets its own set.
    """
    locks = _sweep_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(kind)
    if lock is None:
        lock = locks[kind] = asyncio.Lock()
    return lock


async def run_sweep(
    db: AsyncSession,
    kind: SweepKind,
    clock: Clock = system_clock,
    email_service: Optional[EmailService] = None,
) -> SweepReport:
    """Run one sweep: notify, commit, then deliver emails."""
    policy = SWEEP_POLICIES[SweepKind(kind)]
    now = clock.now()
    report = SweepReport(kind=policy.kind, ran_at=now)

    with bind_request_id(generate_id(f"sla-{policy.kind.value.lower()}-")):
        async with _sweep_lock(policy.kind):
            outgoing = await _notify_due(db, policy, report, now)

        if outgoing:
            delivery = await deliver_emails(email_service or get_email_service(), outgoing)
            report.emails_sent = delivery.sent
            report.emails_failed = delivery.failed

    logger.info(
        f"{policy.kind.value} complete. Processed: {report.processed}, Errors: {report.failed}, "
        f"Emails: {report.emails_sent} sent / {report.emails_failed} failed"
    )
    return report


async def _notify_due(
    db: AsyncSession, policy: SweepPolicy, report: SweepReport, now: datetime
) -> list[OutgoingEmail]:
    """Write this sweep's notifications and commit. Returns the emails to send."""
    result = await db.execute(
        eligible_complaints_query(policy, now).execution_options(populate_existing=True)
    )
    complaints = list(result.scalars().all())
    report.matched = len(complaints)
    logger.info(f"{policy.kind.value}: {report.matched} complaints due for notification")

    admin_emails = [admin.email for admin in await get_admins(db)]
    outgoing: list[OutgoingEmail] = []

    for complaint in complaints:
        try:
            async with db.begin_nested():
                email = await process_complaint(db, policy, complaint, admin_emails, now)
        except Exception as e:
            report.failed += 1
            logger.error(
                f"Error processing {policy.kind.value} for complaint {complaint.complaint_number}: {e}",
                exc_info=True,
                extra={"complaint_id": str(complaint.id)},
            )
            continue
        report.processed += 1
        if email:
            outgoing.append(email)

    if policy.kind == SweepKind.BREACH:
        try:
            async with db.begin_nested():
                report.summary_notifications = await send_breach_summaries(db, now)
        except Exception as e:
            logger.error(f"Error notifying admins of SLA breaches: {e}", exc_info=True)

    await db.commit()
    return outgoing


async def run_all_sweeps(
    db: AsyncSession,
    clock: Clock = system_clock,
    email_service: Optional[EmailService] = None,
) -> SweepRunReport:
    """1-hour reminders, 2-hour reminders, then breaches, at one instant."""
    now = clock.now()
    run = SweepRunReport(ran_at=now)
    for kind in (SweepKind.REMINDER_1H, SweepKind.REMINDER_2H, SweepKind.BREACH):
        run.reports.append(await run_sweep(db, kind, clock=clock, email_service=email_service))
    return run


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def run_scheduled_sweeps():
    """Scheduler job: all sweeps in a fresh session."""
    logger.info("Starting scheduled SLA sweeps...")
    try:
        async with async_session_maker() as db:
            run = await run_all_sweeps(db)
        logger.info(f"Scheduled SLA sweeps complete. Processed: {run.processed}, Errors: {run.failed}")
    except Exception as e:
        logger.error(f"Fatal error in scheduled SLA sweeps: {e}", exc_info=True)


def start_sla_scheduler():
    """Start the in-process SLA trigger."""
    global scheduler

    scheduler = get_scheduler()
    scheduler.add_job(
        run_scheduled_sweeps,
        IntervalTrigger(hours=settings.SLA_SWEEP_INTERVAL_HOURS),
        id="sla_sweeps",
        name="SLA reminder and breach sweeps",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("SLA scheduler started")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")


def stop_sla_scheduler():
    """Stop the SLA scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("SLA scheduler stopped")
