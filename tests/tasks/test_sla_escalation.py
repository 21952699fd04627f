"""
Tests for the SLA reminder and breach sweeps.

Everything runs against a FixedClock, so window edges are exact.
"""

import asyncio
from datetime import timedelta

import pytest
from unittest.mock import patch
from sqlalchemy import select

from app.models.lookups import ComplaintStatus
from app.models.notification import Notification, NotificationType
from app.services import email_templates
from app.tasks import sla_escalation
from app.tasks.sla_escalation import (
    SweepKind,
    SWEEP_POLICIES,
    count_breaching,
    eligible_complaints_query,
    run_all_sweeps,
    run_sweep,
)

from tests.conftest import T0


async def _notifications(db, **filters):
    result = await db.execute(select(Notification).filter_by(**filters).order_by(Notification.user_id, Notification.created_at))
    return list(result.scalars().all())


async def _eligible(db, kind, now):
    result = await db.execute(eligible_complaints_query(SWEEP_POLICIES[kind], now))
    return list(result.scalars().all())


class TestReminderWindows:

    @pytest.mark.asyncio
    async def test_one_hour_window_edges(self, test_db, clock, agent, make_complaint):
        now = clock.now()
        at_lower_edge = await make_complaint(created_at=now - timedelta(hours=2), assigned_to=agent)
        inside = await make_complaint(created_at=now - timedelta(minutes=70), assigned_to=agent)
        await make_complaint(created_at=now - timedelta(hours=1), assigned_to=agent)  # exactly 1h: too young
        await make_complaint(created_at=now - timedelta(hours=2, seconds=1), assigned_to=agent)

        eligible = await _eligible(test_db, SweepKind.REMINDER_1H, now)

        assert [c.id for c in eligible] == [at_lower_edge.id, inside.id]

    @pytest.mark.asyncio
    async def test_two_hour_window(self, test_db, clock, agent, make_complaint):
        now = clock.now()
        three_hours = await make_complaint(created_at=now - timedelta(hours=3), assigned_to=agent)
        await make_complaint(created_at=now - timedelta(minutes=90), assigned_to=agent)
        await make_complaint(created_at=now - timedelta(hours=5), assigned_to=agent)

        eligible = await _eligible(test_db, SweepKind.REMINDER_2H, now)

        assert [c.id for c in eligible] == [three_hours.id]

    @pytest.mark.asyncio
    async def test_reminder_notifies_assignee_and_creator(self, test_db, clock, admin, agent, make_complaint, mock_email):
        complaint = await make_complaint(created_at=clock.now() - timedelta(minutes=70), assigned_to=agent)

        report = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)

        assert (report.matched, report.processed, report.failed) == (1, 1, 0)
        rows = await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.SLA_REMINDER_1H)
        assert sorted(n.user_id for n in rows) == sorted([admin.id, agent.id])
        assert {n.title for n in rows} == {"SLA Reminder - 1 Hour"}
        by_user = {n.user_id: n.message for n in rows}
        assert by_user[agent.id] == f"Complaint {complaint.complaint_number} is still unresolved after 1 hour"
        assert by_user[admin.id] == f"Complaint {complaint.complaint_number} you created is still unresolved after 1 hour"

        # Creator is also an admin: one address, once
        assert report.emails_sent == 1
        assert len(mock_email._sent_emails) == 1
        assert mock_email._sent_emails[0]["to"] == ["agent@example.com", "admin@example.com"]
        assert mock_email._sent_emails[0]["subject"] == f"SLA Reminder - {complaint.complaint_number}"

    @pytest.mark.asyncio
    async def test_unassigned_complaint_notifies_creator_only(self, test_db, clock, admin, make_complaint, mock_email):
        complaint = await make_complaint(created_at=clock.now() - timedelta(hours=3))

        report = await run_sweep(test_db, SweepKind.REMINDER_2H, clock=clock, email_service=mock_email)

        assert report.processed == 1
        rows = await _notifications(test_db, complaint_id=complaint.id)
        assert [n.user_id for n in rows] == [admin.id]
        assert rows[0].message.endswith("after 3 hours")

    @pytest.mark.asyncio
    async def test_creator_who_is_assignee_gets_one_notification(self, test_db, clock, agent, make_complaint, mock_email):
        complaint = await make_complaint(
            created_at=clock.now() - timedelta(minutes=70), assigned_to=agent, created_by=agent
        )

        await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)

        rows = await _notifications(test_db, complaint_id=complaint.id)
        assert [n.user_id for n in rows] == [agent.id]


class TestIdempotence:

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, test_db, clock, agent, make_complaint, mock_email):
        await make_complaint(created_at=clock.now() - timedelta(minutes=70), assigned_to=agent)
        await make_complaint(created_at=clock.now() - timedelta(minutes=100), assigned_to=agent)

        first = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)
        second = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)

        assert first.processed == 2
        assert (second.matched, second.processed, second.emails_sent) == (0, 0, 0)
        assert len(await _notifications(test_db, type=NotificationType.SLA_REMINDER_1H)) == 4

    @pytest.mark.asyncio
    async def test_breach_dedup_window_boundary(self, test_db, clock, agent, make_complaint, mock_email):
        complaint = await make_complaint(
            created_at=clock.now() - timedelta(days=3),
            due_date=clock.now() - timedelta(minutes=1),
            assigned_to=agent,
        )

        assert (await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)).processed == 1

        clock.advance(hours=24, seconds=-1)
        assert (await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)).processed == 0

        clock.advance(seconds=1)
        assert (await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)).processed == 1

        rows = await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.SLA_BREACH)
        assert [n.created_at for n in rows if n.user_id == agent.id] == [T0, T0 + timedelta(hours=24)]

    @pytest.mark.asyncio
    async def test_dedup_is_per_sweep_type(self, test_db, clock, agent, make_complaint, mock_email):
        # Old enough for the 2h window and already overdue
        complaint = await make_complaint(
            created_at=clock.now() - timedelta(hours=3),
            due_date=clock.now() - timedelta(minutes=5),
            assigned_to=agent,
        )

        run = await run_all_sweeps(test_db, clock=clock, email_service=mock_email)

        assert [r.kind for r in run.reports] == [SweepKind.REMINDER_1H, SweepKind.REMINDER_2H, SweepKind.BREACH]
        assert [r.processed for r in run.reports] == [0, 1, 1]
        assert run.processed == 2
        types = {n.type for n in await _notifications(test_db, complaint_id=complaint.id)}
        assert types == {NotificationType.SLA_REMINDER_2H, NotificationType.SLA_BREACH}


class TestStatusGate:

    @pytest.mark.asyncio
    async def test_resolved_complaints_are_never_swept(self, test_db, clock, agent, make_complaint, mock_email):
        now = clock.now()
        for created_at in (now - timedelta(minutes=70), now - timedelta(hours=3), now - timedelta(days=5)):
            await make_complaint(created_at=created_at, assigned_to=agent, status=ComplaintStatus.RESOLVED)

        run = await run_all_sweeps(test_db, clock=clock, email_service=mock_email)

        assert run.processed == 0
        assert await count_breaching(test_db, now) == 0
        assert await _notifications(test_db) == []

    @pytest.mark.asyncio
    async def test_closed_complaints_are_still_swept(self, test_db, clock, agent, make_complaint, mock_email):
        await make_complaint(
            created_at=clock.now() - timedelta(days=5), assigned_to=agent, status=ComplaintStatus.CLOSED
        )

        report = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)

        assert report.processed == 1


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_failure_on_one_complaint_does_not_stop_the_sweep(self, test_db, clock, agent, make_complaint, mock_email):
        broken = await make_complaint(created_at=clock.now() - timedelta(minutes=100), assigned_to=agent)
        healthy = await make_complaint(created_at=clock.now() - timedelta(minutes=70), assigned_to=agent)
        original = email_templates.sla_reminder

        def render(complaint, hours):
            if complaint.id == broken.id:
                raise RuntimeError("template exploded")
            return original(complaint, hours)

        with patch.object(email_templates, "sla_reminder", side_effect=render):
            report = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)

        assert (report.matched, report.processed, report.failed) == (2, 1, 1)
        assert await _notifications(test_db, complaint_id=broken.id) == []
        assert len(await _notifications(test_db, complaint_id=healthy.id)) == 2

        # Nothing was recorded for the broken one, so the next run picks it up
        retry = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)
        assert retry.processed == 1
        assert len(await _notifications(test_db, complaint_id=broken.id)) == 2

    @pytest.mark.asyncio
    async def test_email_failure_keeps_notifications(self, test_db, clock, agent, make_complaint, mock_email):
        a = await make_complaint(created_at=clock.now() - timedelta(minutes=100), assigned_to=agent)
        b = await make_complaint(created_at=clock.now() - timedelta(minutes=70), assigned_to=agent)
        original = mock_email.send_email

        async def send_email(to, subject, html_body, **kwargs):
            if a.complaint_number in subject:
                return {"success": False, "error": "mailbox unavailable"}
            return await original(to=to, subject=subject, html_body=html_body)

        mock_email.send_email = send_email
        report = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)

        assert report.processed == 2
        assert (report.emails_sent, report.emails_failed) == (1, 1)
        assert len(await _notifications(test_db, complaint_id=a.id)) == 2
        assert len(await _notifications(test_db, complaint_id=b.id)) == 2

        # The failed email does not make the complaint eligible again
        again = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)
        assert again.matched == 0

    @pytest.mark.asyncio
    async def test_summary_failure_keeps_breach_alerts(self, test_db, clock, admin, agent, make_complaint, mock_email):
        complaint = await make_complaint(
            created_at=clock.now() - timedelta(days=3), due_date=clock.now() - timedelta(hours=1), assigned_to=agent
        )

        with patch.object(sla_escalation, "send_breach_summaries", side_effect=RuntimeError("summary query failed")):
            report = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)

        assert (report.processed, report.failed, report.summary_notifications) == (1, 0, 0)
        assert report.emails_sent == len(mock_email._sent_emails) == 1
        assert len(await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.SLA_BREACH)) == 2

        # The summary is still owed; the breach alert is not repeated
        retry = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)
        assert (retry.processed, retry.summary_notifications) == (0, 1)


class TestBreachSummary:

    @pytest.mark.asyncio
    async def test_one_summary_per_admin_per_day(self, test_db, clock, admin, agent, make_user, make_complaint, mock_email):
        second_admin = await make_user(role="ADMIN")
        for minutes in (5, 50):
            await make_complaint(
                created_at=clock.now() - timedelta(days=3),
                due_date=clock.now() - timedelta(minutes=minutes),
                assigned_to=agent,
            )

        report = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)

        assert report.summary_notifications == 2
        summaries = await _notifications(test_db, type=NotificationType.SLA_BREACH_SUMMARY)
        assert [n.user_id for n in summaries] == sorted([admin.id, second_admin.id])
        assert summaries[0].message == "2 complaints have breached their SLA deadline"
        assert summaries[0].complaint_id is None

        # A new breach an hour later: per-complaint alert yes, summary no
        clock.advance(hours=1)
        await make_complaint(created_at=T0 - timedelta(days=3), due_date=clock.now() - timedelta(minutes=1))
        later = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)
        assert later.processed == 1
        assert later.summary_notifications == 0

        clock.set(T0 + timedelta(hours=24))
        next_day = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)
        assert next_day.summary_notifications == 2

    @pytest.mark.asyncio
    async def test_no_summary_without_breaches(self, test_db, clock, admin, agent, make_complaint, mock_email):
        await make_complaint(created_at=clock.now() - timedelta(hours=3), assigned_to=agent)

        report = await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)

        assert report.summary_notifications == 0
        assert await _notifications(test_db, type=NotificationType.SLA_BREACH_SUMMARY) == []


class TestOverlappingTriggers:

    @pytest.mark.asyncio
    async def test_simultaneous_runs_notify_once(self, session_factory, test_db, clock, agent, make_complaint, mock_email):
        complaint = await make_complaint(created_at=clock.now() - timedelta(minutes=70), assigned_to=agent)

        async def sweep():
            async with session_factory() as db:
                return await run_sweep(db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)

        reports = await asyncio.gather(sweep(), sweep())

        assert sorted(r.processed for r in reports) == [0, 1]
        assert len(await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.SLA_REMINDER_1H)) == 2
        assert len(mock_email._sent_emails) == 1

    @pytest.mark.asyncio
    async def test_different_kinds_do_not_wait_for_each_other(self):
        assert sla_escalation._sweep_lock(SweepKind.BREACH) is sla_escalation._sweep_lock(SweepKind.BREACH)
        assert sla_escalation._sweep_lock(SweepKind.BREACH) is not sla_escalation._sweep_lock(SweepKind.REMINDER_1H)


@pytest.mark.asyncio
async def test_complaint_lifecycle_from_assignment_to_breach(test_db, clock, dispatcher, org, admin, make_user, make_complaint, mock_email):
    """Assignment at T0, one 1h reminder, then a breach two days later."""
    loaded = await make_user(branch=org.branch, line_of_business=org.lob)
    light = await make_user(branch=org.branch, line_of_business=org.lob)
    # Old open work: counts towards workload but sits outside every sweep window
    backlog = dict(created_at=T0 - timedelta(days=10), due_date=T0 + timedelta(days=30))
    for _ in range(3):
        await make_complaint(assigned_to=loaded, **backlog)
    await make_complaint(assigned_to=light, **backlog)

    complaint = await make_complaint(created_at=T0, due_date=T0 + timedelta(days=2))
    result = await dispatcher.assign(test_db, complaint.id, admin)
    assert result.assignee.id == light.id
    assert len(await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.ASSIGNMENT)) == 1

    clock.set(T0 + timedelta(minutes=70))
    await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)
    reminders = await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.SLA_REMINDER_1H)
    assert sorted(n.user_id for n in reminders) == sorted([light.id, admin.id])

    clock.set(T0 + timedelta(minutes=80))
    again = await run_sweep(test_db, SweepKind.REMINDER_1H, clock=clock, email_service=mock_email)
    assert again.processed == 0

    clock.set(T0 + timedelta(days=2, minutes=1))
    await run_sweep(test_db, SweepKind.BREACH, clock=clock, email_service=mock_email)
    breaches = await _notifications(test_db, complaint_id=complaint.id, type=NotificationType.SLA_BREACH)
    assert sorted(n.user_id for n in breaches) == sorted([light.id, admin.id])
    assert breaches[0].title == "SLA Breach Alert"


class TestScheduler:

    @pytest.mark.asyncio
    async def test_start_registers_single_interval_job(self, monkeypatch):
        monkeypatch.setattr(sla_escalation, "scheduler", None)
        try:
            sla_escalation.start_sla_scheduler()
            sla_escalation.start_sla_scheduler()  # idempotent

            jobs = sla_escalation.get_scheduler().get_jobs()
            assert [job.id for job in jobs] == ["sla_sweeps"]
            assert jobs[0].max_instances == 1
            assert jobs[0].trigger.interval == timedelta(hours=2)
        finally:
            sla_escalation.stop_sla_scheduler()

        assert not sla_escalation.get_scheduler().running

    @pytest.mark.asyncio
    async def test_scheduled_run_swallows_errors(self, monkeypatch):
        def broken_session():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(sla_escalation, "async_session_maker", broken_session)

        await sla_escalation.run_scheduled_sweeps()
