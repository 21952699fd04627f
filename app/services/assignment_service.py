"""
Assignment dispatcher: routes a complaint to the least-loaded eligible agent.

Eligible = active AGENT in the complaint's branch and line of business.
Workload = complaints assigned to the agent whose status is PENDING or
IN_PROGRESS. Ties go to the lowest user id so the choice is reproducible.

The dispatcher commits its own transaction (assignment, then notification,
then audit action) and hands back the assignment email for the caller to
deliver after commit. Selection for one (branch, line of business) pair is
serialized: an in-process asyncio.Lock per pair, plus SELECT ... FOR UPDATE on
the candidate rows for PostgreSQL deployments running several workers.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, system_clock
from app.exceptions import ForbiddenError, NotFoundError
from app.models.complaint import Complaint
from app.models.lookups import ACTIVE_STATUSES, ComplaintStatusRecord, status_names
from app.models.notification import NotificationType
from app.models.user import User
from app.security.rbac import Permission, Role, has_permission
from app.services import email_templates
from app.services.complaint_service import load_complaint
from app.services.notification_service import (
    OutgoingEmail,
    add_action,
    add_notification,
    notify_admins,
)

logger = logging.getLogger(__name__)


class AssignmentOutcome(str, Enum):
    ASSIGNED = "ASSIGNED"
    MANUALLY_ASSIGNED = "MANUALLY_ASSIGNED"
    NO_ELIGIBLE_AGENT = "NO_ELIGIBLE_AGENT"


@dataclass
class AssignmentResult:
    """What the dispatcher did, plus emails still to be sent."""

    outcome: AssignmentOutcome
    complaint: Complaint
    assignee: Optional[User] = None
    active_count: Optional[int] = None  # assignee workload before this assignment (automatic only)
    emails: list[OutgoingEmail] = field(default_factory=list)

    @property
    def assigned(self) -> bool:
        return self.outcome != AssignmentOutcome.NO_ELIGIBLE_AGENT


@dataclass
class Candidate:
    user_id: int
    active_count: int


class AssignmentDispatcher:
    """Least-loaded assignment with manual override."""

    def __init__(self, clock: Clock = system_clock):
        self.clock = clock
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}

    def _lock_for(self, branch_id: int, line_of_business_id: int) -> asyncio.Lock:
        key = (branch_id, line_of_business_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def find_candidates(
        self, db: AsyncSession, branch_id: int, line_of_business_id: int
    ) -> list[Candidate]:
        """
        Eligible agents ordered by (active workload, user id).

        Candidate rows are locked first; Postgres refuses FOR UPDATE together
        with GROUP BY, so workload is counted in a second query.
        """
        locked = await db.execute(
            select(User.id)
            .where(
                User.role == Role.AGENT.value,
                User.is_active == True,  # noqa: E712
                User.branch_id == branch_id,
                User.line_of_business_id == line_of_business_id,
            )
            .order_by(User.id)
            .with_for_update()
        )
        user_ids = list(locked.scalars().all())
        if not user_ids:
            return []

        counts_result = await db.execute(
            select(Complaint.assigned_to_id, func.count(Complaint.id))
            .join(ComplaintStatusRecord, Complaint.status_id == ComplaintStatusRecord.id)
            .where(
                Complaint.assigned_to_id.in_(user_ids),
                ComplaintStatusRecord.name.in_(status_names(ACTIVE_STATUSES)),
            )
            .group_by(Complaint.assigned_to_id)
        )
        counts = dict(counts_result.all())

        candidates = [Candidate(user_id=uid, active_count=counts.get(uid, 0)) for uid in user_ids]
        candidates.sort(key=lambda c: (c.active_count, c.user_id))
        return candidates

    async def assign(
        self,
        db: AsyncSession,
        complaint_id: uuid.UUID,
        actor: User,
        manual_assignee_id: Optional[int] = None,
    ) -> AssignmentResult:
        """
        Assign a complaint.

        With manual_assignee_id the actor must be an admin and the assignee is
        taken as given (no branch or line of business check). Without it the
        least-loaded eligible agent is chosen; when there is none the complaint
        is left untouched and the outcome is NO_ELIGIBLE_AGENT.

        Raises:
            ForbiddenError: manual assignment by a non-admin
            NotFoundError: unknown complaint, assignee, branch or line of business
        """
        if manual_assignee_id is not None:
            return await self._assign_manually(db, complaint_id, actor, manual_assignee_id)
        return await self._assign_automatically(db, complaint_id, actor)

    async def _assign_manually(
        self, db: AsyncSession, complaint_id: uuid.UUID, actor: User, assignee_id: int
    ) -> AssignmentResult:
        if not has_permission(actor, Permission.ASSIGN_COMPLAINTS):
            logger.warning(
                f"Manual assignment refused for user {actor.id}",
                extra={"user_id": actor.id, "complaint_id": str(complaint_id)},
            )
            raise ForbiddenError("Only admins can assign complaints manually")

        complaint = await load_complaint(db, complaint_id)
        if complaint is None:
            raise NotFoundError("Complaint", complaint_id)

        assignee = await db.get(User, assignee_id)
        if assignee is None:
            raise NotFoundError("User", assignee_id)

        now = self.clock.now()
        complaint.assigned_to_id = assignee.id
        complaint.updated_at = now
        add_notification(
            db,
            user_id=assignee.id,
            complaint_id=complaint.id,
            type=NotificationType.ASSIGNMENT,
            title="Complaint Assigned",
            message=f"Complaint {complaint.complaint_number} has been assigned to you",
            now=now,
        )
        add_action(
            db,
            complaint_id=complaint.id,
            user_id=actor.id,
            description=f"Manually assigned to {assignee.name} by {actor.name}",
            now=now,
        )
        await db.commit()

        logger.info(
            f"Complaint {complaint.complaint_number} manually assigned to user {assignee.id}",
            extra={"complaint_id": str(complaint.id), "assignee_id": assignee.id, "actor_id": actor.id},
        )
        complaint = await load_complaint(db, complaint.id)
        return AssignmentResult(
            outcome=AssignmentOutcome.MANUALLY_ASSIGNED,
            complaint=complaint,
            assignee=assignee,
            emails=self._assignment_emails(complaint, assignee),
        )

    async def _assign_automatically(
        self, db: AsyncSession, complaint_id: uuid.UUID, actor: User
    ) -> AssignmentResult:
        complaint = await load_complaint(db, complaint_id)
        if complaint is None:
            raise NotFoundError("Complaint", complaint_id)
        if complaint.branch is None:
            raise NotFoundError("Branch", complaint.branch_id)
        if complaint.line_of_business is None:
            raise NotFoundError("Line of business", complaint.line_of_business_id)

        async with self._lock_for(complaint.branch_id, complaint.line_of_business_id):
            candidates = await self.find_candidates(db, complaint.branch_id, complaint.line_of_business_id)
            if not candidates:
                # Nothing to write; end the transaction to release row locks
                await db.commit()
                logger.warning(
                    f"No eligible agent for complaint {complaint.complaint_number}",
                    extra={
                        "complaint_id": str(complaint.id),
                        "branch_id": complaint.branch_id,
                        "line_of_business_id": complaint.line_of_business_id,
                    },
                )
                return AssignmentResult(outcome=AssignmentOutcome.NO_ELIGIBLE_AGENT, complaint=complaint)

            chosen = candidates[0]
            assignee = await db.get(User, chosen.user_id)
            now = self.clock.now()

            complaint.assigned_to_id = assignee.id
            complaint.updated_at = now
            add_notification(
                db,
                user_id=assignee.id,
                complaint_id=complaint.id,
                type=NotificationType.ASSIGNMENT,
                title="New Complaint Assigned",
                message=f"Complaint {complaint.complaint_number} has been assigned to you",
                now=now,
            )
            add_action(
                db,
                complaint_id=complaint.id,
                user_id=actor.id,
                description=f"Automatically assigned to {assignee.name}",
                now=now,
            )
            await db.commit()

        logger.info(
            f"Complaint {complaint.complaint_number} assigned to user {assignee.id} "
            f"({chosen.active_count} active)",
            extra={"complaint_id": str(complaint.id), "assignee_id": assignee.id},
        )
        complaint = await load_complaint(db, complaint.id)
        return AssignmentResult(
            outcome=AssignmentOutcome.ASSIGNED,
            complaint=complaint,
            assignee=assignee,
            active_count=chosen.active_count,
            emails=self._assignment_emails(complaint, assignee),
        )

    @staticmethod
    def _assignment_emails(complaint: Complaint, assignee: User) -> list[OutgoingEmail]:
        if not assignee.email:
            return []
        subject, html = email_templates.complaint_assignment(complaint, assignee)
        return [OutgoingEmail(to=[assignee.email], subject=subject, html=html, reference=complaint.complaint_number)]

    async def escalate_unassigned(self, db: AsyncSession, complaint: Complaint) -> int:
        """Tell every admin the complaint needs a manual assignment. Commits; returns admins notified."""
        branch = complaint.branch.name if complaint.branch else complaint.branch_id
        lob = complaint.line_of_business.name if complaint.line_of_business else complaint.line_of_business_id
        notified = await notify_admins(
            db,
            type=NotificationType.ASSIGNMENT_NEEDED,
            title="Complaint Requires Assignment",
            message=(
                f"Complaint {complaint.complaint_number} requires manual assignment. "
                f"No suitable agent found for {branch} branch and {lob} line of business."
            ),
            now=self.clock.now(),
            complaint_id=complaint.id,
        )
        await db.commit()
        logger.info(
            f"Escalated unassigned complaint {complaint.complaint_number} to {notified} admin(s)",
            extra={"complaint_id": str(complaint.id)},
        )
        return notified


dispatcher = AssignmentDispatcher()


def get_dispatcher() -> AssignmentDispatcher:
    """FastAPI dependency; tests override it to inject a FixedClock."""
    return dispatcher
