"""
Complaint lifecycle: creation, field edits, status transitions and listing.

Assignment lives in assignment_service; this module owns everything else that
mutates a complaint. Every mutation appends an audit action.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Integer, cast, select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import InvalidReferenceError
from app.models.branch import Branch, LineOfBusiness
from app.models.complaint import Complaint, ComplaintAction
from app.models.lookups import (
    ComplaintStatus,
    ComplaintStatusRecord,
    ComplaintType,
    get_status_record,
    seed_lookups,
)
from app.models.notification import NotificationType
from app.models.user import User
from app.schemas.complaint import ComplaintCreate
from app.security.rbac import Permission, Role, has_permission
from app.services import email_templates
from app.services.notification_service import (
    OutgoingEmail,
    add_action,
    add_notification,
    get_admins,
    unique_emails,
)

logger = logging.getLogger(__name__)

NUMBER_PREFIX = "COMP"
NUMBER_ATTEMPTS = 3


async def load_complaint(db: AsyncSession, complaint_id: uuid.UUID) -> Optional[Complaint]:
    """Fetch a complaint with fresh relationships (assignee, status, ...)."""
    result = await db.execute(
        select(Complaint)
        .where(Complaint.id == complaint_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def generate_complaint_number(db: AsyncSession, now: datetime) -> str:
    """COMP<year><sequence>, zero-padded to 5 digits and restarting every calendar year."""
    prefix = f"{NUMBER_PREFIX}{now.year}"
    sequence = cast(func.substr(Complaint.complaint_number, len(prefix) + 1), Integer)
    result = await db.execute(
        select(func.max(sequence)).where(Complaint.complaint_number.like(f"{prefix}%"))
    )
    seq = (result.scalar() or 0) + 1
    return f"{prefix}{seq:05d}"


async def _require(db: AsyncSession, model, resource_id, label: str):
    obj = await db.get(model, resource_id)
    if obj is None:
        raise InvalidReferenceError(label, resource_id)
    return obj


async def _status_record(db: AsyncSession, status: ComplaintStatus) -> ComplaintStatusRecord:
    record = await get_status_record(db, status)
    if record is None:
        # Fresh database without seeded lookups
        await seed_lookups(db)
        record = await get_status_record(db, status)
    return record


async def _insert_numbered(db: AsyncSession, complaint: Complaint, now: datetime) -> None:
    """Insert with the next free number, retrying when a concurrent insert took it first."""
    for attempt in range(1, NUMBER_ATTEMPTS + 1):
        complaint.complaint_number = await generate_complaint_number(db, now)
        try:
            async with db.begin_nested():
                db.add(complaint)
                await db.flush()
            return
        except IntegrityError:
            if attempt == NUMBER_ATTEMPTS:
                raise
            logger.warning(
                f"Complaint number {complaint.complaint_number} already taken, retrying",
                extra={"attempt": attempt},
            )


async def create_complaint(
    db: AsyncSession,
    data: ComplaintCreate,
    creator: User,
    now: datetime,
) -> Complaint:
    """
    Persist a new PENDING complaint with its creation action and the creator's
    COMPLAINT_CREATED notification. Commits. Assignment is a separate step.

    Raises InvalidReferenceError when type, branch or line of business is unknown.
    """
    await _require(db, ComplaintType, data.type_id, "complaint type")
    await _require(db, Branch, data.branch_id, "branch")
    await _require(db, LineOfBusiness, data.line_of_business_id, "line of business")

    pending = await _status_record(db, ComplaintStatus.PENDING)
    complaint = Complaint(
        id=uuid.uuid4(),
        customer_name=data.customer_name,
        customer_id=data.customer_id,
        policy_number=data.policy_number,
        policy_type=data.policy_type or "General",
        description=data.description,
        channel=data.channel or "WEB",
        type_id=data.type_id,
        status_id=pending.id,
        branch_id=data.branch_id,
        line_of_business_id=data.line_of_business_id,
        assigned_to_id=None,
        created_by_id=creator.id,
        created_at=now,
        due_date=now + timedelta(hours=settings.COMPLAINT_SLA_HOURS),
    )
    await _insert_numbered(db, complaint, now)
    number = complaint.complaint_number

    add_action(db, complaint_id=complaint.id, user_id=creator.id, description="Complaint created", now=now)
    add_notification(
        db,
        user_id=creator.id,
        complaint_id=complaint.id,
        type=NotificationType.COMPLAINT_CREATED,
        title="Complaint Created Successfully",
        message=f"Complaint {number} has been created and is being processed",
        now=now,
    )
    await db.commit()

    logger.info(
        f"Complaint {number} created",
        extra={"complaint_id": str(complaint.id), "created_by": creator.id},
    )
    return await load_complaint(db, complaint.id)


async def creation_emails(
    db: AsyncSession, complaint: Complaint, assignee: Optional[User] = None
) -> list[OutgoingEmail]:
    """New-complaint email to admins and the complaint's branch staff, minus the creator."""
    admins = await get_admins(db)
    result = await db.execute(
        select(User)
        .where(
            User.branch_id == complaint.branch_id,
            User.role.in_([Role.ADMIN.value, Role.AGENT.value]),
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.id)
    )
    branch_users = result.scalars().all()

    creator_email = (complaint.created_by.email if complaint.created_by else "").lower()
    recipients = [
        email
        for email in unique_emails([u.email for u in admins] + [u.email for u in branch_users])
        if email.lower() != creator_email
    ]
    if not recipients:
        return []

    subject, html = email_templates.complaint_created(complaint, assignee)
    return [OutgoingEmail(to=recipients, subject=subject, html=html, reference=complaint.complaint_number)]


async def update_complaint(
    db: AsyncSession,
    complaint: Complaint,
    changes: dict,
    actor: User,
    now: datetime,
) -> Complaint:
    """Apply a field edit and record it. Routing fields are validated."""
    if "type_id" in changes:
        await _require(db, ComplaintType, changes["type_id"], "complaint type")
    if "branch_id" in changes:
        await _require(db, Branch, changes["branch_id"], "branch")
    if "line_of_business_id" in changes:
        await _require(db, LineOfBusiness, changes["line_of_business_id"], "line of business")

    for field, value in changes.items():
        if field in ("due_date", "created_at", "resolved_at", "complaint_number"):
            continue
        setattr(complaint, field, value)
    complaint.updated_at = now

    add_action(db, complaint_id=complaint.id, user_id=actor.id, description="Complaint details updated", now=now)
    await db.commit()
    return await load_complaint(db, complaint.id)


async def change_status(
    db: AsyncSession,
    complaint: Complaint,
    new_status: ComplaintStatus,
    actor: User,
    now: datetime,
) -> Complaint:
    """
    Move a complaint to new_status.

    resolved_at is stamped on the first transition to RESOLVED only; reopening
    and resolving again keeps the original timestamp.
    """
    old_status = complaint.current_status
    record = await _status_record(db, new_status)

    complaint.status_id = record.id
    complaint.updated_at = now
    if new_status == ComplaintStatus.RESOLVED and complaint.resolved_at is None:
        complaint.resolved_at = now

    old_label = old_status.value if old_status else "UNKNOWN"
    add_action(
        db,
        complaint_id=complaint.id,
        user_id=actor.id,
        description=f"Status changed from {old_label} to {new_status.value}",
        now=now,
    )
    await db.commit()

    logger.info(
        f"Complaint {complaint.complaint_number} status {old_label} -> {new_status.value}",
        extra={"complaint_id": str(complaint.id), "user_id": actor.id},
    )
    return await load_complaint(db, complaint.id)


async def list_complaints(
    db: AsyncSession,
    user: User,
    page: int = 1,
    page_size: int = 50,
    status: Optional[ComplaintStatus] = None,
    branch_id: Optional[int] = None,
) -> tuple[list[Complaint], int]:
    """Newest first. Admins see everything; agents only what is assigned to them."""
    query = select(Complaint)
    if not has_permission(user, Permission.VIEW_ALL_COMPLAINTS):
        query = query.where(Complaint.assigned_to_id == user.id)
    if status:
        query = query.join(ComplaintStatusRecord, Complaint.status_id == ComplaintStatusRecord.id).where(
            ComplaintStatusRecord.name == status.value
        )
    if branch_id:
        query = query.where(Complaint.branch_id == branch_id)

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar()

    offset = (page - 1) * page_size
    query = query.order_by(Complaint.created_at.desc()).offset(offset).limit(page_size)
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def list_actions(db: AsyncSession, complaint_id: uuid.UUID) -> list[ComplaintAction]:
    result = await db.execute(
        select(ComplaintAction)
        .where(ComplaintAction.complaint_id == complaint_id)
        .order_by(ComplaintAction.created_at.asc())
    )
    return list(result.scalars().all())


async def append_action(
    db: AsyncSession, complaint: Complaint, actor: User, description: str, now: datetime
) -> ComplaintAction:
    action = add_action(
        db, complaint_id=complaint.id, user_id=actor.id, description=description.strip(), now=now
    )
    await db.commit()
    await db.refresh(action, ["user"])
    return action
