"""Complaints API - intake, assignment, status and audit trail."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from typing import Annotated, Optional
import uuid
import logging

from app.api.deps import ClockDep, CurrentUser, DbSession, EmailSender
from app.exceptions import BusinessRuleError, ErrorCode, ForbiddenError, NotFoundError, ValidationError
from app.models.complaint import Complaint, ComplaintAction
from app.models.lookups import ComplaintStatus
from app.models.user import User
from app.schemas.complaint import (
    ActionCreate,
    ActionResponse,
    AssignRequest,
    ComplaintCreate,
    ComplaintListResponse,
    ComplaintResponse,
    ComplaintUpdate,
    StatusChangeRequest,
    UserSummary,
)
from app.security.rbac import Permission, can_access_complaint, has_permission
from app.services import complaint_service
from app.services.assignment_service import AssignmentDispatcher, AssignmentOutcome, get_dispatcher
from app.services.notification_service import deliver_emails

logger = logging.getLogger(__name__)
router = APIRouter()

Dispatcher = Annotated[AssignmentDispatcher, Depends(get_dispatcher)]


def _user_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(id=user.id, name=user.name, email=user.email)


def complaint_to_response(complaint: Complaint) -> ComplaintResponse:
    """Convert Complaint model to response schema."""
    return ComplaintResponse(
        id=complaint.id,
        complaint_number=complaint.complaint_number,
        customer_name=complaint.customer_name,
        customer_id=complaint.customer_id,
        policy_number=complaint.policy_number,
        policy_type=complaint.policy_type,
        description=complaint.description,
        channel=complaint.channel,
        status=complaint.current_status.value if complaint.current_status else None,
        type_id=complaint.type_id,
        type_name=complaint.type.name if complaint.type else None,
        branch_id=complaint.branch_id,
        branch_name=complaint.branch.name if complaint.branch else None,
        line_of_business_id=complaint.line_of_business_id,
        line_of_business_name=complaint.line_of_business.name if complaint.line_of_business else None,
        assigned_to=_user_summary(complaint.assigned_to),
        created_by=_user_summary(complaint.created_by),
        created_at=complaint.created_at,
        updated_at=complaint.updated_at,
        due_date=complaint.due_date,
        resolved_at=complaint.resolved_at,
    )


def action_to_response(action: ComplaintAction) -> ActionResponse:
    return ActionResponse(
        id=action.id,
        complaint_id=action.complaint_id,
        user_id=action.user_id,
        user_name=action.user.name if action.user else None,
        description=action.description,
        created_at=action.created_at,
    )


async def _get_accessible_complaint(db, complaint_id: uuid.UUID, user: User) -> Complaint:
    complaint = await complaint_service.load_complaint(db, complaint_id)
    if not complaint:
        raise NotFoundError("Complaint", complaint_id)
    if not can_access_complaint(user, complaint):
        raise ForbiddenError("You do not have access to this complaint")
    return complaint


@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    db: DbSession,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    status: Optional[ComplaintStatus] = None,
    branch_id: Optional[int] = None,
):
    """List complaints. Agents only see complaints assigned to them."""
    complaints, total = await complaint_service.list_complaints(
        db, current_user, page=page, page_size=page_size, status=status, branch_id=branch_id
    )
    return ComplaintListResponse(
        items=[complaint_to_response(c) for c in complaints],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
async def create_complaint(
    complaint_data: ComplaintCreate,
    db: DbSession,
    current_user: CurrentUser,
    clock: ClockDep,
    dispatcher: Dispatcher,
    email_service: EmailSender,
    background_tasks: BackgroundTasks,
):
    """
    Create a complaint and immediately try to assign it.

    The complaint is returned whether or not an agent was found; when none is
    eligible every admin gets an ASSIGNMENT_NEEDED notification.
    """
    complaint = await complaint_service.create_complaint(db, complaint_data, current_user, clock.now())

    result = await dispatcher.assign(db, complaint.id, current_user)
    if result.outcome == AssignmentOutcome.NO_ELIGIBLE_AGENT:
        await dispatcher.escalate_unassigned(db, result.complaint)

    emails = await complaint_service.creation_emails(db, result.complaint, result.assignee)
    emails.extend(result.emails)
    if emails:
        background_tasks.add_task(deliver_emails, email_service, emails)

    return complaint_to_response(result.complaint)


@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: uuid.UUID,
    db: DbSession,
    current_user: CurrentUser,
):
    """Get a single complaint (admin, creator or assignee)."""
    complaint = await _get_accessible_complaint(db, complaint_id, current_user)
    return complaint_to_response(complaint)


@router.put("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: uuid.UUID,
    complaint_data: ComplaintUpdate,
    db: DbSession,
    current_user: CurrentUser,
    clock: ClockDep,
):
    """Edit complaint details. Due date and creation time cannot change."""
    complaint = await _get_accessible_complaint(db, complaint_id, current_user)
    changes = complaint_data.model_dump(exclude_unset=True, exclude_none=True)
    complaint = await complaint_service.update_complaint(db, complaint, changes, current_user, clock.now())
    return complaint_to_response(complaint)


@router.post("/{complaint_id}/status", response_model=ComplaintResponse)
async def change_complaint_status(
    complaint_id: uuid.UUID,
    request: StatusChangeRequest,
    db: DbSession,
    current_user: CurrentUser,
    clock: ClockDep,
):
    """Move a complaint to another status (admin, creator or assignee)."""
    complaint = await _get_accessible_complaint(db, complaint_id, current_user)
    complaint = await complaint_service.change_status(db, complaint, request.status, current_user, clock.now())
    return complaint_to_response(complaint)


@router.post("/{complaint_id}/assign", response_model=ComplaintResponse)
async def assign_complaint(
    complaint_id: uuid.UUID,
    request: AssignRequest,
    db: DbSession,
    current_user: CurrentUser,
    dispatcher: Dispatcher,
    email_service: EmailSender,
    background_tasks: BackgroundTasks,
):
    """
    Assign a complaint.

    With assigned_to_id (admins only) the given user is assigned as-is.
    Without it the least-loaded eligible agent is chosen; if there is none,
    admins are notified and 400 is returned.
    """
    result = await dispatcher.assign(db, complaint_id, current_user, manual_assignee_id=request.assigned_to_id)

    if result.outcome == AssignmentOutcome.NO_ELIGIBLE_AGENT:
        await dispatcher.escalate_unassigned(db, result.complaint)
        raise BusinessRuleError("No suitable user found for assignment", code=ErrorCode.NO_ELIGIBLE_AGENT)

    if result.emails:
        background_tasks.add_task(deliver_emails, email_service, result.emails)
    return complaint_to_response(result.complaint)


@router.get("/{complaint_id}/actions", response_model=list[ActionResponse])
async def list_complaint_actions(
    complaint_id: uuid.UUID,
    db: DbSession,
    current_user: CurrentUser,
):
    """Audit trail, oldest first."""
    await _get_accessible_complaint(db, complaint_id, current_user)
    actions = await complaint_service.list_actions(db, complaint_id)
    return [action_to_response(a) for a in actions]


@router.post("/{complaint_id}/actions", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def add_complaint_action(
    complaint_id: uuid.UUID,
    action_data: ActionCreate,
    db: DbSession,
    current_user: CurrentUser,
    clock: ClockDep,
):
    """Record work done on a complaint. Agents may only add to complaints assigned to them."""
    complaint = await complaint_service.load_complaint(db, complaint_id)
    if not complaint or (not has_permission(current_user, Permission.VIEW_ALL_COMPLAINTS) and complaint.assigned_to_id != current_user.id):
        raise HTTPException(status_code=404, detail="Complaint not found or access denied")

    if not action_data.description.strip():
        raise ValidationError(
            "Action description is required",
            errors=[{"field": "body.description", "message": "must not be blank", "type": "value_error"}],
        )

    action = await complaint_service.append_action(db, complaint, current_user, action_data.description, clock.now())
    return action_to_response(action)
