"""Notifications API - the caller's own in-app notifications.

Notifications are written by complaint creation, assignment and the SLA
sweeps; users can only read, mark read and delete their own.
"""

from fastapi import APIRouter, Query, HTTPException
from uuid import UUID

from sqlalchemy import select, func, and_, update

from app.api.deps import ClockDep, CurrentUser, DbSession
from app.models.notification import Notification
from app.schemas.notification import NotificationListResponse, NotificationResponse, NotificationStats

router = APIRouter()

MAX_LIMIT = 200


async def _get_own_notification(db, notification_id: UUID, user_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(and_(Notification.id == notification_id, Notification.user_id == user_id))
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user: CurrentUser,
    db: DbSession,
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    offset: int = Query(0, ge=0),
    unread_only: bool = False,
):
    """List notifications for the current user, newest first."""
    query = select(Notification).where(Notification.user_id == current_user.id)

    if unread_only:
        query = query.where(Notification.read == False)  # noqa: E712

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    query = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    notifications = result.scalars().all()

    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=NotificationStats)
async def get_notification_stats(
    current_user: CurrentUser,
    db: DbSession,
):
    """Get notification statistics for the current user."""
    total_result = await db.execute(
        select(func.count(Notification.id)).where(Notification.user_id == current_user.id)
    )
    total = total_result.scalar() or 0

    unread_result = await db.execute(
        select(func.count(Notification.id)).where(
            and_(Notification.user_id == current_user.id, Notification.read == False)  # noqa: E712
        )
    )
    unread = unread_result.scalar() or 0

    return NotificationStats(total=total, unread=unread)


@router.post("/read-all")
async def mark_all_notifications_read(
    current_user: CurrentUser,
    db: DbSession,
    clock: ClockDep,
):
    """Mark all notifications as read."""
    result = await db.execute(
        update(Notification)
        .where(and_(Notification.user_id == current_user.id, Notification.read == False))  # noqa: E712
        .values(read=True, read_at=clock.now())
    )
    count = result.rowcount or 0
    await db.commit()

    return {"success": True, "count": count}


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
):
    notification = await _get_own_notification(db, notification_id, current_user.id)
    return NotificationResponse.model_validate(notification)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    clock: ClockDep,
):
    """Mark a notification as read. read_at keeps the first read time."""
    notification = await _get_own_notification(db, notification_id, current_user.id)

    if not notification.read:
        notification.read = True
        notification.read_at = clock.now()
        await db.commit()

    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
):
    """Delete a notification."""
    notification = await _get_own_notification(db, notification_id, current_user.id)

    await db.delete(notification)
    await db.commit()

    return {"success": True, "notification_id": str(notification_id)}
