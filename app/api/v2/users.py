"""Users API - admin-managed staff accounts.

Agents need both a branch and a line of business to receive automatic
assignments; an agent missing either is accepted but never a candidate.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func
from typing import Annotated, Optional
import logging

from app.api.deps import DbSession, get_password_hash
from app.exceptions import ConflictError, InvalidReferenceError, NotFoundError
from app.models.branch import Branch, LineOfBusiness
from app.models.complaint import Complaint, ComplaintAction
from app.models.user import User
from app.schemas.auth import RoleType, UserCreate, UserResponse, UserUpdate
from app.security.rbac import Permission, require_permission

logger = logging.getLogger(__name__)
router = APIRouter()

UserManager = Annotated[User, Depends(require_permission(Permission.MANAGE_USERS))]


async def _check_references(db, branch_id: Optional[int], line_of_business_id: Optional[int]) -> None:
    if branch_id is not None and await db.get(Branch, branch_id) is None:
        raise InvalidReferenceError("branch", branch_id)
    if line_of_business_id is not None and await db.get(LineOfBusiness, line_of_business_id) is None:
        raise InvalidReferenceError("line of business", line_of_business_id)


async def _email_taken(db, email: str, exclude_id: Optional[int] = None) -> bool:
    query = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def _get_user_or_404(db, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    db: DbSession,
    admin: UserManager,
    role: Optional[RoleType] = None,
    branch_id: Optional[int] = None,
    line_of_business_id: Optional[int] = None,
    active_only: bool = Query(False),
):
    query = select(User)
    if role:
        query = query.where(User.role == role)
    if branch_id:
        query = query.where(User.branch_id == branch_id)
    if line_of_business_id:
        query = query.where(User.line_of_business_id == line_of_business_id)
    if active_only:
        query = query.where(User.is_active == True)  # noqa: E712
    result = await db.execute(query.order_by(User.name))
    return [UserResponse.from_db_user(u) for u in result.scalars().all()]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user_data: UserCreate, db: DbSession, admin: UserManager):
    if await _email_taken(db, user_data.email):
        raise ConflictError("Email already registered")
    await _check_references(db, user_data.branch_id, user_data.line_of_business_id)

    user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        name=user_data.name,
        role=user_data.role,
        branch_id=user_data.branch_id,
        line_of_business_id=user_data.line_of_business_id,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user, ["branch", "line_of_business"])

    logger.info(f"User created: {user.id} ({user.role})", extra={"admin_id": admin.id})
    return UserResponse.from_db_user(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: DbSession, admin: UserManager):
    return UserResponse.from_db_user(await _get_user_or_404(db, user_id))


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, user_data: UserUpdate, db: DbSession, admin: UserManager):
    user = await _get_user_or_404(db, user_id)
    changes = user_data.model_dump(exclude_unset=True)

    if changes.get("email") and await _email_taken(db, changes["email"], exclude_id=user_id):
        raise ConflictError("Email already registered")
    await _check_references(db, changes.get("branch_id"), changes.get("line_of_business_id"))

    password = changes.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)
    for field, value in changes.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user, ["branch", "line_of_business"])
    return UserResponse.from_db_user(user)


@router.delete("/{user_id}")
async def delete_user(user_id: int, db: DbSession, admin: UserManager):
    """Delete a user with no complaint history; otherwise deactivate instead."""
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    user = await _get_user_or_404(db, user_id)

    result = await db.execute(
        select(func.count(Complaint.id)).where(
            (Complaint.assigned_to_id == user_id) | (Complaint.created_by_id == user_id)
        )
    )
    actions = await db.execute(select(func.count(ComplaintAction.id)).where(ComplaintAction.user_id == user_id))
    if result.scalar() or actions.scalar():
        user.is_active = False
        await db.commit()
        logger.info(f"User {user_id} deactivated (has complaint history)", extra={"admin_id": admin.id})
        return {"message": "User has complaint history and was deactivated", "deactivated": True}

    await db.delete(user)
    await db.commit()
    logger.info(f"User {user_id} deleted", extra={"admin_id": admin.id})
    return {"message": "User deleted successfully", "deactivated": False}
