"""Branches and lines of business.

The two are structurally identical routing dimensions, so one router factory
serves both. Anyone signed in can read; only admins can change them, and a
unit still referenced by users or complaints cannot be deleted.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, func
from typing import Annotated
import logging

from app.api.deps import DbSession, CurrentUser, ClockDep
from app.exceptions import ConflictError, NotFoundError
from app.models.branch import Branch, LineOfBusiness
from app.models.complaint import Complaint
from app.models.user import User
from app.schemas.organisation import OrgUnitCreate, OrgUnitUpdate, OrgUnitResponse
from app.security.rbac import Permission, require_permission

logger = logging.getLogger(__name__)

OrgManager = Annotated[User, Depends(require_permission(Permission.MANAGE_ORGANISATION))]

# model -> (label, User FK column, Complaint FK column)
_REFERENCES = {
    Branch: ("Branch", User.branch_id, Complaint.branch_id),
    LineOfBusiness: ("Line of business", User.line_of_business_id, Complaint.line_of_business_id),
}


async def _usage(db, model, unit_id: int) -> tuple[int, int]:
    _, user_fk, complaint_fk = _REFERENCES[model]
    users = await db.execute(select(func.count(User.id)).where(user_fk == unit_id))
    complaints = await db.execute(select(func.count(Complaint.id)).where(complaint_fk == unit_id))
    return users.scalar() or 0, complaints.scalar() or 0


async def _to_response(db, model, unit) -> OrgUnitResponse:
    user_count, complaint_count = await _usage(db, model, unit.id)
    return OrgUnitResponse(
        id=unit.id,
        name=unit.name,
        description=unit.description,
        created_at=unit.created_at,
        user_count=user_count,
        complaint_count=complaint_count,
    )


def make_org_unit_router(model) -> APIRouter:
    label = _REFERENCES[model][0]
    router = APIRouter()

    async def _get_or_404(db, unit_id: int):
        unit = await db.get(model, unit_id)
        if unit is None:
            raise NotFoundError(label, unit_id)
        return unit

    async def _ensure_unique(db, name: str, exclude_id: int | None = None):
        query = select(model.id).where(func.lower(model.name) == name.lower())
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        existing = await db.execute(query)
        if existing.first():
            raise ConflictError(f"{label} '{name}' already exists")

    @router.get("", response_model=list[OrgUnitResponse])
    async def list_units(db: DbSession, current_user: CurrentUser):
        result = await db.execute(select(model).order_by(model.name))
        return [await _to_response(db, model, unit) for unit in result.scalars().all()]

    @router.get("/{unit_id}", response_model=OrgUnitResponse)
    async def get_unit(unit_id: int, db: DbSession, current_user: CurrentUser):
        return await _to_response(db, model, await _get_or_404(db, unit_id))

    @router.post("", response_model=OrgUnitResponse, status_code=status.HTTP_201_CREATED)
    async def create_unit(data: OrgUnitCreate, db: DbSession, admin: OrgManager, clock: ClockDep):
        await _ensure_unique(db, data.name)
        unit = model(name=data.name, description=data.description, created_at=clock.now())
        db.add(unit)
        await db.commit()
        await db.refresh(unit)
        logger.info(f"{label} created: {unit.name}", extra={"unit_id": unit.id, "user_id": admin.id})
        return await _to_response(db, model, unit)

    @router.put("/{unit_id}", response_model=OrgUnitResponse)
    async def update_unit(unit_id: int, data: OrgUnitUpdate, db: DbSession, admin: OrgManager, clock: ClockDep):
        unit = await _get_or_404(db, unit_id)
        if data.name is not None:
            await _ensure_unique(db, data.name, exclude_id=unit_id)
            unit.name = data.name
        if data.description is not None:
            unit.description = data.description
        unit.updated_at = clock.now()
        await db.commit()
        return await _to_response(db, model, unit)

    @router.delete("/{unit_id}")
    async def delete_unit(unit_id: int, db: DbSession, admin: OrgManager):
        unit = await _get_or_404(db, unit_id)
        user_count, complaint_count = await _usage(db, model, unit_id)
        if user_count or complaint_count:
            raise ConflictError(f"Cannot delete {label.lower()} with associated users or complaints")
        await db.delete(unit)
        await db.commit()
        logger.info(f"{label} deleted: {unit_id}", extra={"user_id": admin.id})
        return {"message": f"{label} deleted successfully"}

    return router


branch_router = make_org_unit_router(Branch)
line_of_business_router = make_org_unit_router(LineOfBusiness)
