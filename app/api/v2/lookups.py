"""Lookup lists used by complaint forms: statuses and complaint types."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select, func
from typing import Annotated

from app.api.deps import DbSession, CurrentUser
from app.exceptions import ConflictError
from app.models.lookups import ComplaintStatus, ComplaintStatusRecord, ComplaintType, seed_lookups
from app.models.user import User
from app.schemas.organisation import ComplaintTypeCreate, LookupResponse
from app.security.rbac import Permission, require_permission

router = APIRouter()

OrgManager = Annotated[User, Depends(require_permission(Permission.MANAGE_ORGANISATION))]


@router.get("/complaint-statuses", response_model=list[LookupResponse])
async def list_complaint_statuses(db: DbSession, current_user: CurrentUser):
    """Statuses in lifecycle order. Missing rows are created on first use."""
    result = await db.execute(select(ComplaintStatusRecord))
    records = result.scalars().all()
    if len(records) < len(ComplaintStatus):
        await seed_lookups(db)
        result = await db.execute(select(ComplaintStatusRecord))
        records = result.scalars().all()

    order = {s.value: i for i, s in enumerate(ComplaintStatus)}
    records = sorted(records, key=lambda r: order.get(r.name, len(order)))
    return [LookupResponse.model_validate(r) for r in records]


@router.get("/complaint-types", response_model=list[LookupResponse])
async def list_complaint_types(db: DbSession, current_user: CurrentUser):
    result = await db.execute(select(ComplaintType).order_by(ComplaintType.name))
    return [LookupResponse.model_validate(t) for t in result.scalars().all()]


@router.post("/complaint-types", response_model=LookupResponse, status_code=status.HTTP_201_CREATED)
async def create_complaint_type(data: ComplaintTypeCreate, db: DbSession, admin: OrgManager):
    existing = await db.execute(
        select(ComplaintType.id).where(func.lower(ComplaintType.name) == data.name.lower())
    )
    if existing.first():
        raise ConflictError(f"Complaint type '{data.name}' already exists")

    complaint_type = ComplaintType(name=data.name, description=data.description)
    db.add(complaint_type)
    await db.commit()
    await db.refresh(complaint_type)
    return LookupResponse.model_validate(complaint_type)
