from fastapi import APIRouter
from app.api.v2 import (
    auth,
    complaints,
    lookups,
    notifications,
    organisation,
    sla,
    users,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(complaints.router, prefix="/complaints", tags=["complaints"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(organisation.branch_router, prefix="/branches", tags=["branches"])
api_router.include_router(
    organisation.line_of_business_router, prefix="/lines-of-business", tags=["lines-of-business"]
)
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(lookups.router, tags=["lookups"])
api_router.include_router(sla.router, prefix="/sla", tags=["sla"])
api_router.include_router(sla.cron_router, prefix="/cron", tags=["sla"])
