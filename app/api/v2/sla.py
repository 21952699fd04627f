"""SLA sweep triggers.

/cron is for an external scheduler and only accepts
`Authorization: Bearer <CRON_SECRET>`. The /sla endpoints accept the cron
secret or a signed-in admin, for running one sweep by hand.
"""

from fastapi import APIRouter, Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from typing import Annotated
import hmac
import logging

from app.api.deps import ClockDep, DbSession, EmailSender, get_current_user, security
from app.config import settings
from app.exceptions import ForbiddenError, UnauthorizedError
from app.schemas.sla import SweepReportResponse, SweepRunResponse
from app.security.rbac import Permission, has_permission
from app.tasks.sla_escalation import SweepKind, run_all_sweeps, run_sweep

logger = logging.getLogger(__name__)

router = APIRouter()
cron_router = APIRouter()

BearerCredentials = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]


def _is_cron_secret(credentials: HTTPAuthorizationCredentials | None) -> bool:
    if not credentials or not settings.CRON_SECRET:
        return False
    return hmac.compare_digest(credentials.credentials.encode(), settings.CRON_SECRET.encode())


async def require_cron_secret(credentials: BearerCredentials = None) -> str:
    if not settings.CRON_SECRET:
        logger.warning("Cron trigger called but CRON_SECRET is not configured")
    if not _is_cron_secret(credentials):
        raise UnauthorizedError("Invalid cron secret")
    return "cron"


async def require_cron_or_admin(
    db: DbSession,
    credentials: BearerCredentials = None,
    session_token: Annotated[str | None, Cookie(alias="session")] = None,
) -> str:
    """Identify the trigger: "cron" or "user:<id>" for an admin."""
    if _is_cron_secret(credentials):
        return "cron"
    user = await get_current_user(db, credentials, session_token)
    if not has_permission(user, Permission.RUN_SLA_CHECKS):
        raise ForbiddenError("Admin access required")
    return f"user:{user.id}"


CronCaller = Annotated[str, Depends(require_cron_secret)]
SweepCaller = Annotated[str, Depends(require_cron_or_admin)]


async def _run_one(kind: SweepKind, caller: str, db, clock, email_service) -> SweepReportResponse:
    logger.info(f"{kind.value} sweep triggered by {caller}")
    report = await run_sweep(db, kind, clock=clock, email_service=email_service)
    return SweepReportResponse.from_report(report)


@router.post("/check-reminders", response_model=SweepReportResponse)
async def check_reminders(caller: SweepCaller, db: DbSession, clock: ClockDep, email_service: EmailSender):
    """1-hour reminders."""
    return await _run_one(SweepKind.REMINDER_1H, caller, db, clock, email_service)


@router.post("/check-reminders-2h", response_model=SweepReportResponse)
async def check_reminders_2h(caller: SweepCaller, db: DbSession, clock: ClockDep, email_service: EmailSender):
    """2-hour reminders."""
    return await _run_one(SweepKind.REMINDER_2H, caller, db, clock, email_service)


@router.post("/check-breaches", response_model=SweepReportResponse)
async def check_breaches(caller: SweepCaller, db: DbSession, clock: ClockDep, email_service: EmailSender):
    """Breach alerts plus the admin summary."""
    return await _run_one(SweepKind.BREACH, caller, db, clock, email_service)


@router.post("/run-all", response_model=SweepRunResponse)
async def run_all(caller: SweepCaller, db: DbSession, clock: ClockDep, email_service: EmailSender):
    logger.info(f"All SLA sweeps triggered by {caller}")
    run = await run_all_sweeps(db, clock=clock, email_service=email_service)
    return SweepRunResponse.from_run(run)


@cron_router.api_route("", methods=["GET", "POST"], response_model=SweepRunResponse)
async def cron(caller: CronCaller, db: DbSession, clock: ClockDep, email_service: EmailSender):
    """Entry point for the external scheduler; runs every sweep."""
    try:
        run = await run_all_sweeps(db, clock=clock, email_service=email_service)
    except Exception as e:
        logger.error(f"Cron SLA run failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to execute cron jobs",
        )
    logger.info(f"Cron SLA run complete. Processed: {run.processed}, Errors: {run.failed}")
    return SweepRunResponse.from_run(run)
