"""SLA sweep report schemas."""

from datetime import datetime
from pydantic import BaseModel


class SweepReportResponse(BaseModel):
    kind: str
    ran_at: datetime
    matched: int
    processed: int
    failed: int
    emails_sent: int
    emails_failed: int
    summary_notifications: int = 0

    @classmethod
    def from_report(cls, report) -> "SweepReportResponse":
        return cls(
            kind=report.kind.value,
            ran_at=report.ran_at,
            matched=report.matched,
            processed=report.processed,
            failed=report.failed,
            emails_sent=report.emails_sent,
            emails_failed=report.emails_failed,
            summary_notifications=report.summary_notifications,
        )


class SweepRunResponse(BaseModel):
    success: bool = True
    ran_at: datetime
    processed: int
    failed: int
    emails_sent: int
    emails_failed: int
    tasks: list[SweepReportResponse]

    @classmethod
    def from_run(cls, run) -> "SweepRunResponse":
        return cls(
            ran_at=run.ran_at,
            processed=run.processed,
            failed=run.failed,
            emails_sent=run.emails_sent,
            emails_failed=run.emails_failed,
            tasks=[SweepReportResponse.from_report(r) for r in run.reports],
        )
