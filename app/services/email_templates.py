"""HTML email templates for complaint lifecycle and SLA alerts.

Each builder returns (subject, html). Complaint fields are user-supplied and
always escaped.
"""

from datetime import datetime
from html import escape
from typing import Optional, Tuple

from app.models.complaint import Complaint
from app.models.user import User

FOOTER = "This is an automated notification from Complaint Management System"

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: {color}; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
    .content {{ background: #f9fafb; padding: 20px; border-radius: 0 0 8px 8px; }}
    .details {{ background: white; padding: 15px; border-radius: 5px; margin: 15px 0; border-left: 4px solid {color}; }}
    .footer {{ text-align: center; margin-top: 20px; color: #6b7280; font-size: 14px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{heading}</h1></div>
    <div class="content">
{content}
    </div>
    <div class="footer"><p>{footer}</p></div>
  </div>
</body>
</html>
"""


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "Not set"


def plural_hours(hours: int) -> str:
    return f"{hours} hour{'s' if hours != 1 else ''}"


def _details(complaint: Complaint, *extra: Tuple[str, str]) -> str:
    rows = [
        ("Complaint Number", complaint.complaint_number),
        ("Customer Name", complaint.customer_name),
        ("Customer ID", complaint.customer_id),
        ("Policy Number", complaint.policy_number),
        ("Policy Type", complaint.policy_type),
        ("Description", complaint.description),
        ("Created Date", _fmt(complaint.created_at)),
        ("Due Date", _fmt(complaint.due_date)),
        *extra,
    ]
    lines = "\n".join(
        f"        <p><strong>{escape(label)}:</strong> {escape(str(value))}</p>" for label, value in rows
    )
    return f'      <div class="details">\n        <h3>Complaint Details:</h3>\n{lines}\n      </div>'


def _render(heading: str, color: str, content: str, footer: str = FOOTER) -> str:
    return _LAYOUT.format(heading=escape(heading), color=color, content=content, footer=escape(footer))


def complaint_created(complaint: Complaint, assigned_to: Optional[User] = None) -> Tuple[str, str]:
    subject = f"New Complaint Created - {complaint.complaint_number}"
    if assigned_to:
        intro = f"A new complaint has been created and assigned to {escape(assigned_to.name)}."
    else:
        intro = "A new complaint has been created and requires assignment."
    content = (
        f"      <p>{intro}</p>\n"
        f"{_details(complaint)}\n"
        "      <p>Please take appropriate action on this complaint.</p>"
    )
    return subject, _render("New Complaint Created", "#2563eb", content)


def complaint_assignment(complaint: Complaint, assignee: User) -> Tuple[str, str]:
    subject = f"Complaint Assigned to You - {complaint.complaint_number}"
    content = (
        f"      <p>Hello <strong>{escape(assignee.name)}</strong>,</p>\n"
        "      <p>You have been assigned a new complaint that requires your attention.</p>\n"
        f"{_details(complaint)}\n"
        "      <p>Please review this complaint and take necessary action to resolve it "
        "within the specified timeframe.</p>"
    )
    return subject, _render("Complaint Assigned to You", "#059669", content, "This is an automated assignment notification")


def sla_reminder(complaint: Complaint, hours: int) -> Tuple[str, str]:
    subject = f"SLA Reminder - {complaint.complaint_number}"
    elapsed = plural_hours(hours)
    content = (
        "      <p>This is a reminder that the following complaint is still unresolved after "
        f"<strong>{elapsed}</strong>.</p>\n"
        f"{_details(complaint, ('Time Since Creation', elapsed))}\n"
        "      <p><strong>Please prioritize resolving this complaint to meet SLA requirements.</strong></p>"
    )
    return subject, _render("SLA Reminder", "#dc2626", content, "This is an automated SLA reminder from Complaint Management System")


def sla_breach(complaint: Complaint, hours_overdue: int) -> Tuple[str, str]:
    subject = f"SLA BREACH ALERT - {complaint.complaint_number}"
    assignee = complaint.assigned_to.name if complaint.assigned_to else "Unassigned"
    content = (
        "      <p>The following complaint has <strong>breached its SLA deadline</strong> "
        f"and is overdue by {plural_hours(hours_overdue)}.</p>\n"
        f"{_details(complaint, ('Assigned To', assignee))}\n"
        "      <p><strong>Immediate action is required.</strong></p>"
    )
    return subject, _render("SLA Breach Alert", "#991b1b", content)
