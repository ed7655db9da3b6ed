"""Outgoing email over SMTP. Sending runs in a worker thread; failures are logged, never raised."""
import asyncio
import html
import logging
import smtplib
from dataclasses import dataclass
from decimal import Decimal
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from agility.config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class ExpiredAllocationLine:
    """One expired allocation as it appears in a summary email."""

    allocation_id: int
    project_id: int
    project_title: str
    phase_name: str
    consultant_id: int
    consultant_name: str
    product_manager_id: int | None
    unplanned_hours: Decimal
    total_hours: Decimal


def _fmt_hours(hours: Decimal) -> str:
    return f"{float(hours):.1f}h"


def _send_sync(recipients: list[str], subject: str, html_body: str, text_body: str) -> None:
    settings = get_settings()
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = ", ".join(recipients)
    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_user:
            server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.from_email, recipients, msg.as_string())


async def send_email(recipients: list[str], subject: str, html_body: str, text_body: str) -> bool:
    """Send one message. Returns False (and logs) when SMTP is unconfigured or sending fails."""
    recipients = [r for r in recipients if r]
    if not recipients:
        logger.warning("No recipients for email %r", subject)
        return False
    if not get_settings().smtp_host:
        logger.info("SMTP not configured, skipping email %r to %s", subject, recipients)
        return False
    try:
        await asyncio.to_thread(_send_sync, recipients, subject, html_body, text_body)
    except (smtplib.SMTPException, OSError):
        logger.error("Error sending email %r to %s", subject, recipients, exc_info=True)
        return False
    logger.info("Sent email %r to %s", subject, recipients)
    return True


def render_expired_summary(
    recipient_name: str,
    audience: str,
    lines: list[ExpiredAllocationLine],
) -> tuple[str, str, str]:
    """Subject, HTML and text bodies for an expired-allocation digest.

    audience is one of "product_manager", "consultant" or "growth_team" and only changes the wording.
    """
    settings = get_settings()
    total = sum((line.unplanned_hours for line in lines), Decimal(0))
    count = len(lines)
    plural = "" if count == 1 else "s"
    subject = f"{count} expired allocation{plural} with {_fmt_hours(total)} unplanned"

    if audience == "product_manager":
        intro = "The following allocations on your projects ended with unplanned hours. Please forfeit or reallocate them."
    elif audience == "consultant":
        intro = "The following allocations of yours ended with unplanned hours. Contact your Product Manager if they need to be reallocated."
    else:
        intro = "The following allocations expired with unplanned hours during the latest sweep."

    text_rows = []
    html_rows = []
    for line in lines:
        link = f"{settings.app_base_url}/dashboard/projects/{line.project_id}"
        text_rows.append(
            f"- {line.consultant_name}: {_fmt_hours(line.unplanned_hours)} of {_fmt_hours(line.total_hours)} "
            f"unplanned in \"{line.phase_name}\" ({line.project_title}) {link}"
        )
        html_rows.append(
            "<tr>"
            f"<td>{html.escape(line.project_title)}</td>"
            f"<td>{html.escape(line.phase_name)}</td>"
            f"<td>{html.escape(line.consultant_name)}</td>"
            f"<td style=\"text-align:right\">{_fmt_hours(line.unplanned_hours)}</td>"
            f"<td><a href=\"{html.escape(link)}\">Open project</a></td>"
            "</tr>"
        )

    text_body = f"Hi {recipient_name},\n\n{intro}\n\n" + "\n".join(text_rows) + f"\n\nTotal unplanned: {_fmt_hours(total)}\n"
    html_body = (
        f"<p>Hi {html.escape(recipient_name)},</p>"
        f"<p>{html.escape(intro)}</p>"
        "<table cellpadding=\"6\" style=\"border-collapse:collapse\">"
        "<tr><th>Project</th><th>Phase</th><th>Consultant</th><th>Unplanned</th><th></th></tr>"
        + "".join(html_rows)
        + "</table>"
        f"<p><strong>Total unplanned: {_fmt_hours(total)}</strong></p>"
    )
    return subject, html_body, text_body
