"""
Daily lead follow-up digests, one email per salesperson.

A lead is due when it is still in the ``leads`` stage, has a next-action date
no later than today + REMINDER_LOOKAHEAD_DAYS and its lead status is not a
closed marker. Dates before today are overdue, the rest are due soon.
"Today" is the calendar date in SCHEDULER_TIMEZONE, not the host's.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..config import REMINDER_LOOKAHEAD_DAYS, REMINDER_SEND_WORKERS
from ..email import send_email
from ..errors import CrmError, UpstreamUnavailable
from ..models import Client, Offer, OfferStage, Profile, TERMINAL_LEAD_STATUSES
from ..utils import format_date, local_today, sanitize_html

logger = logging.getLogger(__name__)

SENDER_NAME = "Lead Reminders"


class DueLead(BaseModel):
    offer_id: int
    offer_number: str
    next_action_date: date
    lead_status: str = ""
    client_name: str = "Unknown"
    person_contact: str = ""
    follow_up_notes: str = ""


class SalespersonDigest(BaseModel):
    salesperson_id: int
    email: str
    full_name: str
    overdue: List[DueLead] = []
    due_soon: List[DueLead] = []

    @property
    def is_empty(self) -> bool:
        return not self.overdue and not self.due_soon


def select_due_leads(session: Session, today: date):
    horizon = today + timedelta(days=REMINDER_LOOKAHEAD_DAYS)
    stmt = (
        select(Offer, Client.name)
        .join(Client, Client.id == Offer.client_id)
        .where(
            Offer.stage == OfferStage.LEADS,
            Offer.next_action_date.is_not(None),
            Offer.next_action_date <= horizon,
            or_(Offer.lead_status.is_(None), Offer.lead_status.not_in(TERMINAL_LEAD_STATUSES)),
        )
        .order_by(Offer.id)
    )
    return session.exec(stmt).all()


def build_digests(session: Session, today: date) -> List[SalespersonDigest]:
    digests: Dict[int, SalespersonDigest] = {}
    missing_profiles = set()
    for offer, client_name in select_due_leads(session, today):
        owner = offer.salesperson_id
        if owner is None or owner in missing_profiles:
            continue
        if owner not in digests:
            profile = session.get(Profile, owner)
            if not profile:
                missing_profiles.add(owner)
                logger.warning("no profile for salesperson %s; their due leads get no reminder", owner)
                continue
            digests[owner] = SalespersonDigest(
                salesperson_id=owner, email=profile.email, full_name=profile.full_name
            )
        lead = DueLead(
            offer_id=offer.id,
            offer_number=offer.offer_number,
            next_action_date=offer.next_action_date,
            lead_status=offer.lead_status or "",
            client_name=client_name or "Unknown",
            person_contact=offer.person_contact or "",
            follow_up_notes=offer.follow_up_notes or "",
        )
        if lead.next_action_date < today:
            digests[owner].overdue.append(lead)
        else:
            digests[owner].due_soon.append(lead)
    return [d for d in digests.values() if not d.is_empty]


def _lead_table(title: str, color: str, leads: List[DueLead]) -> str:
    if not leads:
        return ""
    cell = 'style="padding: 8px; border: 1px solid #e5e7eb;"'
    head = 'style="padding: 8px; text-align: left; border: 1px solid #e5e7eb;"'
    rows = "".join(
        f"""
        <tr>
          <td {cell}>{sanitize_html(lead.offer_number)}</td>
          <td {cell}>{sanitize_html(lead.client_name)}</td>
          <td {cell}>{sanitize_html(lead.person_contact)}</td>
          <td {cell}>{format_date(lead.next_action_date)}</td>
          <td {cell}>{sanitize_html(lead.lead_status)}</td>
          <td {cell}>{sanitize_html(lead.follow_up_notes)}</td>
        </tr>"""
        for lead in leads
    )
    return f"""
      <h2 style="color: {color}; margin-top: 24px;">{title} ({len(leads)})</h2>
      <table style="width: 100%; border-collapse: collapse; margin-top: 12px;">
        <thead>
          <tr style="background-color: #f3f4f6;">
            <th {head}>Offer #</th><th {head}>Client</th><th {head}>Contact</th>
            <th {head}>Due Date</th><th {head}>Status</th><th {head}>Notes</th>
          </tr>
        </thead>
        <tbody>{rows}
        </tbody>
      </table>"""


def render_digest(digest: SalespersonDigest):
    subject = f"Lead Follow-up Reminders: {len(digest.overdue)} Overdue, {len(digest.due_soon)} Due Soon"
    html_body = f"""
<html>
  <body>
    <div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">
      <h1 style="color: #111827;">Lead Follow-up Reminders</h1>
      <p>Hi {sanitize_html(digest.full_name)},</p>
      <p>You have leads that require follow-up attention:</p>
      {_lead_table("Overdue Follow-ups", "#dc2626", digest.overdue)}
      {_lead_table("Due Soon", "#f59e0b", digest.due_soon)}
      <p style="margin-top: 24px;">Please review and update these leads in the CRM.</p>
      <p style="color: #6b7280; font-size: 14px; margin-top: 32px;">This is an automated reminder.</p>
    </div>
  </body>
</html>
"""
    lines = [f"Hi {digest.full_name},", "", "You have leads that require follow-up attention:"]
    for title, leads in (("Overdue", digest.overdue), ("Due soon", digest.due_soon)):
        if leads:
            lines.append("")
            lines.append(f"{title}:")
            lines.extend(
                f"- {lead.offer_number} {lead.client_name} due {format_date(lead.next_action_date)}"
                for lead in leads
            )
    return subject, "\n".join(lines), html_body


def run_lead_reminders(
    session: Session,
    today: Optional[date] = None,
    sender: Optional[Callable] = None,
) -> dict:
    if today is None:
        today = local_today()
    if sender is None:
        sender = send_email
    try:
        digests = build_digests(session, today)
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable(f"could not load due leads: {exc}") from exc
    if not digests:
        logger.info("no leads with upcoming follow-ups on %s", today)
        return {"message": "No reminders to send", "count": 0}

    rendered = [(digest, *render_digest(digest)) for digest in digests]

    def deliver(item):
        digest, subject, text_body, html_body = item
        sender(digest.email, subject, text_body, html_body=html_body, sender_name=SENDER_NAME)
        logger.info("reminder digest sent to %s (%d overdue, %d due soon)",
                    digest.email, len(digest.overdue), len(digest.due_soon))

    failures = []
    with ThreadPoolExecutor(max_workers=max(1, REMINDER_SEND_WORKERS)) as pool:
        futures = [(item[0], pool.submit(deliver, item)) for item in rendered]
        for digest, future in futures:
            exc = future.exception()
            if exc is not None:
                logger.error("reminder digest to %s failed: %s", digest.email, exc)
                failures.append(exc)

    sent = len(rendered) - len(failures)
    if failures:
        first = failures[0]
        message = f"{len(failures)} of {len(rendered)} reminder digests failed: {first}"
        if isinstance(first, CrmError):
            raise type(first)(message) from first
        raise UpstreamUnavailable(message) from first
    return {"message": "Lead reminders sent successfully", "count": sent}
