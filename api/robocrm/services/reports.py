"""
Weekly and monthly KPI summaries for report subscribers.

Every run recomputes the aggregates for its window and sends the same summary
to each enabled subscription of the requested frequency. A subscription that
already received a report in the current period (ISO week or calendar month)
is skipped unless the run is forced. Periods and the monthly window follow
the calendar in SCHEDULER_TIMEZONE.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..config import DEFAULT_CURRENCY
from ..email import send_email
from ..errors import CrmError, UpstreamUnavailable, ValidationError
from ..models import Client, Contract, Offer, OfferStage, ReportSubscription
from ..utils import SCHEDULER_TZ, format_date, format_money, sanitize_html, to_local, utcnow

logger = logging.getLogger(__name__)

FREQUENCIES = ("weekly", "monthly")
SENDER_NAME = "Reports"


class ReportSummary(BaseModel):
    frequency: str
    start: datetime
    end: datetime
    revenue: float = 0.0
    won_deals: int = 0
    total_offers: int = 0
    new_clients: int = 0
    active_contracts: int = 0

    @property
    def period_text(self) -> str:
        return self.frequency.capitalize()


def parse_frequency(value) -> str:
    if value not in FREQUENCIES:
        raise ValidationError(f"frequency must be one of {', '.join(FREQUENCIES)}, got {value!r}")
    return value


def window_start(frequency: str, now: datetime) -> datetime:
    if frequency == "weekly":
        return now - timedelta(days=7)
    local = to_local(now)
    return SCHEDULER_TZ.localize(datetime(local.year, local.month, 1))


def same_period(frequency: str, sent_at: Optional[datetime], now: datetime) -> bool:
    if sent_at is None:
        return False
    sent_at, now = to_local(sent_at), to_local(now)
    if frequency == "weekly":
        return sent_at.isocalendar()[:2] == now.isocalendar()[:2]
    return (sent_at.year, sent_at.month) == (now.year, now.month)


def compute_summary(session: Session, frequency: str, now: datetime) -> ReportSummary:
    start = window_start(frequency, now)
    revenue, won = session.exec(
        select(func.coalesce(func.sum(Offer.total_price), 0.0), func.count(Offer.id)).where(
            Offer.stage == OfferStage.CLOSED_WON,
            Offer.created_at >= start,
        )
    ).one()
    total_offers = session.exec(select(func.count(Offer.id)).where(Offer.created_at >= start)).one()
    new_clients = session.exec(select(func.count(Client.id)).where(Client.created_at >= start)).one()
    active_contracts = session.exec(
        select(func.count(Contract.id)).where(Contract.status == "active", Contract.created_at >= start)
    ).one()
    return ReportSummary(
        frequency=frequency,
        start=start,
        end=now,
        revenue=float(revenue or 0),
        won_deals=won or 0,
        total_offers=total_offers or 0,
        new_clients=new_clients or 0,
        active_contracts=active_contracts or 0,
    )


def render_summary(summary: ReportSummary, currency: str = DEFAULT_CURRENCY):
    subject = f"{summary.period_text} Sales Report - {format_date(to_local(summary.end))}"
    metrics = [
        (f"{format_money(summary.revenue)} {currency}", "Total Revenue"),
        (str(summary.won_deals), "Won Deals"),
        (str(summary.total_offers), "Total Offers"),
        (str(summary.new_clients), "New Clients"),
        (str(summary.active_contracts), "Active Contracts"),
    ]
    blocks = "".join(
        f"""
          <div style="background: #ffffff; padding: 20px; margin: 15px 0; border-radius: 8px;">
            <div style="font-size: 32px; font-weight: bold; color: #667eea;">{sanitize_html(value)}</div>
            <div style="color: #6b7280; font-size: 14px; text-transform: uppercase; margin-top: 5px;">{label}</div>
          </div>"""
        for value, label in metrics
    )
    period = f"{format_date(to_local(summary.start))} - {format_date(to_local(summary.end))}"
    html_body = f"""
<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <div style="background: #667eea; color: #ffffff; padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
        <h1>{summary.period_text} Sales Report</h1>
        <p>Performance Summary for {period}</p>
      </div>
      <div style="background: #f8f9fa; padding: 30px; border-radius: 0 0 10px 10px;">{blocks}
      </div>
      <p style="text-align: center; margin-top: 30px; color: #6b7280; font-size: 12px;">
        This is an automated report from your CRM system.
      </p>
    </div>
  </body>
</html>
"""
    text_body = "\n".join(
        [f"{summary.period_text} Sales Report", f"Performance Summary for {period}", ""]
        + [f"{label}: {value}" for value, label in metrics]
    )
    return subject, text_body, html_body


def run_scheduled_reports(
    session: Session,
    frequency: str,
    now: Optional[datetime] = None,
    force: bool = False,
    sender: Optional[Callable] = None,
) -> dict:
    frequency = parse_frequency(frequency)
    if now is None:
        now = utcnow()
    if sender is None:
        sender = send_email
    logger.info("generating %s reports", frequency)

    try:
        subscriptions = session.exec(
            select(ReportSubscription)
            .where(ReportSubscription.enabled == True, ReportSubscription.frequency == frequency)  # noqa: E712
            .order_by(ReportSubscription.id)
        ).all()
        if not subscriptions:
            return {"message": "No active subscriptions found", "count": 0, "skipped": 0, "failed": 0}
        summary = compute_summary(session, frequency, now)
    except SQLAlchemyError as exc:
        raise UpstreamUnavailable(f"could not load {frequency} report data: {exc}") from exc

    subject, text_body, html_body = render_summary(summary)
    sent = skipped = failed = 0
    for sub in subscriptions:
        if not force and same_period(frequency, sub.last_sent_at, now):
            logger.warning("skipping %s report to %s: already sent this period at %s",
                           frequency, sub.recipient_email, sub.last_sent_at)
            skipped += 1
            continue
        try:
            sender(sub.recipient_email, subject, text_body, html_body=html_body, sender_name=SENDER_NAME)
        except CrmError as exc:
            logger.error("failed to send %s report to %s: %s", frequency, sub.recipient_email, exc)
            failed += 1
            continue
        try:
            sub.last_sent_at = now
            session.add(sub)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("report sent to %s but last_sent_at was not stored: %s", sub.recipient_email, exc)
            failed += 1
            continue
        logger.info("report sent to %s", sub.recipient_email)
        sent += 1

    logger.info("%s reports: %d sent, %d skipped, %d failed", frequency, sent, skipped, failed)
    return {
        "message": f"Reports sent to {sent} recipients",
        "count": sent,
        "skipped": skipped,
        "failed": failed,
    }
