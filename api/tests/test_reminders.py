import logging
from datetime import date, datetime, timedelta, timezone

import pytest

from robocrm.errors import RateLimited, UpstreamUnavailable
from robocrm.models import Client, Offer, OfferStage, Profile
from robocrm.services import reminders as reminders_service
from robocrm.services.reminders import run_lead_reminders
from robocrm.utils import to_local

from helpers import SCHEDULER_HEADERS

TODAY = date(2026, 10, 19)


class Outbox(list):
    def __call__(self, to, subject, body, html_body=None, attachments=None, sender_name=None, reply_to=None):
        self.append({"to": to, "subject": subject, "text": body, "html": html_body})


def seed_profile(session, email="anna@example.com", name="Anna Nowak"):
    profile = Profile(email=email, full_name=name)
    session.add(profile)
    session.commit()
    return profile.id


def seed_client(session, name="Acme Robotics"):
    customer = Client(name=name)
    session.add(customer)
    session.commit()
    return customer.id


def seed_lead(session, number, client_id, salesperson_id, days, **extra):
    offer = Offer(
        offer_number=number,
        client_id=client_id,
        salesperson_id=salesperson_id,
        next_action_date=TODAY + timedelta(days=days),
        **extra,
    )
    session.add(offer)
    session.commit()
    return offer


def test_digest_splits_overdue_and_due_soon(session):
    anna = seed_profile(session)
    acme = seed_client(session)
    seed_lead(session, "OF-1", acme, anna, -1, follow_up_notes="call back")
    seed_lead(session, "OF-2", acme, anna, 0)
    seed_lead(session, "OF-3", acme, anna, 2)
    seed_lead(session, "OF-4", acme, anna, 5)
    seed_lead(session, "OF-5", acme, anna, 0, lead_status="closed_won")
    seed_lead(session, "OF-6", acme, anna, 0, stage=OfferStage.QUALIFIED)

    outbox = Outbox()
    result = run_lead_reminders(session, today=TODAY, sender=outbox)

    assert result == {"message": "Lead reminders sent successfully", "count": 1}
    assert len(outbox) == 1
    message = outbox[0]
    assert message["to"] == "anna@example.com"
    assert message["subject"] == "Lead Follow-up Reminders: 1 Overdue, 2 Due Soon"
    html = message["html"]
    assert html.index("Overdue Follow-ups") < html.index("Due Soon")
    assert html.index("OF-2") < html.index("OF-3")
    assert "OF-1" in html and "call back" in html
    for excluded in ("OF-4", "OF-5", "OF-6"):
        assert excluded not in html


def test_lead_without_status_is_included(session):
    anna = seed_profile(session)
    seed_lead(session, "OF-1", seed_client(session), anna, 1, lead_status=None)
    outbox = Outbox()
    result = run_lead_reminders(session, today=TODAY, sender=outbox)
    assert result["count"] == 1
    assert outbox[0]["subject"] == "Lead Follow-up Reminders: 0 Overdue, 1 Due Soon"


def test_one_digest_per_salesperson(session):
    anna = seed_profile(session)
    piotr = seed_profile(session, email="piotr@example.com", name="Piotr Wisniewski")
    acme = seed_client(session)
    seed_lead(session, "OF-1", acme, anna, -3)
    seed_lead(session, "OF-2", acme, piotr, 1)
    seed_lead(session, "OF-3", acme, None, 1)

    outbox = Outbox()
    result = run_lead_reminders(session, today=TODAY, sender=outbox)
    assert result["count"] == 2
    assert sorted(m["to"] for m in outbox) == ["anna@example.com", "piotr@example.com"]
    assert all("OF-3" not in m["html"] for m in outbox)


def test_interpolated_fields_are_escaped(session):
    anna = seed_profile(session, name="Anna <b>")
    seed_lead(
        session, "OF-<1>", seed_client(session, name="Evil & Co <script>"), anna, 0,
        person_contact='"Boss"', follow_up_notes="<img src=x>",
    )
    outbox = Outbox()
    run_lead_reminders(session, today=TODAY, sender=outbox)
    html = outbox[0]["html"]
    assert "Evil &amp; Co &lt;script&gt;" in html
    assert "&lt;img src=x&gt;" in html
    assert "OF-&lt;1&gt;" in html
    assert "&quot;Boss&quot;" in html
    assert "Anna &lt;b&gt;" in html
    assert "<script>" not in html


def test_missing_profile_is_skipped_with_warning(session, caplog):
    anna = seed_profile(session)
    acme = seed_client(session)
    seed_lead(session, "OF-1", acme, anna, 0)
    seed_lead(session, "OF-2", acme, 999, 0)

    outbox = Outbox()
    with caplog.at_level(logging.WARNING, logger="robocrm.services.reminders"):
        result = run_lead_reminders(session, today=TODAY, sender=outbox)
    assert result["count"] == 1
    assert [m["to"] for m in outbox] == ["anna@example.com"]
    assert any("999" in record.getMessage() for record in caplog.records)


def test_nothing_due(session):
    seed_lead(session, "OF-1", seed_client(session), seed_profile(session), 10)
    outbox = Outbox()
    assert run_lead_reminders(session, today=TODAY, sender=outbox) == {
        "message": "No reminders to send",
        "count": 0,
    }
    assert outbox == []


def test_failed_send_propagates_after_all_attempts(session):
    anna = seed_profile(session)
    piotr = seed_profile(session, email="piotr@example.com", name="Piotr")
    acme = seed_client(session)
    seed_lead(session, "OF-1", acme, anna, 0)
    seed_lead(session, "OF-2", acme, piotr, 0)

    delivered = []

    def flaky(to, subject, body, **kwargs):
        if to == "anna@example.com":
            raise UpstreamUnavailable("mailbox unavailable")
        delivered.append(to)

    with pytest.raises(UpstreamUnavailable) as excinfo:
        run_lead_reminders(session, today=TODAY, sender=flaky)
    assert "1 of 2" in excinfo.value.message
    assert delivered == ["piotr@example.com"]



def test_rate_limited_send_keeps_its_type(session):
    acme = seed_client(session)
    seed_lead(session, "OF-1", acme, seed_profile(session), 0)

    def throttled(to, subject, body, **kwargs):
        raise RateLimited("try again later")

    with pytest.raises(RateLimited):
        run_lead_reminders(session, today=TODAY, sender=throttled)


def test_default_today_comes_from_scheduler_timezone(session, monkeypatch):
    seed_lead(session, "OF-1", seed_client(session), seed_profile(session), 0)
    monkeypatch.setattr(reminders_service, "local_today", lambda: TODAY)

    outbox = Outbox()
    run_lead_reminders(session, sender=outbox)
    assert "1 Due Soon" in outbox[0]["subject"]
    assert "0 Overdue" in outbox[0]["subject"]


def test_scheduler_date_rolls_over_before_utc():
    # 23:30 UTC on the 18th is already the 19th in Warsaw
    late = datetime(2026, 10, 18, 23, 30, tzinfo=timezone.utc)
    assert to_local(late).date() == TODAY

def test_trigger_endpoint(client, sent_emails):
    response = client.post("/api/jobs/lead-reminders", headers=SCHEDULER_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"message": "No reminders to send", "count": 0}


def test_trigger_requires_scheduler_or_admin(client, salesperson):
    response = client.post("/api/jobs/lead-reminders", headers=salesperson["headers"])
    assert response.status_code == 403
