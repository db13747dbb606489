from robocrm import db as db_module
from robocrm.models import ReportSubscription

import worker


def test_beat_schedule_covers_all_jobs():
    schedule = worker.cel.conf.beat_schedule
    assert schedule["lead-reminders-daily"]["task"] == "send_lead_reminders"
    assert schedule["reports-weekly"]["args"] == ("weekly",)
    assert schedule["reports-monthly"]["args"] == ("monthly",)


def test_tasks_run_against_configured_engine(test_engine, session, sent_emails, monkeypatch):
    monkeypatch.setattr(db_module, "engine", test_engine)
    session.add(ReportSubscription(recipient_email="boss@example.com", recipient_name="Boss", frequency="weekly"))
    session.commit()

    assert worker.send_lead_reminders() == {"message": "No reminders to send", "count": 0}
    result = worker.send_scheduled_reports("weekly")
    assert result["count"] == 1
    assert sent_emails[0]["to"] == "boss@example.com"
