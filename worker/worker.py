import logging
from celery import Celery
from celery.schedules import crontab
from sqlmodel import Session

from robocrm import db
from robocrm.config import LOG_LEVEL, REDIS_URL, SCHEDULER_TIMEZONE, WORKER_QUEUE
from robocrm.services.reminders import run_lead_reminders
from robocrm.services.reports import run_scheduled_reports

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

cel = Celery("robocrm", broker=REDIS_URL, backend=REDIS_URL)
cel.conf.timezone = SCHEDULER_TIMEZONE
cel.conf.task_default_queue = WORKER_QUEUE
cel.conf.beat_schedule = {
    "lead-reminders-daily": {
        "task": "send_lead_reminders",
        "schedule": crontab(hour=8, minute=0),
    },
    "reports-weekly": {
        "task": "send_scheduled_reports",
        "schedule": crontab(hour=7, minute=0, day_of_week="mon"),
        "args": ("weekly",),
    },
    "reports-monthly": {
        "task": "send_scheduled_reports",
        "schedule": crontab(hour=7, minute=0, day_of_month="1"),
        "args": ("monthly",),
    },
}

@cel.task(name="send_lead_reminders", queue=WORKER_QUEUE)
def send_lead_reminders():
    with Session(db.engine) as session:
        result = run_lead_reminders(session)
    logger.info("lead reminders: %s", result["message"])
    return result

@cel.task(name="send_scheduled_reports", queue=WORKER_QUEUE)
def send_scheduled_reports(frequency: str, force: bool = False):
    with Session(db.engine) as session:
        result = run_scheduled_reports(session, frequency, force=force)
    logger.info("%s reports: %s", frequency, result["message"])
    return result
