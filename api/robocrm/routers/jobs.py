from fastapi import APIRouter, Depends
from sqlmodel import Session
from ..db import get_session
from ..schemas import ReportTrigger
from ..auth import require_scheduler_or_admin
from ..services import reminders as reminders_service
from ..services import reports as reports_service

router = APIRouter()

@router.post("/lead-reminders")
def trigger_lead_reminders(
    session: Session = Depends(get_session),
    ctx=Depends(require_scheduler_or_admin),
):
    return reminders_service.run_lead_reminders(session)

@router.post("/scheduled-reports")
def trigger_scheduled_reports(
    payload: ReportTrigger,
    session: Session = Depends(get_session),
    ctx=Depends(require_scheduler_or_admin),
):
    return reports_service.run_scheduled_reports(session, payload.frequency, force=payload.force)
