from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from ..db import get_session
from ..models import SystemSetting
from ..schemas import PdfSettings
from ..auth import require_admin_access, require_user_or_admin

router = APIRouter()

PREFIX = "pdf_"

def _read_pdf_settings(session: Session) -> dict:
    rows = session.exec(select(SystemSetting).where(SystemSetting.key.startswith(PREFIX))).all()
    values = {row.key[len(PREFIX):]: row.value for row in rows}
    return {name: values.get(name) for name in PdfSettings.model_fields}

@router.get("/pdf")
def get_pdf_settings(
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return _read_pdf_settings(session)

@router.put("/pdf")
def update_pdf_settings(
    payload: PdfSettings,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    for name, value in payload.model_dump(exclude_unset=True).items():
        key = f"{PREFIX}{name}"
        row = session.get(SystemSetting, key)
        if row:
            row.value = value
        else:
            row = SystemSetting(key=key, value=value)
        session.add(row)
    session.commit()
    return _read_pdf_settings(session)
