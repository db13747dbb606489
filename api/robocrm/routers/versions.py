from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel import Session
from ..db import get_session
from ..models import DocumentVersion, Profile
from ..schemas import VersionEmail
from ..auth import AccessContext, require_user_or_admin
from ..services import versions as versions_service

router = APIRouter()

def serialize_version(version: DocumentVersion):
    return {
        "id": version.id,
        "document_type": version.document_type,
        "document_id": version.document_id,
        "version_number": version.version_number,
        "storage_key": version.storage_key,
        "generated_at": version.generated_at,
        "generated_by": version.generated_by,
        "notes": version.notes,
        "status": version.status,
    }

def _pdf_response(version: DocumentVersion, pdf_bytes: bytes, disposition: str = "inline"):
    filename = version.storage_key.rsplit("/", 1)[-1]
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'{disposition}; filename="{filename}"'},
    )

# Public: the signed token is the credential
@router.get("/shared/{token}")
def open_shared_version(token: str, session: Session = Depends(get_session)):
    version, pdf_bytes = versions_service.resolve_share_token(session, token)
    return _pdf_response(version, pdf_bytes)

@router.get("/{version_id}")
def get_version(
    version_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return serialize_version(versions_service.get_version(session, version_id))

@router.get("/{version_id}/pdf")
def download_version_pdf(
    version_id: int,
    disposition: str = Query(default="inline", pattern="^(inline|attachment)$"),
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    version, pdf_bytes = versions_service.fetch_version(session, version_id)
    return _pdf_response(version, pdf_bytes, disposition)

@router.post("/{version_id}/email", status_code=status.HTTP_201_CREATED)
def email_version(
    version_id: int,
    payload: VersionEmail,
    session: Session = Depends(get_session),
    ctx: AccessContext = Depends(require_user_or_admin),
):
    sender = session.get(Profile, ctx.profile_id) if ctx.profile_id else None
    record = versions_service.email_version(
        session,
        version_id,
        payload.recipient_email,
        recipient_name=payload.recipient_name,
        sent_by=sender,
    )
    return record

@router.get("/{version_id}/deliveries")
def list_deliveries(
    version_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return versions_service.list_deliveries(session, version_id)

@router.post("/{version_id}/share")
def share_version(
    version_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return {"url": versions_service.share_link(session, version_id)}

@router.get("/{version_id}/url")
def version_download_url(
    version_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return {"url": versions_service.download_url(session, version_id)}
