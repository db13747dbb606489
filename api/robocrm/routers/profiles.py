import secrets
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from ..db import get_session
from ..models import Profile
from ..schemas import ProfileCreate
from ..auth import require_admin_access

router = APIRouter()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    existing = session.exec(select(Profile).where(Profile.email == payload.email)).first()
    if existing:
        raise HTTPException(status.HTTP_409_CONFLICT, "profile with this email already exists")
    profile = Profile(
        email=payload.email,
        full_name=payload.full_name,
        role=payload.role,
        access_token=secrets.token_urlsafe(32),
    )
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile

@router.get("")
def list_profiles(
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    profiles = session.exec(select(Profile).order_by(Profile.id)).all()
    return [
        {"id": p.id, "email": p.email, "full_name": p.full_name, "role": p.role}
        for p in profiles
    ]
