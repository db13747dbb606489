from typing import Optional
from fastapi import Depends, Header, HTTPException, Query, status
from pydantic import BaseModel
from sqlmodel import Session, select

from .config import ADMIN_ACCESS_TOKEN, SCHEDULER_TOKEN
from .db import get_session
from .models import Profile


class AccessContext(BaseModel):
    role: str  # admin|scheduler|user
    profile_id: Optional[int] = None


def resolve_access_context(
    x_access_token: Optional[str] = Header(default=None, alias="X-Access-Token"),
    token: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
) -> AccessContext:
    candidate = x_access_token or token
    if not candidate:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing access token")
    if ADMIN_ACCESS_TOKEN and candidate == ADMIN_ACCESS_TOKEN:
        return AccessContext(role="admin")
    if SCHEDULER_TOKEN and candidate == SCHEDULER_TOKEN:
        return AccessContext(role="scheduler")
    profile = session.exec(select(Profile).where(Profile.access_token == candidate)).first()
    if profile:
        return AccessContext(role="user", profile_id=profile.id)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid access token")


def require_admin_access(context: AccessContext = Depends(resolve_access_context)) -> AccessContext:
    if context.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return context


def require_user_or_admin(context: AccessContext = Depends(resolve_access_context)) -> AccessContext:
    if context.role in ("admin", "user"):
        return context
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User access required")


def require_scheduler_or_admin(context: AccessContext = Depends(resolve_access_context)) -> AccessContext:
    if context.role in ("admin", "scheduler"):
        return context
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Scheduler access required")
