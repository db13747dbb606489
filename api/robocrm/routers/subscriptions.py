from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from ..db import get_session
from ..models import ReportSubscription
from ..schemas import SubscriptionCreate, SubscriptionUpdate
from ..auth import AccessContext, require_admin_access
from ..services.reports import parse_frequency

router = APIRouter()

def _get_subscription(session: Session, subscription_id: int) -> ReportSubscription:
    sub = session.get(ReportSubscription, subscription_id)
    if not sub:
        raise HTTPException(404, "subscription not found")
    return sub

@router.get("")
def list_subscriptions(
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    return session.exec(select(ReportSubscription).order_by(ReportSubscription.created_at.desc())).all()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: SubscriptionCreate,
    session: Session = Depends(get_session),
    ctx: AccessContext = Depends(require_admin_access),
):
    parse_frequency(payload.frequency)
    sub = ReportSubscription(**payload.model_dump(), created_by=ctx.profile_id)
    session.add(sub)
    session.commit()
    session.refresh(sub)
    return sub

@router.patch("/{subscription_id}")
def update_subscription(
    subscription_id: int,
    payload: SubscriptionUpdate,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    sub = _get_subscription(session, subscription_id)
    changes = payload.model_dump(exclude_unset=True)
    if "frequency" in changes:
        parse_frequency(changes["frequency"])
    for key, value in changes.items():
        setattr(sub, key, value)
    session.add(sub)
    session.commit()
    session.refresh(sub)
    return sub

@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subscription(
    subscription_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_admin_access),
):
    sub = _get_subscription(session, subscription_id)
    session.delete(sub)
    session.commit()
