from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from ..config import DEFAULT_CURRENCY
from ..db import get_session
from ..models import Client, Offer, OfferItem, OfferStage
from ..schemas import OfferCreate, OfferItemCreate, OfferUpdate, StageChange, VersionCreate
from ..auth import AccessContext, require_user_or_admin
from ..services import stage_guard
from ..services import versions as versions_service
from ..utils import utcnow
from .versions import serialize_version

router = APIRouter()

def _get_offer(session: Session, offer_id: int) -> Offer:
    offer = session.get(Offer, offer_id)
    if not offer:
        raise HTTPException(404, "offer not found")
    return offer

def _items(session: Session, offer_id: int):
    return session.exec(select(OfferItem).where(OfferItem.offer_id == offer_id).order_by(OfferItem.id)).all()

def _recompute_total(session: Session, offer: Offer):
    offer.total_price = sum(i.quantity * i.unit_price for i in _items(session, offer.id))
    offer.updated_at = utcnow()
    session.add(offer)

def _serialize_offer(session: Session, offer: Offer):
    data = offer.model_dump()
    data["stage"] = OfferStage(offer.stage).value
    data["items"] = [i.model_dump() for i in _items(session, offer.id)]
    return data

@router.get("/stages")
def list_stages(ctx=Depends(require_user_or_admin)):
    return stage_guard.describe_stages()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_offer(
    payload: OfferCreate,
    session: Session = Depends(get_session),
    ctx: AccessContext = Depends(require_user_or_admin),
):
    if not session.get(Client, payload.client_id):
        raise HTTPException(404, "client not found")
    existing = session.exec(select(Offer).where(Offer.offer_number == payload.offer_number)).first()
    if existing:
        raise HTTPException(status.HTTP_409_CONFLICT, "offer number already exists")
    values = payload.model_dump()
    values["currency"] = values.get("currency") or DEFAULT_CURRENCY
    if values.get("salesperson_id") is None:
        values["salesperson_id"] = ctx.profile_id
    offer = Offer(**values)
    session.add(offer)
    session.commit()
    session.refresh(offer)
    return _serialize_offer(session, offer)

@router.get("")
def list_offers(
    stage: Optional[str] = None,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    stmt = select(Offer).order_by(Offer.created_at.desc())
    if stage:
        stmt = stmt.where(Offer.stage == stage_guard.parse_stage(stage))
    return [_serialize_offer(session, o) for o in session.exec(stmt).all()]

@router.get("/{offer_id}")
def get_offer(
    offer_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return _serialize_offer(session, _get_offer(session, offer_id))

@router.patch("/{offer_id}")
def update_offer(
    offer_id: int,
    payload: OfferUpdate,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    offer = _get_offer(session, offer_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(offer, key, value)
    offer.updated_at = utcnow()
    session.add(offer)
    session.commit()
    session.refresh(offer)
    return _serialize_offer(session, offer)

@router.post("/{offer_id}/stage")
def change_stage(
    offer_id: int,
    payload: StageChange,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    offer = stage_guard.request_transition(session, offer_id, payload.stage)
    return _serialize_offer(session, offer)

@router.post("/{offer_id}/items", status_code=status.HTTP_201_CREATED)
def add_item(
    offer_id: int,
    payload: OfferItemCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    offer = _get_offer(session, offer_id)
    stage_guard.ensure_items_editable(offer)
    item = OfferItem(offer_id=offer_id, **payload.model_dump())
    session.add(item)
    session.flush()
    _recompute_total(session, offer)
    session.commit()
    session.refresh(item)
    return item

@router.delete("/{offer_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    offer_id: int,
    item_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    offer = _get_offer(session, offer_id)
    item = session.get(OfferItem, item_id)
    if not item or item.offer_id != offer_id:
        raise HTTPException(404, "line item not found")
    stage_guard.ensure_items_editable(offer)
    session.delete(item)
    session.flush()
    _recompute_total(session, offer)
    session.commit()

@router.post("/{offer_id}/versions", status_code=status.HTTP_201_CREATED)
def create_offer_version(
    offer_id: int,
    payload: Optional[VersionCreate] = None,
    session: Session = Depends(get_session),
    ctx: AccessContext = Depends(require_user_or_admin),
):
    version = versions_service.create_version(
        session, "offer", offer_id, generated_by=ctx.profile_id, notes=payload.notes if payload else None
    )
    return serialize_version(version)

@router.get("/{offer_id}/versions")
def list_offer_versions(
    offer_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return [serialize_version(v) for v in versions_service.list_versions(session, "offer", offer_id)]
