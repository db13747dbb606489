"""
Offer pipeline stage transitions.

This module is the only writer of ``Offer.stage``. The API update schema
rejects a ``stage`` field, so every move goes through ``request_transition``.

Rules:
- leaving ``leads`` requires at least one line item on the offer
- once past ``leads`` any stage may move to any other stage, closed stages
  included
"""

import logging
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import NotFound, PreconditionFailed, UpstreamUnavailable, ValidationError
from ..models import Offer, OfferItem, OfferStage
from ..utils import utcnow

logger = logging.getLogger(__name__)

STAGE_LABELS: Dict[OfferStage, str] = {
    OfferStage.LEADS: "Leads",
    OfferStage.QUALIFIED: "Qualified",
    OfferStage.PROPOSAL_SENT: "Proposal Sent",
    OfferStage.NEGOTIATION: "In Negotiation",
    OfferStage.CLOSED_WON: "Closed Won",
    OfferStage.CLOSED_LOST: "Closed Lost",
}

TERMINAL_STAGES = (OfferStage.CLOSED_WON, OfferStage.CLOSED_LOST)

# Stages in which line items may still be added or removed
EDITABLE_STAGES = (OfferStage.LEADS, OfferStage.QUALIFIED)


def parse_stage(value) -> OfferStage:
    try:
        return OfferStage(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OfferStage)
        raise ValidationError(f"unknown stage {value!r}; expected one of: {allowed}")


def describe_stages() -> List[dict]:
    return [
        {"value": stage.value, "label": STAGE_LABELS[stage], "terminal": stage in TERMINAL_STAGES}
        for stage in OfferStage
    ]


def has_line_items(session: Session, offer_id: int) -> bool:
    return session.exec(select(OfferItem.id).where(OfferItem.offer_id == offer_id).limit(1)).first() is not None


def check_transition(session: Session, offer: Offer, target: OfferStage):
    """Raise ``PreconditionFailed`` if ``offer`` may not move to ``target``."""
    if OfferStage(offer.stage) == OfferStage.LEADS and target != OfferStage.LEADS:
        if not has_line_items(session, offer.id):
            raise PreconditionFailed(
                f"offer {offer.offer_number} needs at least one line item before leaving the leads stage"
            )


def request_transition(session: Session, offer_id: int, target_stage) -> Offer:
    target = parse_stage(target_stage)
    try:
        offer = session.get(Offer, offer_id)
        if not offer:
            raise NotFound(f"offer {offer_id} not found")
        previous = OfferStage(offer.stage)
        check_transition(session, offer, target)
        offer.stage = target
        offer.updated_at = utcnow()
        session.add(offer)
        session.commit()
        session.refresh(offer)
    except SQLAlchemyError as exc:
        session.rollback()
        raise UpstreamUnavailable(f"record store error while moving offer {offer_id}: {exc}") from exc
    logger.info("offer %s stage %s -> %s", offer.offer_number, previous.value, target.value)
    return offer


def ensure_items_editable(offer: Offer):
    stage = OfferStage(offer.stage)
    if stage not in EDITABLE_STAGES:
        raise PreconditionFailed(
            f"line items of offer {offer.offer_number} are locked in stage {stage.value}"
        )
