from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from ..db import get_session
from ..models import Client, Contract, Offer
from ..schemas import ContractCreate, VersionCreate
from ..auth import AccessContext, require_user_or_admin
from ..services import versions as versions_service
from .versions import serialize_version

router = APIRouter()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_contract(
    payload: ContractCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    if not session.get(Client, payload.client_id):
        raise HTTPException(404, "client not found")
    if payload.offer_id is not None and not session.get(Offer, payload.offer_id):
        raise HTTPException(404, "offer not found")
    existing = session.exec(select(Contract).where(Contract.contract_number == payload.contract_number)).first()
    if existing:
        raise HTTPException(status.HTTP_409_CONFLICT, "contract number already exists")
    contract = Contract(**payload.model_dump())
    session.add(contract)
    session.commit()
    session.refresh(contract)
    return contract

@router.get("")
def list_contracts(
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return session.exec(select(Contract).order_by(Contract.created_at.desc())).all()

@router.get("/{contract_id}")
def get_contract(
    contract_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    contract = session.get(Contract, contract_id)
    if not contract:
        raise HTTPException(404, "contract not found")
    return contract

@router.post("/{contract_id}/versions", status_code=status.HTTP_201_CREATED)
def create_contract_version(
    contract_id: int,
    payload: Optional[VersionCreate] = None,
    session: Session = Depends(get_session),
    ctx: AccessContext = Depends(require_user_or_admin),
):
    version = versions_service.create_version(
        session, "contract", contract_id, generated_by=ctx.profile_id, notes=payload.notes if payload else None
    )
    return serialize_version(version)

@router.get("/{contract_id}/versions")
def list_contract_versions(
    contract_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return [serialize_version(v) for v in versions_service.list_versions(session, "contract", contract_id)]
