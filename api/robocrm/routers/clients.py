from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from ..db import get_session
from ..models import Client
from ..schemas import ClientCreate
from ..auth import require_user_or_admin

router = APIRouter()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_client(
    payload: ClientCreate,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    client = Client(**payload.model_dump())
    session.add(client)
    session.commit()
    session.refresh(client)
    return client

@router.get("")
def list_clients(
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    return session.exec(select(Client).order_by(Client.name)).all()

@router.get("/{client_id}")
def get_client(
    client_id: int,
    session: Session = Depends(get_session),
    ctx=Depends(require_user_or_admin),
):
    client = session.get(Client, client_id)
    if not client:
        raise HTTPException(404, "client not found")
    return client
