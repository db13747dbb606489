from enum import Enum
from typing import Optional
from datetime import date, datetime
from sqlalchemy import Column, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlmodel import SQLModel, Field as ORMField
from .config import DEFAULT_CURRENCY
from .utils import utcnow


class OfferStage(str, Enum):
    LEADS = "leads"
    QUALIFIED = "qualified"
    PROPOSAL_SENT = "proposal_sent"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


class DocumentType(str, Enum):
    OFFER = "offer"
    CONTRACT = "contract"


# lead_status values that mean the lead is finished even though stage is still "leads"
TERMINAL_LEAD_STATUSES = ("closed_won", "closed_lost")

VERSION_PENDING = "pending"
VERSION_READY = "ready"
VERSION_FAILED = "failed"


class Profile(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str
    full_name: str
    role: str = "salesperson"  # admin|manager|salesperson
    access_token: Optional[str] = ORMField(default=None, unique=True, index=True)

class Client(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    general_email: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow)

class Offer(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    offer_number: str = ORMField(unique=True, index=True)
    client_id: int = ORMField(foreign_key="client.id")
    salesperson_id: Optional[int] = ORMField(default=None, foreign_key="profile.id")
    stage: OfferStage = ORMField(
        default=OfferStage.LEADS,
        sa_column=Column(
            SAEnum(OfferStage, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
            nullable=False,
        ),
    )
    lead_status: Optional[str] = "new"
    next_action_date: Optional[date] = None
    total_price: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    person_contact: Optional[str] = None
    notes: Optional[str] = None
    follow_up_notes: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow)
    updated_at: Optional[datetime] = None

class OfferItem(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    offer_id: int = ORMField(foreign_key="offer.id", index=True)
    robot_model: str
    quantity: int = 1
    unit_price: float = 0.0
    created_at: datetime = ORMField(default_factory=utcnow)

class Contract(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    contract_number: str = ORMField(unique=True, index=True)
    client_id: int = ORMField(foreign_key="client.id")
    offer_id: Optional[int] = ORMField(default=None, foreign_key="offer.id")
    status: str = "draft"  # draft|pending_signature|active|expired|cancelled
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_model: Optional[str] = None
    monthly_payment: Optional[float] = None
    billing_schedule: Optional[str] = None
    terms: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow)

class DocumentVersion(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("document_type", "document_id", "version_number", name="uq_document_version_number"),
    )

    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_type: str = ORMField(index=True)  # offer|contract
    document_id: int = ORMField(index=True)
    version_number: int
    storage_key: str = ORMField(unique=True)
    generated_at: datetime = ORMField(default_factory=utcnow)
    status: str = ORMField(default=VERSION_PENDING, index=True)  # pending|ready|failed
    generated_by: Optional[int] = ORMField(default=None, foreign_key="profile.id")
    notes: Optional[str] = None

class EmailDeliveryRecord(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    document_version_id: int = ORMField(foreign_key="documentversion.id", index=True)
    sent_to: str
    sent_by: Optional[int] = ORMField(default=None, foreign_key="profile.id")
    status: str = "sent"
    notes: Optional[str] = None
    sent_at: datetime = ORMField(default_factory=utcnow)

class ReportSubscription(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    report_type: str = "all"  # all|sales|activity|reseller|ending
    recipient_email: str
    recipient_name: str
    frequency: str  # weekly|monthly
    enabled: bool = True
    last_sent_at: Optional[datetime] = None
    created_by: Optional[int] = ORMField(default=None, foreign_key="profile.id")
    created_at: datetime = ORMField(default_factory=utcnow)

class SystemSetting(SQLModel, table=True):
    key: str = ORMField(primary_key=True)
    value: Optional[str] = None
