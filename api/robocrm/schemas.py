from datetime import date
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional

class ProfileCreate(BaseModel):
    email: EmailStr
    full_name: str
    role: str = "salesperson"

class ClientCreate(BaseModel):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    general_email: Optional[EmailStr] = None

class OfferCreate(BaseModel):
    offer_number: str
    client_id: int
    salesperson_id: Optional[int] = None
    lead_status: Optional[str] = "new"
    next_action_date: Optional[date] = None
    total_price: Optional[float] = None
    currency: Optional[str] = None
    person_contact: Optional[str] = None
    notes: Optional[str] = None
    follow_up_notes: Optional[str] = None

class OfferUpdate(BaseModel):
    # stage moves go through POST /offers/{id}/stage only
    model_config = ConfigDict(extra="forbid")

    salesperson_id: Optional[int] = None
    lead_status: Optional[str] = None
    next_action_date: Optional[date] = None
    total_price: Optional[float] = None
    currency: Optional[str] = None
    person_contact: Optional[str] = None
    notes: Optional[str] = None
    follow_up_notes: Optional[str] = None

class OfferItemCreate(BaseModel):
    robot_model: str
    quantity: int = Field(default=1, ge=1)
    unit_price: float = Field(default=0.0, ge=0)

class StageChange(BaseModel):
    stage: str

class ContractCreate(BaseModel):
    contract_number: str
    client_id: int
    offer_id: Optional[int] = None
    status: str = "draft"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_model: Optional[str] = None
    monthly_payment: Optional[float] = None
    billing_schedule: Optional[str] = None
    terms: Optional[str] = None

class VersionCreate(BaseModel):
    notes: Optional[str] = None

class VersionEmail(BaseModel):
    recipient_email: EmailStr
    recipient_name: Optional[str] = Field(default=None, max_length=200)

class ReportTrigger(BaseModel):
    frequency: str
    force: bool = False

class SubscriptionCreate(BaseModel):
    recipient_email: EmailStr
    recipient_name: str
    frequency: str
    report_type: str = "all"
    enabled: bool = True

class SubscriptionUpdate(BaseModel):
    recipient_email: Optional[EmailStr] = None
    recipient_name: Optional[str] = None
    frequency: Optional[str] = None
    report_type: Optional[str] = None
    enabled: Optional[bool] = None

class PdfSettings(BaseModel):
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    company_email: Optional[str] = None
    primary_color: Optional[str] = Field(default=None, pattern=r"^#?[0-9a-fA-F]{6}$")
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    terms_conditions: Optional[str] = None
    preset: Optional[str] = None
