"""
Immutable PDF snapshots of offers and contracts.

Version numbers are allocated per document as max + 1, and the unique
constraint on (document_type, document_id, version_number) serializes
concurrent writers: the metadata row is inserted first, a duplicate number
is rolled back and re-read, and only the winner uploads its bytes.

A reserved row starts out ``pending`` and only becomes ``ready`` once its
bytes are stored; reads and listings see ready rows only. Rows whose upload
failed stay behind as ``failed`` so their number is never handed out again.
Numbers are strictly increasing per document, but the ready sequence can
have gaps.
"""

import logging
import re
from html import escape
from typing import List, Optional, Tuple, Union

from email_validator import EmailNotValidError, validate_email
from itsdangerous import BadSignature
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..config import (
    DEFAULT_CURRENCY,
    PRESIGNED_URL_MAX_AGE,
    SHARE_LINK_MAX_AGE,
    VERSION_ALLOCATION_ATTEMPTS,
    WEB_BASE_URL,
)
from ..email import format_sender_name, send_email
from ..errors import CrmError, NotFound, UpstreamUnavailable, ValidationError, VersionConflict
from ..models import (
    Client,
    Contract,
    DocumentType,
    DocumentVersion,
    EmailDeliveryRecord,
    Offer,
    OfferItem,
    OfferStage,
    Profile,
    SystemSetting,
    VERSION_FAILED,
    VERSION_PENDING,
    VERSION_READY,
)
from ..pdf import LineItem, PdfTemplate, RenderInputs, render_document, stamp_metadata
from ..storage import ArtifactExists, delete_object, get_bytes, public_url, put_bytes
from ..utils import format_date, format_money, make_token, read_token, utcnow
from .stage_guard import STAGE_LABELS

logger = logging.getLogger(__name__)

STORAGE_PREFIX = {DocumentType.OFFER: "offers", DocumentType.CONTRACT: "contracts"}
MAX_RECIPIENT_NAME = 200

Document = Union[Offer, Contract]


def parse_document_type(value) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        raise ValidationError(f"unknown document type {value!r}")


def get_document(session: Session, document_type: DocumentType, document_id: int) -> Document:
    model = Offer if document_type == DocumentType.OFFER else Contract
    doc = session.get(model, document_id)
    if not doc:
        raise NotFound(f"{document_type.value} {document_id} not found")
    return doc


def document_number(doc: Document) -> str:
    return doc.offer_number if isinstance(doc, Offer) else doc.contract_number


def storage_key_for(document_type: DocumentType, document_id: int, number: str, version_number: int) -> str:
    safe_number = re.sub(r"[^A-Za-z0-9._-]+", "_", number).strip("_") or str(document_id)
    return f"{STORAGE_PREFIX[document_type]}/{document_id}/{safe_number}_v{version_number}.pdf"


def load_template(session: Session) -> PdfTemplate:
    rows = session.exec(select(SystemSetting).where(SystemSetting.key.startswith("pdf_"))).all()
    return PdfTemplate.from_settings({row.key: row.value for row in rows})


def _client_block(client: Optional[Client]):
    if not client:
        return None, []
    fields = []
    if client.address:
        fields.append(("Address", client.address))
    if client.city:
        fields.append(("City", client.city))
    return client.name, fields


def _offer_items(session: Session, offer_id: int) -> List[LineItem]:
    items = session.exec(
        select(OfferItem).where(OfferItem.offer_id == offer_id).order_by(OfferItem.id)
    ).all()
    return [LineItem(description=i.robot_model, quantity=i.quantity, unit_price=i.unit_price) for i in items]


def build_offer_inputs(session: Session, offer: Offer) -> RenderInputs:
    client_name, client_fields = _client_block(session.get(Client, offer.client_id))
    return RenderInputs(
        title="offer",
        number_label="Offer Number",
        number=offer.offer_number,
        issued_at=offer.created_at,
        fields=[("Stage", STAGE_LABELS[OfferStage(offer.stage)])],
        client_name=client_name,
        client_fields=client_fields,
        line_items=_offer_items(session, offer.id),
        currency=offer.currency,
        total=offer.total_price,
        notes=offer.notes,
    )


def build_contract_inputs(session: Session, contract: Contract) -> RenderInputs:
    client_name, client_fields = _client_block(session.get(Client, contract.client_id))
    fields = [("Status", contract.status.upper())]
    if contract.start_date:
        fields.append(("Start Date", format_date(contract.start_date)))
    if contract.end_date:
        fields.append(("End Date", format_date(contract.end_date)))
    currency = DEFAULT_CURRENCY
    items: List[LineItem] = []
    total = None
    if contract.offer_id:
        offer = session.get(Offer, contract.offer_id)
        if offer:
            items = _offer_items(session, offer.id)
            currency = offer.currency
            total = offer.total_price
    terms = []
    if contract.payment_model:
        terms.append(("Payment Model", contract.payment_model))
    if contract.monthly_payment:
        terms.append(("Monthly Payment", f"{format_money(contract.monthly_payment)} {currency}"))
    if contract.billing_schedule:
        terms.append(("Billing Schedule", contract.billing_schedule))
    return RenderInputs(
        title="contract",
        number_label="Contract Number",
        number=contract.contract_number,
        issued_at=contract.created_at,
        fields=fields,
        client_name=client_name,
        client_fields=client_fields,
        line_items=items,
        currency=currency,
        total=total,
        notes=contract.terms,
        sections=[("Contract Terms", terms)],
    )


def current_max_version(session: Session, document_type: DocumentType, document_id: int) -> int:
    # failed and pending rows count too, so a number is never handed out twice
    value = session.exec(
        select(func.max(DocumentVersion.version_number)).where(
            DocumentVersion.document_type == document_type.value,
            DocumentVersion.document_id == document_id,
        )
    ).one()
    return value or 0


def _reserve_version(
    session: Session,
    document_type: DocumentType,
    document_id: int,
    number: str,
    generated_by: Optional[int],
    notes: Optional[str],
) -> DocumentVersion:
    for attempt in range(1, VERSION_ALLOCATION_ATTEMPTS + 1):
        next_number = current_max_version(session, document_type, document_id) + 1
        version = DocumentVersion(
            document_type=document_type.value,
            document_id=document_id,
            version_number=next_number,
            storage_key=storage_key_for(document_type, document_id, number, next_number),
            generated_by=generated_by,
            notes=notes,
            status=VERSION_PENDING,
        )
        session.add(version)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(
                "version %d of %s %s was taken concurrently (attempt %d/%d)",
                next_number, document_type.value, document_id, attempt, VERSION_ALLOCATION_ATTEMPTS,
            )
            continue
        session.refresh(version)
        return version
    raise VersionConflict(
        f"could not allocate a version number for {document_type.value} {document_id} "
        f"after {VERSION_ALLOCATION_ATTEMPTS} attempts"
    )


def _mark(session: Session, version: DocumentVersion, status: str):
    version.status = status
    try:
        session.add(version)
        session.commit()
        session.refresh(version)
    except SQLAlchemyError as exc:
        session.rollback()
        raise UpstreamUnavailable(f"could not mark version {version.id} {status}: {exc}") from exc


def _publish(session: Session, version: DocumentVersion, data: bytes) -> bool:
    """Upload the bytes for a reserved row and flip it to ready.

    Returns False when a stale object already occupies the key; the row is
    marked failed and the caller moves on to the next number. Any other
    upload error marks the row failed, removes whatever may have landed at
    the key and propagates.
    """
    try:
        put_bytes(version.storage_key, data, content_type="application/pdf")
    except ArtifactExists:
        logger.warning(
            "stale object at %s, retiring version %d and moving on",
            version.storage_key, version.version_number,
        )
        _mark(session, version, VERSION_FAILED)
        return False
    except CrmError:
        try:
            delete_object(version.storage_key)
        except CrmError as cleanup_exc:
            logger.warning("could not clean up %s after failed upload: %s", version.storage_key, cleanup_exc)
        _mark(session, version, VERSION_FAILED)
        raise
    _mark(session, version, VERSION_READY)
    return True


def create_version(
    session: Session,
    document_type,
    document_id: int,
    generated_by: Optional[int] = None,
    notes: Optional[str] = None,
) -> DocumentVersion:
    document_type = parse_document_type(document_type)
    try:
        doc = get_document(session, document_type, document_id)
        if isinstance(doc, Offer):
            inputs = build_offer_inputs(session, doc)
        else:
            inputs = build_contract_inputs(session, doc)
        template = load_template(session)
        number = document_number(doc)
        pdf_bytes = render_document(inputs, template)
    except SQLAlchemyError as exc:
        session.rollback()
        raise UpstreamUnavailable(f"record store error while versioning {document_type.value} {document_id}: {exc}") from exc

    for _ in range(VERSION_ALLOCATION_ATTEMPTS):
        try:
            version = _reserve_version(session, document_type, document_id, number, generated_by, notes)
        except SQLAlchemyError as exc:
            session.rollback()
            raise UpstreamUnavailable(f"record store error while versioning {document_type.value} {document_id}: {exc}") from exc
        stamped = stamp_metadata(
            pdf_bytes,
            f"{inputs.title.title()} {number}",
            version.version_number,
            version.generated_at,
        )
        if _publish(session, version, stamped):
            logger.info(
                "created %s %s version %d at %s",
                document_type.value, number, version.version_number, version.storage_key,
            )
            return version
    raise VersionConflict(
        f"every reserved key for {document_type.value} {document_id} was already occupied "
        f"after {VERSION_ALLOCATION_ATTEMPTS} attempts"
    )


def get_version(session: Session, version_id: int) -> DocumentVersion:
    version = session.get(DocumentVersion, version_id)
    if not version or version.status != VERSION_READY:
        raise NotFound(f"document version {version_id} not found")
    return version


def fetch_version(session: Session, version_id: int) -> Tuple[DocumentVersion, bytes]:
    version = get_version(session, version_id)
    return version, get_bytes(version.storage_key)


def download_url(session: Session, version_id: int) -> str:
    version = get_version(session, version_id)
    return public_url(version.storage_key, PRESIGNED_URL_MAX_AGE)


def list_versions(session: Session, document_type, document_id: int) -> List[DocumentVersion]:
    document_type = parse_document_type(document_type)
    get_document(session, document_type, document_id)
    return session.exec(
        select(DocumentVersion)
        .where(
            DocumentVersion.document_type == document_type.value,
            DocumentVersion.document_id == document_id,
            DocumentVersion.status == VERSION_READY,
        )
        .order_by(DocumentVersion.version_number.desc())
    ).all()


def list_deliveries(session: Session, version_id: int) -> List[EmailDeliveryRecord]:
    get_version(session, version_id)
    return session.exec(
        select(EmailDeliveryRecord)
        .where(EmailDeliveryRecord.document_version_id == version_id)
        .order_by(EmailDeliveryRecord.sent_at.desc())
    ).all()


def _validate_recipient(recipient_email: str, recipient_name: Optional[str]) -> str:
    if recipient_name and len(recipient_name) > MAX_RECIPIENT_NAME:
        raise ValidationError(f"recipient name longer than {MAX_RECIPIENT_NAME} characters")
    try:
        return validate_email(recipient_email or "", check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"invalid recipient email: {exc}") from exc


def _document_email(kind: str, number: str, recipient_name: str):
    safe_name = escape(recipient_name)
    safe_number = escape(number)
    text_body = (
        f"Dear {recipient_name},\n\n"
        f"Please find attached {kind.lower()} {number} for your review.\n"
        "If you have any questions, please don't hesitate to contact us.\n\n"
        "Best regards,\nThe Sales Team"
    )
    html_body = f"""
<html>
  <body style="font-family: Arial, sans-serif; background: #f5f6f8; padding: 24px;">
    <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 12px; padding: 24px;">
      <h1 style="color: #333; font-size: 20px;">Your {kind} {safe_number}</h1>
      <p>Dear {safe_name},</p>
      <p>Please find attached {kind.lower()} <strong>{safe_number}</strong> for your review.</p>
      <p>If you have any questions, please don&apos;t hesitate to contact us.</p>
      <p>Best regards,<br>The Sales Team</p>
    </div>
  </body>
</html>
"""
    return text_body, html_body


def email_version(
    session: Session,
    version_id: int,
    recipient_email: str,
    recipient_name: Optional[str] = None,
    sent_by: Optional[Profile] = None,
) -> EmailDeliveryRecord:
    recipient_email = _validate_recipient(recipient_email, recipient_name)
    version = get_version(session, version_id)
    document_type = DocumentType(version.document_type)
    doc = get_document(session, document_type, version.document_id)
    number = document_number(doc)
    pdf_bytes = get_bytes(version.storage_key)

    kind = "Offer" if document_type == DocumentType.OFFER else "Contract"
    text_body, html_body = _document_email(kind, number, recipient_name or "Client")
    safe_number = re.sub(r"[^A-Za-z0-9._-]+", "_", number)
    attachments = [{
        "filename": f"{kind}_{safe_number}.pdf",
        "content": pdf_bytes,
        "maintype": "application",
        "subtype": "pdf",
    }]
    send_email(
        recipient_email,
        f"{kind} {number}",
        text_body,
        html_body=html_body,
        attachments=attachments,
        sender_name=format_sender_name(sent_by.full_name if sent_by else None),
        reply_to=sent_by.email if sent_by else None,
    )

    record = EmailDeliveryRecord(
        document_version_id=version.id,
        sent_to=recipient_email,
        sent_by=sent_by.id if sent_by else None,
        status="sent",
        notes=f"{kind} {number} v{version.version_number}",
        sent_at=utcnow(),
    )
    try:
        session.add(record)
        session.commit()
        session.refresh(record)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("email for version %s was sent but the delivery record failed: %s", version.id, exc)
        raise UpstreamUnavailable(f"email sent but delivery record could not be stored: {exc}") from exc
    logger.info("emailed %s %s v%d to %s", kind.lower(), number, version.version_number, recipient_email)
    return record


def share_link(session: Session, version_id: int) -> str:
    version = get_version(session, version_id)
    token = make_token({"version_id": version.id})
    return f"{WEB_BASE_URL.rstrip('/')}/api/versions/shared/{token}"


def resolve_share_token(session: Session, token: str) -> Tuple[DocumentVersion, bytes]:
    try:
        data = read_token(token, max_age=SHARE_LINK_MAX_AGE)
    except BadSignature as exc:
        raise NotFound("share link is invalid or has expired") from exc
    return fetch_version(session, data.get("version_id"))
