import logging
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy import inspect, text
from sqlalchemy.exc import NoSuchTableError
from .config import DATABASE_URL

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=_connect_args)

def init_db():
    from .models import (  # noqa: F401
        Profile, Client, Offer, OfferItem, Contract, DocumentVersion,
        EmailDeliveryRecord, ReportSubscription, SystemSetting,
    )
    SQLModel.metadata.create_all(engine)
    _ensure_version_status_column()
    _ensure_version_unique_index()

def get_session():
    with Session(engine) as session:
        yield session

def _ensure_version_status_column():
    # rows written before upload tracking existed were all stored successfully
    inspector = inspect(engine)
    try:
        columns = [col["name"] for col in inspector.get_columns("documentversion")]
    except NoSuchTableError:
        return
    if "status" in columns:
        return
    with engine.begin() as conn:
        conn.execute(text("ALTER TABLE documentversion ADD COLUMN status VARCHAR NOT NULL DEFAULT 'ready'"))

def _ensure_version_unique_index():
    # documentversion tables created before the unique constraint only get it here
    inspector = inspect(engine)
    try:
        indexes = inspector.get_indexes("documentversion")
        constraints = inspector.get_unique_constraints("documentversion")
    except NoSuchTableError:
        return
    names = {idx.get("name") for idx in indexes} | {uc.get("name") for uc in constraints}
    if "uq_document_version_number" in names:
        return
    with engine.begin() as conn:
        duplicates = conn.execute(text(
            "SELECT document_type, document_id, version_number FROM documentversion "
            "GROUP BY document_type, document_id, version_number HAVING COUNT(*) > 1"
        )).fetchall()
        if duplicates:
            logger.warning(
                "duplicate document version numbers found; resolve before enforcing uniqueness: %s",
                ", ".join(f"{row[0]} {row[1]} v{row[2]}" for row in duplicates),
            )
            return
        conn.execute(text(
            "CREATE UNIQUE INDEX IF NOT EXISTS uq_document_version_number "
            "ON documentversion(document_type, document_id, version_number)"
        ))
