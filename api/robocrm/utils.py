from datetime import date, datetime, timezone
from html import escape
import pytz
from itsdangerous import URLSafeTimedSerializer
from .config import SECRET_KEY, SCHEDULER_TIMEZONE

SCHEDULER_TZ = pytz.timezone(SCHEDULER_TIMEZONE)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def local_now() -> datetime:
    """Current time in the business timezone the schedulers run on."""
    return datetime.now(SCHEDULER_TZ)

def local_today() -> date:
    return local_now().date()

def to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(SCHEDULER_TZ)

def sanitize_html(value) -> str:
    if value is None:
        return ""
    return escape(str(value), quote=True)

def format_money(amount) -> str:
    return f"{amount or 0:,.2f}".replace(",", " ")

def format_date(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()

def make_token(payload: dict) -> str:
    s = URLSafeTimedSerializer(SECRET_KEY, salt="document-share")
    return s.dumps(payload)

def read_token(token: str, max_age: int) -> dict:
    s = URLSafeTimedSerializer(SECRET_KEY, salt="document-share")
    return s.loads(token, max_age=max_age)
