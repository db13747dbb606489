import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./robocrm.db")
MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "documents")
MINIO_SECURE = os.getenv("MINIO_SECURE", "false").lower() in ("1", "true", "yes")
MINIO_REGION = os.getenv("MINIO_REGION", "us-east-1")
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
ADMIN_ACCESS_TOKEN = os.getenv("ADMIN_ACCESS_TOKEN")
SCHEDULER_TOKEN = os.getenv("SCHEDULER_TOKEN")
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
WORKER_QUEUE = os.getenv("WORKER_QUEUE", "crm")
WEB_BASE_URL = os.getenv("WEB_BASE_URL", "http://localhost:8000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "PLN")
REMINDER_LOOKAHEAD_DAYS = int(os.getenv("REMINDER_LOOKAHEAD_DAYS", "3"))
REMINDER_SEND_WORKERS = int(os.getenv("REMINDER_SEND_WORKERS", "4"))
VERSION_ALLOCATION_ATTEMPTS = int(os.getenv("VERSION_ALLOCATION_ATTEMPTS", "5"))
SHARE_LINK_MAX_AGE = int(os.getenv("SHARE_LINK_MAX_AGE", str(7 * 24 * 3600)))
PRESIGNED_URL_MAX_AGE = int(os.getenv("PRESIGNED_URL_MAX_AGE", str(3600)))
SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "Europe/Warsaw")
