import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import LOG_LEVEL
from .errors import CrmError
from .routers import profiles, clients, offers, contracts, versions, jobs, subscriptions, settings
from .db import init_db

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="RoboCRM API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(CrmError)
def handle_crm_error(request: Request, exc: CrmError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "message": exc.message})

@app.on_event("startup")
def on_startup():
    init_db()

app.include_router(profiles.router, prefix="/api/profiles", tags=["profiles"])
app.include_router(clients.router, prefix="/api/clients", tags=["clients"])
app.include_router(offers.router, prefix="/api/offers", tags=["offers"])
app.include_router(contracts.router, prefix="/api/contracts", tags=["contracts"])
app.include_router(versions.router, prefix="/api/versions", tags=["versions"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
app.include_router(subscriptions.router, prefix="/api/report-subscriptions", tags=["report-subscriptions"])
app.include_router(settings.router, prefix="/api/settings", tags=["settings"])

@app.get("/")
def root():
    return {"ok": True, "service": "robocrm-api"}
