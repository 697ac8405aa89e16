import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import engine
from .routers import receipt_check_router, receipt_files_router
from .utils.migrations import get_migration_state, run_migrations_if_enabled

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Dental Receipt Check")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(receipt_check_router)
app.include_router(receipt_files_router)


@app.on_event("startup")
def _startup() -> None:
    run_migrations_if_enabled(engine)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "migrations": get_migration_state(engine)}
