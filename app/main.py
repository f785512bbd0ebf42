"""
Aimalyze Backend API
Gameplay video cheat analysis with admission control (IP rate limit, plan quota, one-time free scan)
and signup abuse prevention.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations() -> bool:
    """Run Alembic migrations on startup. Uses alembic.ini; alembic/env.py connects with the app's DATABASE_URL.
    Returns False when migrations are not configured; raises if they fail,
    so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return False
    if not os.getenv("DATABASE_URL"):
        logger.warning("DATABASE_URL is not set, skipping Alembic migrations")
        return False
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
        return True
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise  # Fail startup so DB is not left out of sync; fix migration or env and redeploy


from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.routes import admin, analyze, quota, signup, stripe as stripe_router
from app.db.session import engine
from app.utils.disposable_email import ensure_blocklist_loaded
from app.db.base import Base
# Import all models to ensure they're registered with Base
from app.models import (  # noqa: F401
    Analysis, BlockedEmailDomain, ClientRequestEvent, DailyUsage,
    FreeScanUsage, SignupEvent, UsageLog, UserPlan,
)

app = FastAPI(title="Aimalyze")


@app.on_event("startup")
def startup_event():
    """Bring the schema up to date, then load the disposable email blocklist."""
    if not run_migrations():
        logger.info("Creating database tables from models")
        Base.metadata.create_all(bind=engine)

    # Load the blocklist now so a missing file shows up in deploy logs, not on the first signup
    try:
        n = ensure_blocklist_loaded()
        logger.info("Disposable email blocklist loaded: %s domains", n)
    except OSError as e:
        logger.warning("Disposable email blocklist load warning: %s", e)


FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        FRONTEND_URL,
    ],
    allow_origin_regex=r"https://.*\.netlify\.app",  # Deploy previews
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(analyze.router, tags=["Analysis"])
app.include_router(quota.router, tags=["Quota"])
app.include_router(signup.router, tags=["Signup"])
app.include_router(stripe_router.router, tags=["Billing"])
app.include_router(admin.router, tags=["Admin"])


@app.get("/health")
def health():
    return {"status": "ok"}
