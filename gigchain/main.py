# gigchain/main.py
# FastAPI app with CORS, DB health endpoints, routers, domain error handlers
# and the APScheduler replay job via Lifespan.

from __future__ import annotations

import logging, sys, os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from . import config
from .Database.db import SessionLocal, get_db, init_db
from .errors import install_error_handlers
from .services.ledger import get_ledger
from .services.replicator import replay_all

# Routers
from .routes_users import router as users_router
from .routes_gigs import router as gigs_router
from .routes_escrow import router as escrow_router
from .routes_arbiter import router as arbiter_router
from .routes_applications import router as applications_router
from .routes_invitations import router as invitations_router
from .routes_reviews import router as reviews_router
from .routes_messages import router as messages_router
from .routes_rewards import router as rewards_router
from .routes_sync import router as sync_router
from .routes_ledger import router as ledger_router

# --------------------------- Logging setup ---------------------------
LOG_DIR = config.log_dir()
os.makedirs(LOG_DIR, exist_ok=True)

def _setup_logger(name: str, filename: str) -> logging.Logger:
    """Create a named logger that logs to rotating file + stdout (for Docker/K8s)."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    fmt = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')

    fh = RotatingFileHandler(
        os.path.join(LOG_DIR, filename),
        maxBytes=2_000_000,
        backupCount=5,
        encoding="utf-8",
    )
    fh.setFormatter(fmt)

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)

    # Avoid duplicate handlers on reload
    if not logger.handlers:
        logger.addHandler(fh)
        logger.addHandler(sh)

    return logger

# Children (gigchain.ledger, gigchain.escrow, gigchain.sync, ...) propagate here.
_setup_logger("gigchain", "gigchain.log")


logger = logging.getLogger("gigchain.sync")
scheduler = AsyncIOScheduler()

def _replay_job():
    """Replay every channel; each channel uses its own short-lived session."""
    try:
        res = replay_all(SessionLocal, get_ledger())
        logger.info("Replay result: %s", res)
    except Exception as e:  # pragma: no cover
        logger.exception("Replay job failed: %s", e)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup ----
    init_db()
    interval = config.sync_interval_sec()
    if config.sync_on_startup():
        scheduler.add_job(_replay_job, next_run_time=datetime.now(timezone.utc))
        logger.info("Startup replay scheduled (SYNC_ON_STARTUP=1)")
    if interval > 0:
        scheduler.add_job(_replay_job, IntervalTrigger(seconds=interval), max_instances=1, coalesce=True)
        logger.info("Periodic replay every %ss", interval)
    if scheduler.get_jobs():
        scheduler.start()
        logger.info("Scheduler started")
    else:
        logger.info("Replay scheduling disabled (SYNC_ON_STARTUP=0, SYNC_INTERVAL_SEC=0)")

    yield

    # ---- Shutdown ----
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

app = FastAPI(title="gigchain", lifespan=lifespan)
install_error_handlers(app)

# --------------------------- CORS ---------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --------------------------- Health ---------------------------
@app.get("/health")
def health():
    """Basic liveness/ready probe (200 OK)."""
    return {"status": "ok"}

@app.get("/health/db")
def db_health(db: Session = Depends(get_db)):
    """Returns current DB time to verify DB connectivity."""
    try:
        row = db.execute(text("SELECT CURRENT_TIMESTAMP AS now")).mappings().first()
    except SQLAlchemyError as e:
        logger.warning("DB health check failed: %s", e)
        return {"status": "error", "error": str(e)}
    return {"status": "ok", "db_time": str(row["now"])}

# --------------------------- Routers ---------------------------
app.include_router(users_router)
app.include_router(gigs_router)
app.include_router(escrow_router)
app.include_router(arbiter_router)
app.include_router(applications_router)
app.include_router(invitations_router)
app.include_router(reviews_router)
app.include_router(messages_router)
app.include_router(rewards_router)
app.include_router(sync_router)
app.include_router(ledger_router)
