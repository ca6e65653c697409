# routes_sync.py
# On-demand replay of the ledger channels into the read cache.
# The same replay runs at startup (SYNC_ON_STARTUP=1) and on a timer
# (SYNC_INTERVAL_SEC>0), see main.py.

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .Database.db import SessionLocal
from .services.ledger import LedgerGateway, get_ledger
from .services.replicator import replay_all

router = APIRouter(tags=["sync"])
log = logging.getLogger("gigchain.sync")


class ChannelResultOut(BaseModel):
    channel: str
    channel_id: str
    status: str
    events: int
    entities: int
    error: Optional[str] = None


def get_session_factory():
    """Replay opens one session per channel; tests point this at their DB."""
    return SessionLocal


@router.post("/sync", response_model=Dict[str, ChannelResultOut])
def sync_now(
    ledger: LedgerGateway = Depends(get_ledger),
    session_factory=Depends(get_session_factory),
):
    log.info("replay triggered via /sync")
    return replay_all(session_factory, ledger)
