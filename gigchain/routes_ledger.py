# routes_ledger.py
# Ledger gateway surface:
# - /ledger/submit: relay a wallet-signed extrinsic (base64 SCALE bytes)
# - /ledger/health, /ledger/debug-config: diagnostics

from __future__ import annotations

import base64
import binascii
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from . import config
from .errors import ValidationError
from .services.ledger import LedgerGateway, get_ledger

router = APIRouter(prefix="/ledger", tags=["ledger"])


class SubmitIn(BaseModel):
    signed_transaction: str = Field(min_length=1, description="base64 of the signed extrinsic")


class SubmitOut(BaseModel):
    operation_id: Optional[str] = None
    entity_id: Optional[str] = None
    success: bool


@router.post("/submit", response_model=SubmitOut)
def submit(body: SubmitIn, ledger: LedgerGateway = Depends(get_ledger)):
    try:
        raw = base64.b64decode(body.signed_transaction, validate=True)
    except binascii.Error as e:
        raise ValidationError("signed_transaction is not valid base64") from e
    receipt = ledger.submit_signed(raw)
    return {"operation_id": receipt.operation_id, "entity_id": receipt.entity_id, "success": receipt.success}


@router.get("/health")
def ledger_health(ledger: LedgerGateway = Depends(get_ledger)):
    """Quick RPC checks: chain name, health, runtime version, best header."""
    return ledger.health()


@router.get("/debug-config")
def debug_config():
    return {
        "ws_url": config.ws_url(),
        "type_registry_preset": config.type_registry_preset(),
        "channel_pallet": config.channel_pallet(),
        "escrow_pallet": config.escrow_pallet(),
        "code_stage_pallet": config.code_stage_pallet(),
        "signer_source": "URI" if config.signer_uri() else ("MNEMONIC" if config.signer_mnemonic() else "NONE"),
        "wait_for_finalization": config.wait_for_finalization(),
        "indexer_url": config.indexer_url(),
        "channels": {
            "profiles": config.profile_channel_id(),
            "gigs": config.gigs_channel_id(),
            "messages": config.messages_channel_id(),
        },
        "resolver": {"attempts": config.resolver_attempts(), "interval_sec": config.resolver_interval_sec()},
        "stage_chunk_size": config.stage_chunk_size(),
    }
