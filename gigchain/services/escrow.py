# services/escrow.py
# Escrow orchestration (prepare / record) and arbiter overrides.
#
# Escrow state per gig:
#   (none) -assign-> IN_PROGRESS -lock-> LOCKED -release-> RELEASED
#   arbiter release: LOCKED -> RELEASED            (gig COMPLETED_BY_ARBITER)
#   arbiter cancel:  IN_PROGRESS | LOCKED -> CANCELLED  (gig CANCELLED_BY_ARBITER)
#
# prepare_*: validate against the store, do any platform-side staging, and
#            hand back unsigned payloads. Nothing is committed.
# record_*:  resolve ids the caller does not know yet, publish a GIG_UPDATE on
#            the gigs channel carrying every field we are about to change, then
#            commit the whole transition (plus XP) in one DB transaction.
#            Publishing first means a later replay reproduces the same row.

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..Database.store import increment_xp
from ..errors import (
    DomainError,
    ExternalOperationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    expect_status,
)
from ..models import Gig
from . import email
from .events import GigUpdate
from .lifecycle import accepted_freelancer, get_gig, get_profile, require_owner
from .resolver import resolve_entity_id

log = logging.getLogger("gigchain.escrow")

Resolver = Callable[[Any, str], str]


# ------------------------------ helpers ------------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _read_bytecode(path: Optional[str] = None) -> bytes:
    path = path or config.escrow_bytecode_path()
    try:
        with open(path, "rb") as fh:
            data = fh.read()
    except OSError as e:
        raise ExternalOperationError(
            f"Escrow bytecode not readable at {path}: {e}", code="escrow_bytecode_missing"
        ) from e
    text = data.strip()
    # Compiler output is usually hex text; accept raw bytes as well.
    if text[:2] in (b"0x", b"0X"):
        text = text[2:]
    try:
        return bytes.fromhex(text.decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        return data


def iter_chunks(data: bytes, size: int) -> Iterator[bytes]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(data), size):
        yield data[start:start + size]


def stage_bytecode(ledger: Any, bytecode: bytes, *, chunk_size: Optional[int] = None) -> str:
    """
    Upload bytecode in bounded chunks: the first creates the staging blob,
    the rest append to it. Each call returns only once the chunk is confirmed.
    """
    if not bytecode:
        raise ExternalOperationError("Escrow bytecode is empty", code="escrow_bytecode_missing")
    size = chunk_size or config.stage_chunk_size()
    blob_id: Optional[str] = None
    count = 0
    for chunk in iter_chunks(bytecode, size):
        receipt = ledger.stage_chunk(blob_id, chunk)
        blob_id = receipt.entity_id
        count += 1
    log.info("staged %s bytes of escrow bytecode in %s chunk(s) as blob %s", len(bytecode), count, blob_id)
    return str(blob_id)


def _to_base_units(amount: Decimal) -> int:
    scaled = amount * (Decimal(10) ** config.token_decimals())
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"amount {amount} has more precision than the token allows",
            amount=str(amount),
        )
    return int(scaled)


def _positive_amount(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError) as e:
        raise ValidationError("amount must be a number", amount=amount) from e
    if value <= 0:
        raise ValidationError("amount must be positive", amount=str(value))
    return value


def _require_contract(gig: Gig) -> str:
    if not gig.escrow_contract_id:
        raise StateConflictError(
            f"Gig {gig.gig_ref_id} has no escrow contract",
            code="escrow_missing",
            entity_id=gig.gig_ref_id,
        )
    return gig.escrow_contract_id


def _require_accepted(session: Session, gig: Gig, freelancer_id: str) -> None:
    accepted = accepted_freelancer(session, gig)
    if accepted != freelancer_id:
        raise StateConflictError(
            f"Freelancer {freelancer_id} has no accepted application or invitation for this gig",
            code="freelancer_not_accepted",
            entity_id=gig.gig_ref_id,
            expected=accepted,
            actual=freelancer_id,
        )


def _publish_and_commit(
    session: Session,
    ledger: Any,
    gig: Gig,
    *,
    side_effects: Optional[Callable[[], None]] = None,
    **fields: Any,
) -> Gig:
    """
    Publish a GIG_UPDATE with `fields`, then apply the same fields (and any
    side effects) to the row and commit. Any failure leaves the row untouched.
    """
    event = GigUpdate(gig_ref_id=gig.gig_ref_id, timestamp=_now(), **fields)
    try:
        receipt = ledger.publish(config.gigs_channel_id(), event.to_payload())
    except DomainError:
        session.rollback()
        raise

    try:
        for column, value in event.to_columns().items():
            setattr(gig, column, value)
        if receipt.sequence_number is not None:
            gig.hcs_sequence_number = receipt.sequence_number
        if side_effects is not None:
            side_effects()
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        log.exception("commit failed for gig %s after publishing %s", gig.gig_ref_id, fields)
        raise
    session.refresh(gig)
    return gig


# ------------------------------ assignment ------------------------------

def prepare_assignment(
    session: Session,
    ledger: Any,
    *,
    gig_ref_id: str,
    client_id: str,
    freelancer_id: str,
) -> Dict[str, Any]:
    if not freelancer_id:
        raise ValidationError("freelancer_id is required")
    gig = get_gig(session, gig_ref_id)
    require_owner(gig, client_id, "assign a freelancer")
    expect_status("Gig", gig_ref_id, gig.status, "OPEN")
    _require_accepted(session, gig, freelancer_id)

    blob_id = stage_bytecode(ledger, _read_bytecode())

    contract_create = ledger.build_unsigned(
        config.escrow_pallet(),
        "create_escrow",
        {
            "blob_id": blob_id,
            "client": client_id,
            "freelancer": freelancer_id,
            "gas_limit": config.escrow_gas_limit(),
        },
    )
    update = GigUpdate(
        gig_ref_id=gig_ref_id,
        client_id=client_id,
        status="IN_PROGRESS",
        escrow_status="IN_PROGRESS",
        assigned_freelancer_id=freelancer_id,
        timestamp=_now(),
    )
    status_update = ledger.build_unsigned(
        config.channel_pallet(),
        "submit_message",
        {"channel_id": config.gigs_channel_id(), "message": json.dumps(update.to_payload())},
    )
    log.info("prepared assignment of gig %s to %s (blob %s)", gig_ref_id, freelancer_id, blob_id)
    return {
        "gig_ref_id": gig_ref_id,
        "freelancer_id": freelancer_id,
        "blob_id": blob_id,
        "contract_create": contract_create.as_dict(),
        "status_update": status_update.as_dict(),
        "update_payload": update.to_payload(),
    }


def record_assignment(
    session: Session,
    ledger: Any,
    *,
    gig_ref_id: str,
    client_id: str,
    freelancer_id: str,
    transaction_id: Optional[str] = None,
    escrow_contract_id: Optional[str] = None,
    update_payload: Optional[Dict[str, Any]] = None,
    resolve: Resolver = resolve_entity_id,
) -> Gig:
    if not freelancer_id:
        raise ValidationError("freelancer_id is required")
    if not transaction_id and not escrow_contract_id:
        raise ValidationError("transaction_id or escrow_contract_id is required")
    if update_payload is not None and (
        update_payload.get("gigRefId") != gig_ref_id
        or update_payload.get("assignedFreelancerId") != freelancer_id
    ):
        raise ValidationError("update_payload does not match this assignment", entity_id=gig_ref_id)

    gig = get_gig(session, gig_ref_id, for_update=True)
    try:
        require_owner(gig, client_id, "assign a freelancer")
        expect_status("Gig", gig_ref_id, gig.status, "OPEN")
        _require_accepted(session, gig, freelancer_id)
        contract_id = escrow_contract_id or resolve(ledger, transaction_id)
    except DomainError:
        session.rollback()
        raise

    gig = _publish_and_commit(
        session, ledger, gig,
        status="IN_PROGRESS",
        escrow_status="IN_PROGRESS",
        escrow_contract_id=contract_id,
        assigned_freelancer_id=freelancer_id,
    )
    log.info("gig %s assigned to %s with escrow %s", gig_ref_id, freelancer_id, contract_id)
    return gig


# ------------------------------ lock ------------------------------

def _check_lockable(gig: Gig, client_id: str) -> str:
    require_owner(gig, client_id, "lock funds")
    expect_status("Gig", gig.gig_ref_id, gig.status, "IN_PROGRESS")
    expect_status("Escrow", gig.gig_ref_id, gig.escrow_status, "IN_PROGRESS")
    return _require_contract(gig)


def prepare_lock(session: Session, ledger: Any, *, gig_ref_id: str, client_id: str, amount: Any) -> Dict[str, Any]:
    value = _positive_amount(amount)
    gig = get_gig(session, gig_ref_id)
    contract_id = _check_lockable(gig, client_id)
    tx = ledger.build_unsigned(
        config.escrow_pallet(),
        "lock_funds",
        {"escrow_id": contract_id, "amount": _to_base_units(value)},
    )
    return {"gig_ref_id": gig_ref_id, "escrow_contract_id": contract_id, "amount": str(value), "transaction": tx.as_dict()}


def record_lock(
    session: Session,
    ledger: Any,
    *,
    gig_ref_id: str,
    client_id: str,
    amount: Any,
    transaction_id: Optional[str] = None,
) -> Gig:
    value = _positive_amount(amount)
    gig = get_gig(session, gig_ref_id, for_update=True)
    try:
        _check_lockable(gig, client_id)
    except DomainError:
        session.rollback()
        raise
    gig = _publish_and_commit(session, ledger, gig, escrow_status="LOCKED", locked_amount=value)
    log.info("escrow for gig %s locked (%s, tx=%s)", gig_ref_id, value, transaction_id)
    return gig


# ------------------------------ release ------------------------------

def _check_releasable(gig: Gig, client_id: str) -> str:
    require_owner(gig, client_id, "release funds")
    expect_status("Gig", gig.gig_ref_id, gig.status, "IN_PROGRESS")
    expect_status("Escrow", gig.gig_ref_id, gig.escrow_status, "LOCKED")
    return _require_contract(gig)


def prepare_release(session: Session, ledger: Any, *, gig_ref_id: str, client_id: str) -> Dict[str, Any]:
    gig = get_gig(session, gig_ref_id)
    contract_id = _check_releasable(gig, client_id)
    tx = ledger.build_unsigned(config.escrow_pallet(), "release_funds", {"escrow_id": contract_id})
    return {"gig_ref_id": gig_ref_id, "escrow_contract_id": contract_id, "transaction": tx.as_dict()}


def record_release(
    session: Session,
    ledger: Any,
    *,
    gig_ref_id: str,
    client_id: str,
    transaction_id: Optional[str] = None,
) -> Gig:
    gig = get_gig(session, gig_ref_id, for_update=True)
    try:
        _check_releasable(gig, client_id)
    except DomainError:
        session.rollback()
        raise

    freelancer_id = gig.assigned_freelancer_id
    xp = config.xp_per_release()

    def _award_xp() -> None:
        if freelancer_id:
            increment_xp(session, freelancer_id, xp)

    gig = _publish_and_commit(
        session, ledger, gig,
        side_effects=_award_xp,
        status="COMPLETED",
        escrow_status="RELEASED",
    )
    log.info("escrow for gig %s released to %s (+%s XP, tx=%s)", gig_ref_id, freelancer_id, xp, transaction_id)

    freelancer = get_profile(session, freelancer_id)
    if freelancer:
        email.escrow_released(freelancer.email, freelancer_name=freelancer.name, gig_title=gig.title, xp_awarded=xp)
    return gig


# ------------------------------ arbiter ------------------------------

def _gig_by_contract(session: Session, escrow_contract_id: str) -> Gig:
    if not escrow_contract_id:
        raise ValidationError("escrow_contract_id is required")
    gig = (
        session.query(Gig)
        .filter(Gig.escrow_contract_id == escrow_contract_id)
        .with_for_update()
        .first()
    )
    if gig is None:
        raise NotFoundError(
            f"No gig linked to escrow {escrow_contract_id}",
            code="escrow_not_found",
            entity_id=escrow_contract_id,
        )
    return gig


def _arbitrate(
    session: Session,
    ledger: Any,
    *,
    escrow_contract_id: str,
    function: str,
    allowed_escrow: tuple,
    gig_status: str,
    escrow_status: str,
) -> Gig:
    gig = _gig_by_contract(session, escrow_contract_id)
    try:
        expect_status("Gig", gig.gig_ref_id, gig.status, "IN_PROGRESS")
        expect_status("Escrow", gig.gig_ref_id, gig.escrow_status, *allowed_escrow)
        ledger.execute_privileged(escrow_contract_id, function)
    except DomainError:
        session.rollback()
        raise

    gig = _publish_and_commit(session, ledger, gig, status=gig_status, escrow_status=escrow_status)
    log.warning("arbiter %s on escrow %s: gig %s -> %s", function, escrow_contract_id, gig.gig_ref_id, gig_status)
    return gig


def arbiter_release(session: Session, ledger: Any, *, escrow_contract_id: str) -> Gig:
    return _arbitrate(
        session, ledger,
        escrow_contract_id=escrow_contract_id,
        function="arbiter_release",
        allowed_escrow=("LOCKED",),
        gig_status="COMPLETED_BY_ARBITER",
        escrow_status="RELEASED",
    )


def arbiter_cancel(session: Session, ledger: Any, *, escrow_contract_id: str) -> Gig:
    return _arbitrate(
        session, ledger,
        escrow_contract_id=escrow_contract_id,
        function="arbiter_cancel",
        allowed_escrow=("IN_PROGRESS", "LOCKED"),
        gig_status="CANCELLED_BY_ARBITER",
        escrow_status="CANCELLED",
    )
