# services/replicator.py
# Log replicator: rebuild the read cache from the ledger channels.
#
# For each channel we page through the full history first, fold the events
# in sequence order, and only then write, in one transaction per channel.
# A fetch error aborts that channel (nothing written) without touching the
# other channels. Running it twice over the same log yields the same state.
# A GIG_UPDATE that would leave a gig half-linked to its escrow, or that
# arrives after the gig finished, is dropped from the fold.

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..Database.store import replace_all, upsert_by_key
from ..errors import DomainError
from ..models import TERMINAL_GIG_STATUSES, Gig, Message, Profile
from .events import GigCreate, GigMessage, GigUpdate, ProfileCreate, decode_event
from .indexer import ChannelEvent, ChannelPage, IndexerNotFound

log = logging.getLogger("gigchain.sync")


@dataclass
class ChannelResult:
    channel: str
    channel_id: str
    status: str = "processed"
    events: int = 0
    entities: int = 0
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------------ fetch ------------------------------

def fetch_all(ledger: Any, channel_id: str) -> List[ChannelEvent]:
    """Every message of a channel, following the pagination cursor to the end."""
    events: List[ChannelEvent] = []
    cursor: Optional[str] = None
    while True:
        page: ChannelPage = ledger.fetch_channel_page(channel_id, cursor)
        events.extend(page.events)
        if not page.next_cursor:
            break
        cursor = page.next_cursor
    events.sort(key=lambda e: e.sequence_number)
    return events


def _decoded(events: List[ChannelEvent]) -> List[Tuple[ChannelEvent, Any]]:
    out = []
    for ev in events:
        decoded = decode_event(ev.message)
        if decoded is None:
            log.debug("skipping undecodable message seq=%s", ev.sequence_number)
            continue
        out.append((ev, decoded))
    return out


# ------------------------------ reducers ------------------------------

def fold_profiles(events: List[ChannelEvent]) -> Tuple[Dict[str, Dict[str, Any]], int]:
    profiles: Dict[str, Dict[str, Any]] = {}
    processed = 0
    for _, event in _decoded(events):
        if isinstance(event, ProfileCreate):
            profiles[event.user_account_id] = event.to_columns()
            processed += 1
    return profiles, processed


def _linkage_consistent(record: Dict[str, Any]) -> bool:
    """OPEN gigs carry no freelancer and no escrow; every other status carries both."""
    linked = [bool(record.get("assigned_freelancer_id")), bool(record.get("escrow_contract_id"))]
    if record.get("status") == "OPEN":
        return not any(linked)
    return all(linked)


def fold_gigs(events: List[ChannelEvent]) -> Tuple[Dict[str, Dict[str, Any]], int]:
    gigs: Dict[str, Dict[str, Any]] = {}
    processed = 0
    for raw, event in _decoded(events):
        if isinstance(event, GigCreate):
            gigs[event.gig_ref_id] = event.seed(raw.sequence_number)
            processed += 1
        elif isinstance(event, GigUpdate):
            processed += 1
            current = gigs.get(event.gig_ref_id)
            if current is None:
                # Update for a gig whose create we have not seen
                continue
            if current["status"] in TERMINAL_GIG_STATUSES:
                log.debug("gig %s is %s; ignoring update seq=%s", event.gig_ref_id, current["status"], raw.sequence_number)
                continue
            merged = {**current, **event.to_columns()}
            if not _linkage_consistent(merged):
                log.warning(
                    "gig %s: ignoring update seq=%s (status %s, freelancer=%s, escrow=%s)",
                    event.gig_ref_id, raw.sequence_number, merged.get("status"),
                    merged.get("assigned_freelancer_id"), merged.get("escrow_contract_id"),
                )
                continue
            merged["hcs_sequence_number"] = raw.sequence_number
            gigs[event.gig_ref_id] = merged
    return gigs, processed


def _write_gigs(session: Session, gigs: Dict[str, Dict[str, Any]]) -> int:
    """
    Upsert folded gigs, except those whose stored row was written from a log
    position the fold has not reached yet (the indexer lags the ledger).
    """
    if not gigs:
        return 0
    stored = dict(
        session.execute(
            select(Gig.gig_ref_id, Gig.hcs_sequence_number).where(Gig.gig_ref_id.in_(list(gigs)))
        ).all()
    )
    rows = []
    for ref, record in gigs.items():
        ahead, seen = stored.get(ref), record.get("hcs_sequence_number")
        if ahead is not None and seen is not None and ahead > seen:
            log.info("gig %s: store is at seq %s, log only at %s; keeping the row", ref, ahead, seen)
            continue
        rows.append(record)
    return upsert_by_key(session, Gig, "gig_ref_id", rows)


def _consensus_time(raw: ChannelEvent) -> datetime:
    if raw.consensus_timestamp:
        try:
            return datetime.fromtimestamp(float(raw.consensus_timestamp), tz=timezone.utc)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def fold_messages(events: List[ChannelEvent]) -> Tuple[List[Dict[str, Any]], int]:
    messages: List[Dict[str, Any]] = []
    for raw, event in _decoded(events):
        if isinstance(event, GigMessage):
            messages.append({
                "gig_ref_id": event.gig_ref_id,
                "sender_id": event.sender_id,
                "content": event.content,
                "timestamp": event.timestamp or _consensus_time(raw),
            })
    return messages, len(messages)


# ------------------------------ per-channel sync ------------------------------

def _run_channel(
    session: Session,
    ledger: Any,
    *,
    channel: str,
    channel_id: str,
    fold: Callable[[List[ChannelEvent]], Tuple[Any, int]],
    write: Callable[[Session, Any], int],
) -> ChannelResult:
    result = ChannelResult(channel=channel, channel_id=channel_id)
    if not channel_id:
        result.status = "skipped"
        result.error = "channel id not configured"
        return result

    try:
        events = fetch_all(ledger, channel_id)
    except (DomainError, IndexerNotFound) as e:
        log.warning("[%s] fetch failed for channel %s: %s", channel, channel_id, e)
        result.status = "error"
        result.error = str(e) or type(e).__name__
        return result

    folded, processed = fold(events)
    try:
        result.entities = write(session, folded)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        log.exception("[%s] write failed for channel %s", channel, channel_id)
        result.status = "error"
        result.error = str(e)
        return result
    result.events = processed
    log.info("[%s] synced %s events, %s entities", channel, processed, result.entities)
    return result


def sync_profiles(session: Session, ledger: Any, channel_id: Optional[str] = None) -> ChannelResult:
    return _run_channel(
        session, ledger,
        channel="profiles",
        channel_id=channel_id if channel_id is not None else config.profile_channel_id(),
        fold=fold_profiles,
        write=lambda s, rows: upsert_by_key(s, Profile, "user_account_id", rows.values()),
    )


def sync_gigs(session: Session, ledger: Any, channel_id: Optional[str] = None) -> ChannelResult:
    return _run_channel(
        session, ledger,
        channel="gigs",
        channel_id=channel_id if channel_id is not None else config.gigs_channel_id(),
        fold=fold_gigs,
        write=_write_gigs,
    )


def sync_messages(session: Session, ledger: Any, channel_id: Optional[str] = None) -> ChannelResult:
    return _run_channel(
        session, ledger,
        channel="messages",
        channel_id=channel_id if channel_id is not None else config.messages_channel_id(),
        fold=fold_messages,
        write=lambda s, rows: replace_all(s, Message, rows),
    )


def replay_all(session_factory: Callable[[], Session], ledger: Any) -> Dict[str, Dict[str, Any]]:
    """Replay profiles, gigs and messages; each channel gets its own session."""
    log.info("--- replay started ---")
    results: Dict[str, Dict[str, Any]] = {}
    for sync in (sync_gigs, sync_profiles, sync_messages):
        session = session_factory()
        try:
            res = sync(session, ledger)
        finally:
            session.close()
        results[res.channel] = res.as_dict()
    log.info("--- replay complete: %s ---", {k: v["status"] for k, v in results.items()})
    return results
