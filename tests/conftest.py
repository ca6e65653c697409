from __future__ import annotations

import base64
import json
import os
import tempfile
from typing import Any, Dict, List, Optional

import pytest

_TMP = tempfile.mkdtemp(prefix="gigchain-tests-")

# Settings must be in place before gigchain is imported.
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOG_DIR"] = os.path.join(_TMP, "logs")
os.environ["SMTP_HOST"] = ""
os.environ["PROFILE_CHANNEL_ID"] = "0.0.1001"
GIGS_CHANNEL = "0.0.1002"
os.environ["GIGS_CHANNEL_ID"] = GIGS_CHANNEL
os.environ["MESSAGES_CHANNEL_ID"] = "0.0.1003"
os.environ["RESOLVER_INTERVAL_SEC"] = "0"
os.environ["SYNC_ON_STARTUP"] = "0"
os.environ["SYNC_INTERVAL_SEC"] = "0"

BYTECODE_PATH = os.path.join(_TMP, "escrow.bin")
BYTECODE = bytes(range(256)) * 35 + b"\x01" * 40     # 9000 bytes -> 3 chunks of <= 4096
with open(BYTECODE_PATH, "w", encoding="ascii") as fh:
    fh.write("0x" + BYTECODE.hex())
os.environ["ESCROW_BYTECODE_PATH"] = BYTECODE_PATH

from fastapi.testclient import TestClient  # noqa: E402

from gigchain.Database.db import SessionLocal, engine  # noqa: E402
from gigchain.errors import ExternalOperationError  # noqa: E402
from gigchain.main import app  # noqa: E402
from gigchain.models import Base  # noqa: E402
from gigchain.services.indexer import ChannelEvent, ChannelPage, IndexerNotFound  # noqa: E402
from gigchain.services.ledger import LedgerReceipt, UnsignedOperation, get_ledger  # noqa: E402


class FakeLedger:
    """In-memory ledger gateway: records every call, confirms immediately."""

    def __init__(self) -> None:
        self.staged: List[tuple] = []
        self.built: List[UnsignedOperation] = []
        self.published: List[tuple] = []
        self.privileged: List[tuple] = []
        self.submitted: List[bytes] = []
        self.operations: Dict[str, List[Dict[str, Any]]] = {}
        self.channels: Dict[str, List[ChannelPage]] = {}
        self.broken_pages: Dict[str, int] = {}
        self.fail_publish = False
        self.lookups: List[str] = []
        self._seq: Dict[str, int] = {}

    # ---- write side ----

    def stage_chunk(self, blob_id: Optional[str], chunk: bytes) -> LedgerReceipt:
        self.staged.append((blob_id, chunk))
        return LedgerReceipt(operation_id=f"stage-{len(self.staged)}", entity_id=blob_id or "blob-1")

    def build_unsigned(self, module: str, function: str, params: Dict[str, Any]) -> UnsignedOperation:
        payload = base64.b64encode(json.dumps([module, function, params], default=str).encode()).decode()
        op = UnsignedOperation(module=module, function=function, params=params, payload=payload)
        self.built.append(op)
        return op

    def publish(self, channel_id: str, payload: Dict[str, Any]) -> LedgerReceipt:
        if self.fail_publish:
            raise ExternalOperationError("channel submit rejected", code="ledger_rejected")
        seq = self.next_sequence(channel_id)
        self.published.append((channel_id, payload))
        return LedgerReceipt(operation_id=f"pub-{seq}", sequence_number=seq)

    def execute_privileged(self, contract_ref: str, function: str, args=None, gas=None) -> LedgerReceipt:
        self.privileged.append((contract_ref, function))
        return LedgerReceipt(operation_id=f"arb-{len(self.privileged)}")

    def submit_signed(self, signed_bytes: bytes) -> LedgerReceipt:
        self.submitted.append(signed_bytes)
        return LedgerReceipt(operation_id="0.0.42@1700000000.000000001")

    def create_sponsored_account(self, initial_balance: Optional[int] = None) -> Dict[str, Any]:
        return {
            "account_id": "5FakeAccount",
            "public_key": "0x" + "11" * 32,
            "mnemonic": "word " * 11 + "word",
            "funding_operation_id": "fund-1",
        }

    def health(self) -> Dict[str, Any]:
        return {"chain": "fake"}

    # ---- read side ----

    def lookup_operation(self, operation_id: str) -> List[Dict[str, Any]]:
        self.lookups.append(operation_id)
        if operation_id not in self.operations:
            raise IndexerNotFound(operation_id)
        return self.operations[operation_id]

    def fetch_channel_page(self, channel_id: str, cursor: Optional[str] = None) -> ChannelPage:
        index = int(cursor or 0)
        if self.broken_pages.get(channel_id) == index:
            raise ExternalOperationError("indexer returned HTTP 500", code="indexer_error")
        pages = self.channels.get(channel_id) or [ChannelPage()]
        page = pages[index]
        next_cursor = str(index + 1) if index + 1 < len(pages) else None
        return ChannelPage(events=page.events, next_cursor=next_cursor)

    # ---- helpers ----

    def next_sequence(self, channel_id: str) -> int:
        """Per-channel consensus sequence, shared by platform publishes and wallet submissions."""
        self._seq[channel_id] = self._seq.get(channel_id, 0) + 1
        return self._seq[channel_id]

    def feed(self, channel_id: str, *payloads: Any, page_size: int = 2) -> None:
        """Lay `payloads` out as a paginated channel (dicts are JSON-encoded, str/bytes used raw)."""
        events = []
        for seq, p in enumerate(payloads, start=1):
            if isinstance(p, dict):
                raw = base64.b64encode(json.dumps(p).encode()).decode()
            elif isinstance(p, bytes):
                raw = base64.b64encode(p).decode()
            else:
                raw = p
            events.append(ChannelEvent(sequence_number=seq, message=raw, consensus_timestamp=f"{1700000000 + seq}.000000000"))
        pages = [ChannelPage(events=events[i:i + page_size]) for i in range(0, len(events), page_size)]
        self.channels[channel_id] = pages or [ChannelPage()]


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def client(ledger: FakeLedger):
    app.dependency_overrides[get_ledger] = lambda: ledger
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_profile(client):
    def _make(account_id: str, name: str, profile_type: str = "freelancer", email: Optional[str] = None) -> Dict[str, Any]:
        resp = client.post(
            "/users/record-profile-creation",
            json={"profile_data": {
                "type": "PROFILE_CREATE",
                "userAccountId": account_id,
                "name": name,
                "skills": ["python"],
                "email": email or f"{account_id}@example.test",
                "profileType": profile_type,
            }},
        )
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture()
def make_gig(client, ledger):
    def _make(client_id: str = "client-c", *, budget: Any = 100, visibility: str = "PUBLIC") -> str:
        prep = client.post("/gigs/prepare-creation", json={
            "client_id": client_id,
            "title": "Build a landing page",
            "description": "Static site, two pages",
            "budget": budget,
            "duration": "2 weeks",
            "visibility": visibility,
        })
        assert prep.status_code == 200, prep.text
        rec = client.post("/gigs/record-creation", json={
            "gig_data": prep.json()["gig_data"],
            "sequence_number": ledger.next_sequence(GIGS_CHANNEL),
        })
        assert rec.status_code == 201, rec.text
        return rec.json()["gig_ref_id"]
    return _make


@pytest.fixture()
def assigned_gig(client, ledger, make_gig, make_profile):
    """A PUBLIC gig assigned to freelancer-f with escrow 0.0.555 (escrow IN_PROGRESS)."""
    make_profile("client-c", "Carol", "hirer")
    make_profile("freelancer-f", "Frank")
    ref = make_gig("client-c")
    app_id = client.post("/applications/apply", json={
        "gig_ref_id": ref, "freelancer_id": "freelancer-f", "cover_letter": "X",
    }).json()["id"]
    assert client.post(f"/applications/{app_id}/accept", json={"client_id": "client-c"}).status_code == 200
    ledger.operations["0.0.42-1700000000-000000001"] = [{"entity_id": "0.0.555", "result": "SUCCESS"}]
    resp = client.post(f"/gigs/{ref}/record-assignment", json={
        "client_id": "client-c",
        "freelancer_id": "freelancer-f",
        "transaction_id": "0.0.42@1700000000.000000001",
    })
    assert resp.status_code == 200, resp.text
    return ref


@pytest.fixture()
def locked_gig(client, assigned_gig):
    resp = client.post(f"/gigs/{assigned_gig}/record-lock-escrow", json={"client_id": "client-c", "amount": "100"})
    assert resp.status_code == 200, resp.text
    return assigned_gig


@pytest.fixture()
def released_gig(client, locked_gig):
    resp = client.post(f"/gigs/{locked_gig}/record-release-escrow", json={"client_id": "client-c"})
    assert resp.status_code == 200, resp.text
    return locked_gig
