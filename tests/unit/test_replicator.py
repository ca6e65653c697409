from decimal import Decimal

from gigchain.models import Gig, Message, Profile
from gigchain.services.replicator import (
    fetch_all,
    fold_gigs,
    replay_all,
    sync_gigs,
    sync_messages,
    sync_profiles,
)
from gigchain.Database.db import SessionLocal

GIGS = "0.0.1002"
PROFILES = "0.0.1001"
MESSAGES = "0.0.1003"

ASSIGNED = {
    "status": "IN_PROGRESS",
    "escrowStatus": "IN_PROGRESS",
    "assignedFreelancerId": "f",
    "escrowContractId": "0.0.9",
}


def _create(ref, **extra):
    payload = {
        "type": "GIG_CREATE",
        "gigRefId": ref,
        "clientId": "client-c",
        "title": f"Gig {ref}",
        "description": "something to do",
        "budgetAmount": "100",
    }
    payload.update(extra)
    return payload


def _update(ref, **fields):
    return {"type": "GIG_UPDATE", "gigRefId": ref, **fields}


def _gig_rows(db):
    return {g.gig_ref_id: g for g in db.query(Gig).all()}


def test_fetch_all_walks_every_page(ledger):
    ledger.feed(GIGS, *[_create(f"g{i}") for i in range(5)], page_size=2)
    events = fetch_all(ledger, GIGS)
    assert [e.sequence_number for e in events] == [1, 2, 3, 4, 5]


def test_fold_gigs_applies_updates_in_order(ledger):
    ledger.feed(
        GIGS,
        _create("g1"),
        _update("g1", **ASSIGNED),
        _update("g1", escrowStatus="LOCKED", lockedAmount="100"),
    )
    gigs, processed = fold_gigs(fetch_all(ledger, GIGS))

    assert processed == 3
    g1 = gigs["g1"]
    assert g1["visibility"] == "PUBLIC"
    assert g1["status"] == "IN_PROGRESS"
    assert g1["escrow_status"] == "LOCKED"
    assert g1["assigned_freelancer_id"] == "f"
    assert g1["hcs_sequence_number"] == 3


def test_update_before_create_is_ignored(ledger):
    ledger.feed(GIGS, _update("ghost", status="COMPLETED"), _create("g1"))
    gigs, processed = fold_gigs(fetch_all(ledger, GIGS))
    assert set(gigs) == {"g1"}
    assert gigs["g1"]["status"] == "OPEN"
    assert processed == 2


def test_sync_gigs_writes_the_folded_state(db, ledger):
    ledger.feed(
        GIGS,
        _create("g1"),
        "%%% not a message %%%",
        _create("g2", visibility="PRIVATE"),
        _update("g1", **dict(ASSIGNED, escrowContractId="0.0.555")),
    )
    res = sync_gigs(db, ledger)

    assert res.status == "processed"
    assert res.events == 3
    assert res.entities == 2
    rows = _gig_rows(db)
    assert rows["g1"].status == "IN_PROGRESS"
    assert rows["g1"].escrow_contract_id == "0.0.555"
    assert rows["g1"].visibility == "PUBLIC"
    assert rows["g2"].visibility == "PRIVATE"


def test_legacy_budget_string_is_parsed(db, ledger):
    legacy = {
        "type": "GIG_CREATE", "gigRefId": "old", "clientId": "c", "title": "t", "description": "d",
        "budget": "250 HBAR",
    }
    ledger.feed(GIGS, legacy)
    sync_gigs(db, ledger)
    gig = _gig_rows(db)["old"]
    assert Decimal(gig.budget_amount) == Decimal("250")
    assert gig.budget_currency == "HBAR"


def test_replay_is_idempotent(db, ledger):
    ledger.feed(GIGS, _create("g1"), _create("g2"), _update("g2", **ASSIGNED))
    ledger.feed(MESSAGES, *[
        {"type": "GIG_MESSAGE", "gigRefId": "g1", "senderId": "client-c", "content": f"hello {i}"}
        for i in range(3)
    ])

    first = replay_all(SessionLocal, ledger)
    snapshot = {ref: (g.status, g.hcs_sequence_number) for ref, g in _gig_rows(db).items()}
    second = replay_all(SessionLocal, ledger)
    db.expire_all()

    assert first["gigs"] == second["gigs"]
    assert {ref: (g.status, g.hcs_sequence_number) for ref, g in _gig_rows(db).items()} == snapshot
    assert db.query(Message).count() == 3


def test_half_linked_update_is_dropped(ledger):
    ledger.feed(
        GIGS,
        _create("g1"),
        # assignment message without an escrow id
        _update("g1", status="IN_PROGRESS", escrowStatus="IN_PROGRESS", assignedFreelancerId="f"),
        _create("g2"),
        _update("g2", escrowContractId="0.0.9"),
    )
    gigs, processed = fold_gigs(fetch_all(ledger, GIGS))

    assert processed == 4
    for ref, seq in (("g1", 1), ("g2", 3)):
        assert gigs[ref]["status"] == "OPEN"
        assert gigs[ref]["assigned_freelancer_id"] is None
        assert gigs[ref]["escrow_contract_id"] is None
        assert gigs[ref]["hcs_sequence_number"] == seq


def test_finished_gig_ignores_later_updates(ledger):
    ledger.feed(
        GIGS,
        _create("g1"),
        _update("g1", **ASSIGNED),
        _update("g1", status="COMPLETED", escrowStatus="RELEASED"),
        _update("g1", status="IN_PROGRESS", escrowStatus="LOCKED"),
    )
    gigs, _ = fold_gigs(fetch_all(ledger, GIGS))

    assert gigs["g1"]["status"] == "COMPLETED"
    assert gigs["g1"]["escrow_status"] == "RELEASED"
    assert gigs["g1"]["hcs_sequence_number"] == 3


def test_row_ahead_of_the_log_is_kept(db, ledger):
    ledger.feed(GIGS, _create("g1"), _update("g1", **ASSIGNED))
    sync_gigs(db, ledger)

    # indexer still serving only the create
    ledger.feed(GIGS, _create("g1"), _create("g2"))
    res = sync_gigs(db, ledger)
    db.expire_all()

    rows = _gig_rows(db)
    assert res.entities == 1
    assert rows["g1"].status == "IN_PROGRESS"
    assert rows["g1"].escrow_contract_id == "0.0.9"
    assert rows["g1"].hcs_sequence_number == 2
    assert rows["g2"].status == "OPEN"


def test_profiles_last_write_wins(db, ledger):
    ledger.feed(
        PROFILES,
        {"type": "PROFILE_CREATE", "userAccountId": "a", "name": "Ann", "portfolioUrl": "https://ann.dev"},
        {"type": "PROFILE_CREATE", "userAccountId": "a", "name": "Ann B", "skills": "go,sql"},
    )
    res = sync_profiles(db, ledger)
    profile = db.query(Profile).filter(Profile.user_account_id == "a").one()
    assert res.events == 2
    assert res.entities == 1
    assert profile.name == "Ann B"
    assert profile.skills == ["go", "sql"]
    assert profile.portfolio_url is None


def test_fetch_error_leaves_channel_untouched(db, ledger):
    ledger.feed(GIGS, _create("g1"))
    sync_gigs(db, ledger)

    ledger.feed(GIGS, _create("g1"), _update("g1", **ASSIGNED), _create("g2"), page_size=1)
    ledger.broken_pages[GIGS] = 2
    res = sync_gigs(db, ledger)
    db.expire_all()

    assert res.status == "error"
    assert res.events == 0
    rows = _gig_rows(db)
    assert set(rows) == {"g1"}
    assert rows["g1"].status == "OPEN"


def test_one_broken_channel_does_not_stop_the_others(ledger):
    ledger.feed(GIGS, _create("g1"))
    ledger.feed(PROFILES, {"type": "PROFILE_CREATE", "userAccountId": "a", "name": "Ann"})
    ledger.broken_pages[PROFILES] = 0

    results = replay_all(SessionLocal, ledger)

    assert results["profiles"]["status"] == "error"
    assert results["gigs"]["status"] == "processed"
    assert results["messages"]["status"] == "processed"


def test_unconfigured_channel_is_skipped(db, ledger):
    res = sync_messages(db, ledger, channel_id="")
    assert res.status == "skipped"
    assert res.events == 0
