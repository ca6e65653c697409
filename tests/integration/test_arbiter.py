from gigchain.errors import ExternalOperationError


def _arbiter(client, action, contract="0.0.555"):
    return client.post(f"/arbiter/{action}", json={"escrow_contract_id": contract})


def test_release_locked_escrow(client, ledger, locked_gig):
    resp = _arbiter(client, "release")

    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "COMPLETED_BY_ARBITER"
    assert resp.json()["escrow_status"] == "RELEASED"
    assert ledger.privileged == [("0.0.555", "arbiter_release")]
    # overrides award no XP
    assert client.get("/rewards/freelancer-f").json()["xp_points"] == 0


def test_release_requires_locked_funds(client, ledger, assigned_gig):
    resp = _arbiter(client, "release")
    assert resp.status_code == 409
    assert ledger.privileged == []


def test_cancel_before_lock(client, ledger, assigned_gig):
    resp = _arbiter(client, "cancel")
    assert resp.json()["status"] == "CANCELLED_BY_ARBITER"
    assert resp.json()["escrow_status"] == "CANCELLED"
    _, published = ledger.published[-1]
    assert published["status"] == "CANCELLED_BY_ARBITER"


def test_cancel_after_lock(client, locked_gig):
    assert _arbiter(client, "cancel").json()["escrow_status"] == "CANCELLED"


def test_no_override_after_release(client, released_gig):
    assert _arbiter(client, "cancel").status_code == 409
    assert _arbiter(client, "release").status_code == 409


def test_unknown_escrow(client):
    resp = _arbiter(client, "cancel", contract="0.0.404")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "escrow_not_found"


def test_ledger_refusal_leaves_the_gig_locked(client, ledger, locked_gig, monkeypatch):
    def refuse(contract_ref, function, args=None, gas=None):
        raise ExternalOperationError("Could not encode Escrow.arbiter_release", code="ledger_encode_failed")

    monkeypatch.setattr(ledger, "execute_privileged", refuse)
    published = len(ledger.published)

    resp = _arbiter(client, "release")

    assert resp.status_code == 502
    assert resp.json()["detail"]["code"] == "ledger_encode_failed"
    assert len(ledger.published) == published
    gig = client.get(f"/gigs/{locked_gig}").json()["gig"]
    assert (gig["status"], gig["escrow_status"]) == ("IN_PROGRESS", "LOCKED")
