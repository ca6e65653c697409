OP_ID = "0.0.42@1700000000.000000001"


def _accepted_gig(client, make_profile, make_gig):
    make_profile("freelancer-f", "Frank")
    ref = make_gig("client-c")
    app_id = client.post("/applications/apply", json={
        "gig_ref_id": ref, "freelancer_id": "freelancer-f", "cover_letter": "X",
    }).json()["id"]
    client.post(f"/applications/{app_id}/accept", json={"client_id": "client-c"})
    return ref


def test_publish_failure_leaves_gig_open(client, ledger, make_profile, make_gig):
    ref = _accepted_gig(client, make_profile, make_gig)
    ledger.operations["0.0.42-1700000000-000000001"] = [{"entity_id": "0.0.555"}]
    ledger.fail_publish = True

    resp = client.post(f"/gigs/{ref}/record-assignment", json={
        "client_id": "client-c", "freelancer_id": "freelancer-f", "transaction_id": OP_ID,
    })

    assert resp.status_code == 502
    gig = client.get(f"/gigs/{ref}").json()["gig"]
    assert gig["status"] == "OPEN"
    assert gig["escrow_contract_id"] is None
    assert gig["assigned_freelancer_id"] is None


def test_unresolved_operation_times_out_without_changes(client, ledger, make_profile, make_gig):
    ref = _accepted_gig(client, make_profile, make_gig)

    resp = client.post(f"/gigs/{ref}/record-assignment", json={
        "client_id": "client-c", "freelancer_id": "freelancer-f", "transaction_id": OP_ID,
    })

    assert resp.status_code == 504
    assert resp.json()["detail"]["code"] == "resolution_timeout"
    assert len(ledger.lookups) == 5
    assert ledger.published == []
    assert client.get(f"/gigs/{ref}").json()["gig"]["status"] == "OPEN"


def test_failed_creation_receipt_is_not_retried(client, ledger, make_profile, make_gig):
    ref = _accepted_gig(client, make_profile, make_gig)
    ledger.operations["0.0.42-1700000000-000000001"] = [{"entity_id": None, "result": "CONTRACT_REVERT_EXECUTED"}]

    resp = client.post(f"/gigs/{ref}/record-assignment", json={
        "client_id": "client-c", "freelancer_id": "freelancer-f", "transaction_id": OP_ID,
    })

    assert resp.status_code == 502
    assert len(ledger.lookups) == 1
    assert client.get(f"/gigs/{ref}").json()["gig"]["status"] == "OPEN"


def test_release_publish_failure_keeps_escrow_locked_and_xp(client, ledger, locked_gig):
    ledger.fail_publish = True

    resp = client.post(f"/gigs/{locked_gig}/record-release-escrow", json={"client_id": "client-c"})

    assert resp.status_code == 502
    gig = client.get(f"/gigs/{locked_gig}").json()["gig"]
    assert gig["status"] == "IN_PROGRESS"
    assert gig["escrow_status"] == "LOCKED"
    assert client.get("/rewards/freelancer-f").json()["xp_points"] == 0


def test_mismatched_update_payload_is_rejected(client, ledger, make_profile, make_gig):
    ref = _accepted_gig(client, make_profile, make_gig)
    resp = client.post(f"/gigs/{ref}/record-assignment", json={
        "client_id": "client-c",
        "freelancer_id": "freelancer-f",
        "escrow_contract_id": "0.0.555",
        "update_payload": {"type": "GIG_UPDATE", "gigRefId": ref, "assignedFreelancerId": "someone-else"},
    })
    assert resp.status_code == 400
    assert ledger.published == []
