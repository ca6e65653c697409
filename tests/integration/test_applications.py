def _apply(client, ref, freelancer_id, letter="I can do this"):
    return client.post("/applications/apply", json={
        "gig_ref_id": ref, "freelancer_id": freelancer_id, "cover_letter": letter,
    })


def test_one_application_per_freelancer(client, make_gig):
    ref = make_gig("client-c")
    assert _apply(client, ref, "f1").status_code == 201

    again = _apply(client, ref, "f1", "second try")
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "duplicate"


def test_accept_rejects_the_other_pending_applications(client, make_gig):
    ref = make_gig("client-c")
    ids = {f: _apply(client, ref, f).json()["id"] for f in ("f1", "f2", "f3")}
    listed = client.get(f"/applications/gig/{ref}", params={"client_id": "client-c"}).json()
    assert {row["application"]["status"] for row in listed} == {"PENDING"}

    resp = client.post(f"/applications/{ids['f1']}/accept", json={"client_id": "client-c"})
    assert resp.status_code == 200

    listed = client.get(f"/applications/gig/{ref}", params={"client_id": "client-c"}).json()
    statuses = {row["application"]["freelancer_id"]: row["application"]["status"] for row in listed}
    assert statuses == {"f1": "ACCEPTED", "f2": "REJECTED", "f3": "REJECTED"}

    second = client.post(f"/applications/{ids['f2']}/accept", json={"client_id": "client-c"})
    assert second.status_code == 409
    assert client.post(f"/applications/{ids['f3']}/accept", json={"client_id": "client-c"}).status_code == 409


def test_owner_rejects_an_application(client, make_gig):
    ref = make_gig("client-c")
    app_id = _apply(client, ref, "f1").json()["id"]

    assert client.post(f"/applications/{app_id}/reject", json={"client_id": "f1"}).status_code == 403
    rejected = client.post(f"/applications/{app_id}/reject", json={"client_id": "client-c"})
    assert rejected.json()["status"] == "REJECTED"
    assert client.post(f"/applications/{app_id}/accept", json={"client_id": "client-c"}).status_code == 409


def test_only_owner_accepts_or_lists(client, make_gig):
    ref = make_gig("client-c")
    app_id = _apply(client, ref, "f1").json()["id"]

    assert client.post(f"/applications/{app_id}/accept", json={"client_id": "f1"}).status_code == 403
    assert client.get(f"/applications/gig/{ref}", params={"client_id": "f1"}).status_code == 403


def test_private_gig_takes_no_applications(client, make_gig):
    ref = make_gig("client-c", visibility="PRIVATE")
    resp = _apply(client, ref, "f1")
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "gig_private"


def test_owner_cannot_apply_to_own_gig(client, make_gig):
    ref = make_gig("client-c")
    assert _apply(client, ref, "client-c").status_code == 403


def test_no_applications_once_assigned(client, assigned_gig):
    assert _apply(client, assigned_gig, "late-comer").status_code == 409


def test_unknown_gig(client):
    resp = _apply(client, "does-not-exist", "f1")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "gig_not_found"


def test_freelancer_sees_own_applications_with_gig(client, make_gig):
    ref = make_gig("client-c")
    _apply(client, ref, "f1")

    rows = client.get("/applications/freelancer/f1").json()
    assert len(rows) == 1
    assert rows[0]["gig"]["gig_ref_id"] == ref
    assert rows[0]["application"]["status"] == "PENDING"
