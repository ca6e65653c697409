from gigchain.Database.store import increment_xp, xp_points


def _claim(client, account_id, reward_id="BRONZE_BADGE"):
    return client.post("/rewards/claim", json={"account_id": account_id, "reward_id": reward_id})


def test_claim_needs_enough_xp(client):
    resp = _claim(client, "freelancer-f")
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "insufficient_xp"
    assert resp.json()["detail"]["expected"] == 100


def test_claim_after_release(client, released_gig):
    overview = client.get("/rewards/freelancer-f").json()
    tiers = {t["reward_id"]: t for t in overview["tiers"]}
    assert overview["xp_points"] == 100
    assert tiers["BRONZE_BADGE"]["eligible"] is True
    assert tiers["SILVER_BADGE"]["eligible"] is False

    claimed = _claim(client, "freelancer-f")
    assert claimed.status_code == 201
    assert claimed.json()["reward_id"] == "BRONZE_BADGE"

    assert _claim(client, "freelancer-f").status_code == 409
    assert _claim(client, "freelancer-f", "SILVER_BADGE").status_code == 403

    tiers = {t["reward_id"]: t for t in client.get("/rewards/freelancer-f").json()["tiers"]}
    assert tiers["BRONZE_BADGE"]["claimed"] is True
    assert tiers["BRONZE_BADGE"]["eligible"] is False


def test_unknown_reward(client):
    assert _claim(client, "freelancer-f", "PLATINUM").status_code == 404


def test_xp_accumulates_across_releases(db):
    increment_xp(db, "f1", 100)
    increment_xp(db, "f1", 100)
    db.commit()
    assert xp_points(db, "f1") == 200
