import base64
import json
from decimal import Decimal

import pytest

from gigchain.services.events import (
    GigCreate,
    GigUpdate,
    ProfileCreate,
    decode_event,
    encode_payload,
    parse_budget,
)


def _b64(obj):
    return base64.b64encode(json.dumps(obj).encode()).decode()


@pytest.mark.parametrize(
    "raw, amount, currency",
    [
        ("100 HBAR", Decimal("100"), "HBAR"),
        ("12.5", Decimal("12.5"), "UNIT"),
        (100, Decimal("100"), "UNIT"),
        ({"amount": "7", "currency": "DOT"}, Decimal("7"), "DOT"),
    ],
)
def test_parse_budget(raw, amount, currency):
    assert parse_budget(raw) == {"budget_amount": amount, "budget_currency": currency}


@pytest.mark.parametrize("raw", ["", "lots of money", "abc HBAR", "-5"])
def test_parse_budget_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_budget(raw)


def test_legacy_budget_string_in_create_event():
    event = GigCreate.model_validate({
        "type": "GIG_CREATE", "gigRefId": "g1", "clientId": "c", "title": "t", "description": "d", "budget": "100 HBAR",
    })
    assert event.budget_amount == Decimal("100")
    assert event.budget_currency == "HBAR"
    assert event.seed(3)["visibility"] == "PUBLIC"
    assert event.seed(3)["status"] == "OPEN"


def test_update_columns_only_carry_set_fields():
    event = GigUpdate.model_validate({
        "type": "GIG_UPDATE", "gigRefId": "g1", "status": "IN_PROGRESS", "timestamp": "2024-01-01T00:00:00Z",
    })
    assert event.to_columns() == {"gig_ref_id": "g1", "status": "IN_PROGRESS"}


def test_profile_skills_from_comma_string():
    event = ProfileCreate.model_validate({"userAccountId": "a", "name": "Ann", "skills": "python, rust ,"})
    assert event.skills == ["python", "rust"]
    assert event.to_columns()["portfolio_url"] is None


@pytest.mark.parametrize(
    "message",
    [
        "not base64 at all!",
        base64.b64encode(b"\xff\xfe").decode(),
        _b64(["a", "list"]),
        _b64({"type": "SOMETHING_ELSE"}),
        _b64({"type": "GIG_CREATE", "gigRefId": "g1"}),
    ],
)
def test_decode_event_skips_malformed(message):
    assert decode_event(message) is None


def test_encode_then_decode_keeps_wire_names():
    event = GigUpdate(gig_ref_id="g1", escrow_contract_id="0.0.555")
    wire = json.loads(base64.b64decode(encode_payload(event)))
    assert wire == {"type": "GIG_UPDATE", "gigRefId": "g1", "escrowContractId": "0.0.555"}
    assert decode_event(encode_payload(event)).escrow_contract_id == "0.0.555"
