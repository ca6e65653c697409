import pytest
from substrateinterface.exceptions import SubstrateRequestException

from gigchain.errors import ExternalOperationError
from gigchain.services.ledger import LedgerGateway


class _Substrate:
    def __init__(self, error):
        self.error = error
        self.submitted = []

    def compose_call(self, call_module, call_function, call_params):
        raise self.error

    def create_signed_extrinsic(self, call, keypair):
        raise AssertionError("never reached")

    def submit_extrinsic(self, extrinsic, **kwargs):
        self.submitted.append(extrinsic)


def _gateway(monkeypatch, error):
    substrate = _Substrate(error)
    gateway = LedgerGateway(indexer=object())
    monkeypatch.setattr(gateway, "_substrate", lambda: substrate)
    monkeypatch.setattr(gateway, "platform_signer", lambda: "signer")
    return gateway, substrate


@pytest.mark.parametrize("error", [
    ValueError("Call function 'Escrow.arbiter_release' not found"),
    SubstrateRequestException("Metadata not loaded"),
])
def test_privileged_call_that_cannot_be_encoded_is_an_external_error(monkeypatch, error):
    gateway, substrate = _gateway(monkeypatch, error)

    with pytest.raises(ExternalOperationError) as exc:
        gateway.execute_privileged("0.0.555", "arbiter_release")

    assert exc.value.code == "ledger_encode_failed"
    assert substrate.submitted == []


def test_publish_with_bad_params_is_an_external_error(monkeypatch):
    gateway, _ = _gateway(monkeypatch, ValueError("Parameter 'channel_id' invalid"))
    with pytest.raises(ExternalOperationError):
        gateway.publish("0.0.1002", {"type": "GIG_UPDATE", "gigRefId": "g1"})
