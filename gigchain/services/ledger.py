# services/ledger.py
# Ledger gateway: the only place that talks to the Substrate node.
#
# - submit_signed():      relay an extrinsic signed by the user's wallet
# - execute_privileged(): escrow call signed with the platform (arbiter) key
# - build_unsigned():     SCALE-encoded call for the external signer
# - stage_chunk():        create / append a bytecode staging blob
# - publish():            platform-signed channel message (consensus log)
# - fetch_channel_page() / lookup_operation(): read side, via the indexer
#
# A fresh SubstrateInterface is opened per call so a restarted node never
# leaves us holding a dead WebSocket. Failures surface as
# ExternalOperationError carrying the ledger's own error message; nothing is
# retried silently.

from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass, field
from json.decoder import JSONDecodeError
from typing import Any, Dict, List, Optional

from scalecodec.base import ScaleBytes
from substrateinterface import Keypair, SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException

from .. import config
from ..errors import ExternalOperationError
from .indexer import ChannelPage, IndexerClient

log = logging.getLogger("gigchain.ledger")

# Event names emitted by the runtime pallets we read ids from.
BLOB_CREATED_EVENT = "BlobCreated"
MESSAGE_SUBMITTED_EVENT = "MessageSubmitted"
ESCROW_CREATED_EVENT = "EscrowCreated"


@dataclass
class LedgerReceipt:
    operation_id: Optional[str]
    success: bool = True
    entity_id: Optional[str] = None
    sequence_number: Optional[int] = None
    events: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class UnsignedOperation:
    module: str
    function: str
    params: Dict[str, Any]
    payload: str                      # base64 SCALE call data

    def as_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "function": self.function,
            "params": self.params,
            "payload": self.payload,
        }


# ------------------------------ receipt helpers ------------------------------

def _event_bodies(receipt: Any) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for ev in getattr(receipt, "triggered_events", None) or []:
        value = getattr(ev, "value", None) or {}
        body = value.get("event") if isinstance(value, dict) else None
        if isinstance(body, dict):
            out.append(body)
    return out


def _event_attr(bodies: List[Dict[str, Any]], event_id: str, attr: str) -> Optional[Any]:
    for body in bodies:
        if body.get("event_id") != event_id:
            continue
        attrs = body.get("attributes")
        if isinstance(attrs, dict):
            return attrs.get(attr)
        # Older metadata versions expose positional attributes
        if isinstance(attrs, (list, tuple)) and attrs:
            return attrs[0]
    return None


# ------------------------------ gateway ------------------------------

class LedgerGateway:
    def __init__(self, indexer: Optional[IndexerClient] = None) -> None:
        self.indexer = indexer or IndexerClient()

    # ---- connection / signer ----

    def _substrate(self) -> SubstrateInterface:
        url = config.ws_url()
        try:
            return SubstrateInterface(
                url=url,
                ss58_format=config.ss58_format(),
                type_registry_preset=config.type_registry_preset(),
                auto_reconnect=True,
            )
        except Exception as e:
            log.exception("Failed to connect Substrate WS at %s", url)
            raise ExternalOperationError(
                f"Ledger connection failed: {e}",
                code="ledger_connect_failed",
                ws_url=url,
            ) from e

    def platform_signer(self) -> Keypair:
        uri = config.signer_uri()
        mnemonic = config.signer_mnemonic()
        try:
            if uri:
                return Keypair.create_from_uri(uri)
            if mnemonic:
                return Keypair.create_from_mnemonic(mnemonic)
        except ValueError as e:
            raise ExternalOperationError(
                f"Invalid platform signer: {e}", code="invalid_platform_signer"
            ) from e
        raise ExternalOperationError(
            "No platform signer configured (SUBSTRATE_SIGNER_URI / SUBSTRATE_SIGNER_MNEMONIC)",
            code="platform_signer_missing",
        )

    # ---- submission ----

    def _submit_with_wait(self, substrate: SubstrateInterface, extrinsic: Any, *, label: str) -> Any:
        """Wait for finalization when configured, falling back to inclusion."""
        if config.wait_for_finalization():
            try:
                return substrate.submit_extrinsic(extrinsic, wait_for_finalization=True)
            except (JSONDecodeError, SubstrateRequestException) as e:
                log.warning("%s: finalization wait failed (%s), falling back to inclusion", label, e)

        try:
            return substrate.submit_extrinsic(extrinsic, wait_for_inclusion=True)
        except JSONDecodeError as e:
            log.warning("%s: inclusion wait JSONDecodeError (%s); retrying once", label, e)
            time.sleep(0.2)
            return substrate.submit_extrinsic(extrinsic, wait_for_inclusion=True)

    def _submit(self, substrate: SubstrateInterface, extrinsic: Any, *, label: str) -> LedgerReceipt:
        try:
            receipt = self._submit_with_wait(substrate, extrinsic, label=label)
        except (SubstrateRequestException, JSONDecodeError, ConnectionError) as e:
            log.exception("%s: submit_extrinsic failed", label)
            raise ExternalOperationError(
                f"{label} submission failed: {e}", code="ledger_submit_failed"
            ) from e

        if not getattr(receipt, "is_success", False):
            error = getattr(receipt, "error_message", None) or "unknown error"
            log.error("%s: extrinsic failed: %s", label, error)
            raise ExternalOperationError(
                f"{label} failed on ledger: {error}",
                code="ledger_rejected",
                ledger_error=error,
                operation_id=getattr(receipt, "extrinsic_hash", None),
            )

        bodies = _event_bodies(receipt)
        log.info("%s OK (hash=%s)", label, getattr(receipt, "extrinsic_hash", None))
        return LedgerReceipt(
            operation_id=getattr(receipt, "extrinsic_hash", None),
            success=True,
            events=bodies,
        )

    def _platform_call(self, module: str, function: str, params: Dict[str, Any], *, label: str) -> LedgerReceipt:
        substrate = self._substrate()
        signer = self.platform_signer()
        try:
            call = substrate.compose_call(call_module=module, call_function=function, call_params=params)
            extrinsic = substrate.create_signed_extrinsic(call=call, keypair=signer)
        except (ValueError, SubstrateRequestException) as e:
            log.error("%s: could not build %s.%s: %s", label, module, function, e)
            raise ExternalOperationError(
                f"Could not encode {module}.{function}: {e}", code="ledger_encode_failed"
            ) from e
        return self._submit(substrate, extrinsic, label=label)

    # ---- public API ----

    def submit_signed(self, signed_bytes: bytes) -> LedgerReceipt:
        """Relay a user-signed extrinsic. The platform never re-signs it."""
        substrate = self._substrate()
        try:
            extrinsic = substrate.create_scale_object("Extrinsic", data=ScaleBytes(bytearray(signed_bytes)))
            extrinsic.decode()
        except (ValueError, NotImplementedError) as e:
            raise ExternalOperationError(
                f"Signed payload could not be decoded: {e}", code="ledger_bad_extrinsic"
            ) from e
        receipt = self._submit(substrate, extrinsic, label="submit_signed")
        receipt.entity_id = _event_attr(receipt.events, ESCROW_CREATED_EVENT, "escrow_id")
        return receipt

    def execute_privileged(
        self,
        contract_ref: str,
        function: str,
        args: Optional[Dict[str, Any]] = None,
        gas: Optional[int] = None,
    ) -> LedgerReceipt:
        params: Dict[str, Any] = {"escrow_id": contract_ref, "gas_limit": gas or config.escrow_gas_limit()}
        params.update(args or {})
        return self._platform_call(
            config.escrow_pallet(), function, params, label=f"escrow.{function}"
        )

    def build_unsigned(self, module: str, function: str, params: Dict[str, Any]) -> UnsignedOperation:
        substrate = self._substrate()
        try:
            call = substrate.compose_call(call_module=module, call_function=function, call_params=params)
        except (ValueError, SubstrateRequestException) as e:
            raise ExternalOperationError(
                f"Could not encode {module}.{function}: {e}", code="ledger_encode_failed"
            ) from e
        payload = base64.b64encode(bytes(call.data.data)).decode("ascii")
        return UnsignedOperation(module=module, function=function, params=params, payload=payload)

    def stage_chunk(self, blob_id: Optional[str], chunk: bytes) -> LedgerReceipt:
        """Create a staging blob with the first chunk, or append to an existing one."""
        module = config.code_stage_pallet()
        if blob_id is None:
            receipt = self._platform_call(module, "create_blob", {"data": "0x" + chunk.hex()}, label="stage.create")
            receipt.entity_id = _event_attr(receipt.events, BLOB_CREATED_EVENT, "blob_id")
            if receipt.entity_id is None:
                raise ExternalOperationError(
                    "Staging blob created but no blob id was emitted", code="ledger_missing_entity"
                )
        else:
            receipt = self._platform_call(
                module, "append_blob", {"blob_id": blob_id, "data": "0x" + chunk.hex()}, label="stage.append"
            )
            receipt.entity_id = blob_id
        return receipt

    def publish(self, channel_id: str, payload: Dict[str, Any]) -> LedgerReceipt:
        """Append a platform-signed event to a channel."""
        message = json.dumps(payload, separators=(",", ":"), default=str)
        receipt = self._platform_call(
            config.channel_pallet(),
            "submit_message",
            {"channel_id": channel_id, "message": message},
            label=f"publish.{payload.get('type', 'event')}",
        )
        seq = _event_attr(receipt.events, MESSAGE_SUBMITTED_EVENT, "sequence_number")
        receipt.sequence_number = int(seq) if seq is not None else None
        return receipt

    def create_sponsored_account(self, initial_balance: Optional[int] = None) -> Dict[str, Any]:
        """Generate a keypair and fund it from the platform account."""
        mnemonic = Keypair.generate_mnemonic()
        kp = Keypair.create_from_mnemonic(mnemonic, ss58_format=config.ss58_format())
        amount = initial_balance if initial_balance is not None else config.sponsor_initial_balance()
        receipt = self._platform_call(
            "Balances",
            "transfer_keep_alive",
            {"dest": kp.ss58_address, "value": amount},
            label="sponsor.fund",
        )
        return {
            "account_id": kp.ss58_address,
            "public_key": "0x" + kp.public_key.hex(),
            "mnemonic": mnemonic,
            "funding_operation_id": receipt.operation_id,
        }

    def fetch_channel_page(self, channel_id: str, cursor: Optional[str] = None) -> ChannelPage:
        return self.indexer.fetch_channel_page(channel_id, cursor)

    def lookup_operation(self, operation_id: str) -> List[Dict[str, Any]]:
        return self.indexer.lookup_operation(operation_id)

    # ---- diagnostics ----

    def health(self) -> Dict[str, Any]:
        """Quick RPC checks: chain name, health, runtime version, best header."""
        sub = self._substrate()
        try:
            return {
                "ws_url": config.ws_url(),
                "chain": sub.rpc_request("system_chain", []),
                "health": sub.rpc_request("system_health", []),
                "runtime": sub.rpc_request("state_getRuntimeVersion", []),
                "best_header": sub.rpc_request("chain_getHeader", []),
            }
        except SubstrateRequestException as e:
            raise ExternalOperationError(f"RPC failed: {e}", code="rpc_failed") from e


_gateway: Optional[LedgerGateway] = None


def get_ledger() -> LedgerGateway:
    """FastAPI dependency; tests override it with an in-memory gateway."""
    global _gateway
    if _gateway is None:
        _gateway = LedgerGateway()
    return _gateway
