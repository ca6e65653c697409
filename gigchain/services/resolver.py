# services/resolver.py
# Confirmation resolver: operation id -> id of the entity it created.
#
# The indexer lags the ledger by a few seconds, so a freshly submitted
# operation answers 404 for a while. We poll a bounded number of times and
# give up with ResolutionTimeout; the worst-case wait is attempts * interval.

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from .. import config
from ..errors import ExternalOperationError, ResolutionTimeout
from .indexer import IndexerNotFound

log = logging.getLogger("gigchain.resolver")


class OperationLookup(Protocol):
    def lookup_operation(self, operation_id: str) -> list: ...


def normalize_operation_id(operation_id: str) -> str:
    """`account@seconds.nanos` -> `account-seconds-nanos`; other ids pass through."""
    op = (operation_id or "").strip()
    if "@" not in op:
        return op
    account, _, valid_start = op.partition("@")
    return f"{account}-{valid_start.replace('.', '-')}"


def resolve_entity_id(
    ledger: OperationLookup,
    operation_id: str,
    *,
    attempts: Optional[int] = None,
    interval: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    attempts = attempts if attempts is not None else config.resolver_attempts()
    interval = interval if interval is not None else config.resolver_interval_sec()
    normalized = normalize_operation_id(operation_id)

    for attempt in range(1, attempts + 1):
        try:
            records = ledger.lookup_operation(normalized)
        except IndexerNotFound:
            log.info("operation %s not indexed yet (attempt %s/%s)", normalized, attempt, attempts)
            sleep(interval)
            continue

        if not records:
            raise ExternalOperationError(
                "Indexer returned no records for operation",
                code="operation_without_records",
                operation_id=normalized,
            )
        first = records[0]
        entity_id = first.get("entity_id")
        if not entity_id:
            raise ExternalOperationError(
                "Operation confirmed without an entity id",
                code="operation_without_entity",
                operation_id=normalized,
                result=first.get("result"),
            )
        log.info("operation %s resolved to entity %s", normalized, entity_id)
        return str(entity_id)

    raise ResolutionTimeout(
        f"Operation {normalized} was not confirmed after {attempts} attempts",
        operation_id=normalized,
        attempts=attempts,
    )
