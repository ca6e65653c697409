# services/indexer.py
# HTTP client for the ledger indexer (read side of the ledger).
#
# Two endpoints are used:
#   GET {INDEXER_URL}/channels/{channel_id}/messages?limit=N
#       -> {"messages": [{"sequence_number", "message" (base64), "consensus_timestamp"}],
#           "links": {"next": "<path or url>" | null}}
#   GET {INDEXER_URL}/transactions/{operation_id}
#       -> {"transactions": [{"entity_id", "result", ...}]}

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .. import config
from ..errors import ExternalOperationError

log = logging.getLogger("gigchain.indexer")


class IndexerNotFound(Exception):
    """The indexer has not (yet) seen the requested object."""


@dataclass
class ChannelEvent:
    sequence_number: int
    message: str                      # base64, decoded by the replicator
    consensus_timestamp: Optional[str] = None


@dataclass
class ChannelPage:
    events: List[ChannelEvent] = field(default_factory=list)
    next_cursor: Optional[str] = None


class IndexerClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or config.indexer_url()).rstrip("/")
        self._client = httpx.Client(
            timeout=timeout if timeout is not None else config.indexer_timeout_sec(),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # ------------------------------ low level ------------------------------

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            resp = self._client.get(url, params=params)
        except httpx.HTTPError as e:
            log.warning("indexer GET %s failed: %s", url, e)
            raise ExternalOperationError(
                f"Indexer request failed: {e}", code="indexer_unreachable", url=url
            ) from e

        if resp.status_code == 404:
            raise IndexerNotFound(url)
        if resp.status_code >= 400:
            raise ExternalOperationError(
                f"Indexer returned HTTP {resp.status_code}",
                code="indexer_error",
                url=url,
                status=resp.status_code,
            )
        try:
            resp.json()
        except ValueError as e:
            raise ExternalOperationError(
                "Indexer returned a non-JSON body", code="indexer_bad_response", url=url
            ) from e
        return resp

    def _resolve(self, link: str) -> str:
        # `links.next` is usually an absolute path on the indexer host.
        return str(httpx.URL(self.base_url + "/").join(link))

    # ------------------------------ channels ------------------------------

    def fetch_channel_page(self, channel_id: str, cursor: Optional[str] = None) -> ChannelPage:
        """One page of channel messages, ordered by sequence number."""
        if cursor:
            resp = self._get(self._resolve(cursor))
        else:
            resp = self._get(
                f"{self.base_url}/channels/{channel_id}/messages",
                params={"limit": config.indexer_page_limit()},
            )
        body = resp.json() or {}

        events: List[ChannelEvent] = []
        for raw in body.get("messages") or []:
            try:
                events.append(ChannelEvent(
                    sequence_number=int(raw["sequence_number"]),
                    message=str(raw.get("message") or ""),
                    consensus_timestamp=raw.get("consensus_timestamp"),
                ))
            except (KeyError, TypeError, ValueError):
                log.warning("channel %s: skipping entry without sequence_number", channel_id)

        next_link = (body.get("links") or {}).get("next")
        return ChannelPage(events=events, next_cursor=next_link or None)

    # ------------------------------ operations ------------------------------

    def lookup_operation(self, operation_id: str) -> List[Dict[str, Any]]:
        """
        Return the indexer's records for a submitted operation.
        Raises IndexerNotFound while the operation is not indexed yet.
        """
        resp = self._get(f"{self.base_url}/transactions/{operation_id}")
        return list((resp.json() or {}).get("transactions") or [])
