"""
Source-chain client for the Flow Access REST API.
"""

import base64
import binascii
from typing import Any

import httpx
import structlog

from .chains import SourceEvent
from .errors import ChainError

logger = structlog.get_logger()


class FlowAccessClient:
    """Client for a Flow Access node's REST API."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)

    def __repr__(self) -> str:
        return f"FlowAccessClient({self.base_url!r})"

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ChainError(f"GET {url} failed: {e}") from e

    def latest_height(self) -> int:
        """Height of the latest sealed block."""
        blocks = self._get("/v1/blocks", {"height": "sealed"})
        try:
            return int(blocks[0]["header"]["height"])
        except (IndexError, KeyError, TypeError, ValueError) as e:
            raise ChainError(f"unexpected latest block response: {blocks!r}") from e

    def events_in_range(self, event_type: str, start: int, end: int) -> list[SourceEvent]:
        """Events of `event_type` in blocks start..end (inclusive)."""
        block_events = self._get(
            "/v1/events",
            {"type": event_type, "start_height": start, "end_height": end},
        )

        events: list[SourceEvent] = []
        for block in block_events or []:
            height = int(block.get("block_height", 0))
            for raw in block.get("events") or []:
                try:
                    payload = base64.b64decode(raw["payload"], validate=True)
                except (KeyError, binascii.Error) as e:
                    raise ChainError(f"bad event payload at height {height}: {e}") from e
                events.append(
                    SourceEvent(
                        type=raw.get("type", ""),
                        transaction_id=raw.get("transaction_id", ""),
                        transaction_index=int(raw.get("transaction_index", 0)),
                        event_index=int(raw.get("event_index", 0)),
                        payload=payload,
                        block_height=height,
                    )
                )

        logger.debug("flow_events_fetched", event_type=event_type, start=start, end=end, count=len(events))
        return events

    def close(self) -> None:
        self.client.close()
