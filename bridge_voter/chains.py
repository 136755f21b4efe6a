"""
Chain collaborator contracts consumed by the monitors.

Concrete clients live in `flow` (source chain) and `poly` (relay chain);
tests substitute in-memory fakes implementing the same protocols.
"""

import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

import structlog

from .errors import Cancelled, ChainError, ConfirmationTimeout

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class SourceEvent:
    """Event emitted by a source-chain transaction."""

    type: str
    transaction_id: str  # hex
    transaction_index: int
    event_index: int
    payload: bytes  # JSON-Cadence document
    block_height: int = 0


@dataclass(frozen=True)
class RelayHeader:
    """Relay-chain block header (fields the voter needs)."""

    height: int
    block_hash: str = ""
    cross_state_root: Optional[bytes] = None


@dataclass(frozen=True)
class RelayNotification:
    """Contract notification inside a relay-chain transaction event."""

    contract_address: str
    states: Any


@dataclass(frozen=True)
class RelayEvent:
    """Execution event of one relay-chain transaction."""

    tx_hash: str
    state: int = 1
    notifications: list[RelayNotification] = field(default_factory=list)


@dataclass(frozen=True)
class MerkleProof:
    """Cross-state inclusion proof as returned by the relay chain."""

    audit_path: str  # hex
    type: str = "MerkleProof"


class TxStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class SourceChainClient(Protocol):
    def latest_height(self) -> int:
        ...

    def events_in_range(self, event_type: str, start: int, end: int) -> list[SourceEvent]:
        ...


class RelayChainClient(Protocol):
    def current_height(self) -> int:
        ...

    def header_by_height(self, height: int) -> RelayHeader:
        ...

    def events_by_block(self, height: int) -> list[RelayEvent]:
        ...

    def storage_proof(self, height: int, key: str) -> MerkleProof:
        ...

    def submit_transfer(
        self, side_chain_id: int, payload: bytes, height: int, origin_tx_id: bytes, account: Any
    ) -> str:
        ...

    def submit_signature(self, side_chain_id: int, subject: bytes, signature: bytes, account: Any) -> str:
        ...

    def transaction_status(self, tx_hash: str) -> TxStatus:
        ...

    def query_done_marker(self, side_chain_id: int, cross_chain_id: bytes) -> bool:
        ...


def choose_client(clients: Sequence[T], rng: random.Random, exclude: Optional[int] = None) -> int:
    """
    Pick a client index uniformly at random.

    `exclude` (typically the client that just failed) is avoided when
    another client is available.
    """
    if not clients:
        raise ValueError("client pool is empty")
    candidates = [i for i in range(len(clients)) if i != exclude]
    if not candidates:
        candidates = list(range(len(clients)))
    return rng.choice(candidates)


def wait_for_transaction(
    client: RelayChainClient,
    tx_hash: str,
    *,
    timeout: float,
    poll_interval: float,
    stop: threading.Event,
    clock: Callable[[], float] = time.monotonic,
) -> TxStatus:
    """
    Block until a relay-chain transaction lands.

    Returns CONFIRMED or FAILED. Lookup errors count as "not yet seen".
    Raises ConfirmationTimeout after `timeout` seconds and Cancelled when
    `stop` is set while waiting.
    """
    start = clock()
    while True:
        try:
            status = client.transaction_status(tx_hash)
        except ChainError as e:
            logger.debug("tx_status_lookup_failed", tx_hash=tx_hash, error=str(e))
            status = TxStatus.PENDING

        if status is not TxStatus.PENDING:
            return status

        if clock() - start > timeout:
            raise ConfirmationTimeout(tx_hash, timeout)

        if stop.wait(poll_interval):
            raise Cancelled(f"stopped while waiting for {tx_hash}")
