"""
Shared fixtures and in-memory chain fakes.
"""

from __future__ import annotations

import json
import random
from typing import Any, Optional

import pytest

from bridge_voter.chains import (
    MerkleProof,
    RelayEvent,
    RelayHeader,
    RelayNotification,
    SourceEvent,
    TxStatus,
)
from bridge_voter.codec import CrossChainTransferRecord, MerkleValue, ZeroCopySink
from bridge_voter.config import CROSS_CHAIN_MANAGER_ADDRESS, RelayMonitorConfig, SourceMonitorConfig
from bridge_voter.db import CheckpointStore
from bridge_voter.errors import ChainError
from bridge_voter.keys import Curve, KeyAlgorithm, PrivateKeyMaterial, RelayAccount
from bridge_voter.signer import Signer

EVENT_TYPE = "A.0123456789abcdef.CrossChain.CrossChainEvent"
SIDE_CHAIN_ID = 7
ENTRANCE = CROSS_CHAIN_MANAGER_ADDRESS


def make_record(ccid: bytes = b"\x01", method: str = "unlock", to_chain_id: int = 2) -> CrossChainTransferRecord:
    record = CrossChainTransferRecord(
        tx_hash=b"\xaa" * 32,
        cross_chain_id=ccid,
        from_contract=b"\x10" * 8,
        to_chain_id=to_chain_id,
        to_contract=b"\x20" * 20,
        method=method,
        args=b"payload",
    )
    return CrossChainTransferRecord.decode(record.encode())


def cadence_payload(raw_param_hex: str, field_type: str = "String") -> bytes:
    doc = {
        "type": "Event",
        "value": {
            "id": EVENT_TYPE,
            "fields": [
                {"name": "fromChainId", "value": {"type": "UInt64", "value": "7"}},
                {"name": "rawParam", "value": {"type": field_type, "value": raw_param_hex}},
            ],
        },
    }
    return json.dumps(doc).encode()


def make_source_event(
    record: CrossChainTransferRecord,
    tx_id: str = "ab" * 32,
    event_type: str = EVENT_TYPE,
    height: int = 0,
) -> SourceEvent:
    return SourceEvent(
        type=event_type,
        transaction_id=tx_id,
        transaction_index=0,
        event_index=0,
        payload=cadence_payload(record.encode().hex()),
        block_height=height,
    )


def make_merkle_value(ccid: bytes = b"\x05", from_chain_id: int = 2) -> MerkleValue:
    return MerkleValue(tx_hash=b"\xcc" * 32, from_chain_id=from_chain_id, make_tx_param=make_record(ccid))


def encode_audit_path(value: bytes, levels: list[tuple[int, bytes]] = ()) -> bytes:
    sink = ZeroCopySink().write_var_bytes(value)
    for flag, sibling in levels:
        sink.write_byte(flag).write_bytes(sibling)
    return sink.bytes()


def make_proof_states(
    side_chain_id: int = SIDE_CHAIN_ID,
    key: str = "0a0b",
    height: float = 50,
) -> list[Any]:
    # JSON numbers decode as floats
    return ["makeProof", 2.0, float(side_chain_id), "cc" * 32, float(height), key]


class FakeClock:
    """Monotonic clock advancing `step` seconds per reading."""

    def __init__(self, step: float = 10.0):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class FakeSourceClient:
    def __init__(self, latest: int = 0, events: Optional[dict[int, list[SourceEvent]]] = None):
        self.latest = latest
        self.events = events or {}
        self.latest_error = False
        self.failures: dict[int, int] = {}  # height -> remaining failing fetches
        self.fetched: list[int] = []
        self.on_fetch = None

    def latest_height(self) -> int:
        if self.latest_error:
            raise ChainError("source node unreachable")
        return self.latest

    def events_in_range(self, event_type: str, start: int, end: int) -> list[SourceEvent]:
        self.fetched.append(start)
        if self.on_fetch is not None:
            self.on_fetch(start)
        if self.failures.get(start, 0) > 0:
            self.failures[start] -= 1
            raise ChainError(f"events at {start} unavailable")
        out = []
        for height in range(start, end + 1):
            out.extend(self.events.get(height, []))
        return out


class FakeRelayClient:
    def __init__(self, height: int = 0):
        self.height = height
        self.height_error = False
        self.headers: dict[int, RelayHeader] = {}
        self.header_failures: set[int] = set()
        self.events: dict[int, list[RelayEvent]] = {}
        self.proofs: dict[str, str] = {}
        self.done: set[tuple[int, bytes]] = set()
        self.status = TxStatus.CONFIRMED
        self.mark_done_on_submit = True

        self.transfers: list[tuple[int, bytes, int, bytes, Any]] = []
        self.signatures: list[tuple[int, bytes, bytes, Any]] = []
        self.proof_requests: list[tuple[int, str]] = []
        self.status_calls: list[str] = []
        self.done_queries: list[tuple[int, bytes]] = []

    def current_height(self) -> int:
        if self.height_error:
            raise ChainError("relay node unreachable")
        return self.height

    def header_by_height(self, height: int) -> RelayHeader:
        if height in self.header_failures:
            raise ChainError(f"header {height} unavailable")
        return self.headers.get(height, RelayHeader(height=height))

    def events_by_block(self, height: int) -> list[RelayEvent]:
        return self.events.get(height, [])

    def storage_proof(self, height: int, key: str) -> MerkleProof:
        self.proof_requests.append((height, key))
        return MerkleProof(audit_path=self.proofs[key])

    def submit_transfer(self, side_chain_id, payload, height, origin_tx_id, account) -> str:
        self.transfers.append((side_chain_id, payload, height, origin_tx_id, account))
        if self.mark_done_on_submit:
            record = CrossChainTransferRecord.decode(payload)
            self.done.add((side_chain_id, record.cross_chain_id))
        return f"transfer-{len(self.transfers)}"

    def submit_signature(self, side_chain_id, subject, signature, account) -> str:
        self.signatures.append((side_chain_id, subject, signature, account))
        return f"signature-{len(self.signatures)}"

    def transaction_status(self, tx_hash: str) -> TxStatus:
        self.status_calls.append(tx_hash)
        return self.status

    def query_done_marker(self, side_chain_id: int, cross_chain_id: bytes) -> bool:
        self.done_queries.append((side_chain_id, cross_chain_id))
        return (side_chain_id, cross_chain_id) in self.done

    def add_make_proof(self, height: int, states: list[Any], contract: str = ENTRANCE) -> None:
        self.events.setdefault(height, []).append(
            RelayEvent(tx_hash=f"tx-{height}", notifications=[RelayNotification(contract, states)])
        )


@pytest.fixture
def store(tmp_path):
    s = CheckpointStore(f"sqlite:///{tmp_path / 'voter.db'}")
    yield s
    s.close()


@pytest.fixture
def key_material() -> PrivateKeyMaterial:
    return PrivateKeyMaterial(algorithm=KeyAlgorithm.ECDSA, curve=Curve.SECP256K1, scalar=int("11" * 32, 16))


@pytest.fixture
def account(key_material) -> RelayAccount:
    return RelayAccount(address="AQf4Mzu1YJrhz9f3aRkkwSm9n3qhXGSh4p", key=key_material)


@pytest.fixture
def signer(key_material) -> Signer:
    return Signer(key_material)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def source_config() -> SourceMonitorConfig:
    return SourceMonitorConfig(
        side_chain_id=SIDE_CHAIN_ID,
        event_type=EVENT_TYPE,
        method_whitelist=frozenset({"unlock"}),
        confirmations=3,
        poll_interval=0,
        retry_backoff=0,
        tx_timeout=300,
        tx_poll_interval=0,
    )


@pytest.fixture
def relay_config() -> RelayMonitorConfig:
    return RelayMonitorConfig(
        side_chain_id=SIDE_CHAIN_ID,
        entrance_contract=ENTRANCE,
        confirmations=1,
        poll_interval=0,
        retry_backoff=0,
        tx_timeout=300,
        tx_poll_interval=0,
    )
