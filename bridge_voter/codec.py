"""
Wire codec for cross-chain payloads.

Relay-chain values use a compact little-endian encoding with
Bitcoin-style variable-length integers. Source-chain events arrive as
JSON-Cadence documents whose last field carries the serialized
MakeTxParam as a hex string.
"""

import struct
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator

from .chains import SourceEvent
from .errors import DecodeError, InsufficientDataError

HASH_SIZE = 32

MAKE_PROOF_METHOD = "makeProof"


class ZeroCopySource:
    """Bounds-checked reader over a byte buffer."""

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self._pos = 0

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def pos(self) -> int:
        return self._pos

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def next_bytes(self, n: int) -> bytes:
        if n < 0:
            raise DecodeError(f"negative length {n}")
        if self.remaining() < n:
            raise InsufficientDataError(n, self.remaining())
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    def next_byte(self) -> int:
        return self.next_bytes(1)[0]

    def next_bool(self) -> bool:
        b = self.next_byte()
        if b not in (0, 1):
            raise DecodeError(f"invalid bool byte {b:#x}")
        return b == 1

    def next_uint16(self) -> int:
        return struct.unpack("<H", self.next_bytes(2))[0]

    def next_uint32(self) -> int:
        return struct.unpack("<I", self.next_bytes(4))[0]

    def next_uint64(self) -> int:
        return struct.unpack("<Q", self.next_bytes(8))[0]

    def next_var_uint(self) -> int:
        tag = self.next_byte()
        if tag == 0xFD:
            value = self.next_uint16()
            minimum = 0xFD
        elif tag == 0xFE:
            value = self.next_uint32()
            minimum = 0x10000
        elif tag == 0xFF:
            value = self.next_uint64()
            minimum = 0x100000000
        else:
            return tag
        if value < minimum:
            raise DecodeError(f"non-canonical varuint {value} with prefix {tag:#x}")
        return value

    def next_var_bytes(self) -> bytes:
        length = self.next_var_uint()
        return self.next_bytes(length)

    def next_string(self) -> str:
        raw = self.next_var_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid utf-8 string: {e}") from e

    def next_hash(self) -> bytes:
        return self.next_bytes(HASH_SIZE)

    def read_since(self, start: int) -> bytes:
        """Bytes consumed since position `start`."""
        return self._data[start:self._pos]


class ZeroCopySink:
    """Writer producing the encoding read by ZeroCopySource."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def bytes(self) -> bytes:
        return bytes(self._buf)

    def write_bytes(self, data: bytes) -> "ZeroCopySink":
        self._buf += data
        return self

    def write_byte(self, b: int) -> "ZeroCopySink":
        self._buf.append(b)
        return self

    def write_bool(self, value: bool) -> "ZeroCopySink":
        return self.write_byte(1 if value else 0)

    def write_uint16(self, value: int) -> "ZeroCopySink":
        return self.write_bytes(struct.pack("<H", value))

    def write_uint32(self, value: int) -> "ZeroCopySink":
        return self.write_bytes(struct.pack("<I", value))

    def write_uint64(self, value: int) -> "ZeroCopySink":
        return self.write_bytes(struct.pack("<Q", value))

    def write_var_uint(self, value: int) -> "ZeroCopySink":
        if value < 0xFD:
            return self.write_byte(value)
        if value <= 0xFFFF:
            return self.write_byte(0xFD).write_uint16(value)
        if value <= 0xFFFFFFFF:
            return self.write_byte(0xFE).write_uint32(value)
        return self.write_byte(0xFF).write_uint64(value)

    def write_var_bytes(self, data: bytes) -> "ZeroCopySink":
        return self.write_var_uint(len(data)).write_bytes(data)

    def write_string(self, value: str) -> "ZeroCopySink":
        return self.write_var_bytes(value.encode("utf-8"))


@dataclass(frozen=True)
class CrossChainTransferRecord:
    """Outbound transfer parameters (MakeTxParam) emitted by the source chain."""

    tx_hash: bytes
    cross_chain_id: bytes
    from_contract: bytes
    to_chain_id: int
    to_contract: bytes
    method: str
    args: bytes
    raw: bytes = b""  # serialized form, submitted as-is

    @classmethod
    def read_from(cls, source: ZeroCopySource) -> "CrossChainTransferRecord":
        start = source.pos
        tx_hash = source.next_var_bytes()
        cross_chain_id = source.next_var_bytes()
        from_contract = source.next_var_bytes()
        to_chain_id = source.next_uint64()
        to_contract = source.next_var_bytes()
        method = source.next_string()
        args = source.next_var_bytes()
        return cls(
            tx_hash=tx_hash,
            cross_chain_id=cross_chain_id,
            from_contract=from_contract,
            to_chain_id=to_chain_id,
            to_contract=to_contract,
            method=method,
            args=args,
            raw=source.read_since(start),
        )

    @classmethod
    def decode(cls, data: bytes) -> "CrossChainTransferRecord":
        """Decode a MakeTxParam. Trailing bytes are ignored."""
        return cls.read_from(ZeroCopySource(data))

    def write_to(self, sink: ZeroCopySink) -> ZeroCopySink:
        return (
            sink.write_var_bytes(self.tx_hash)
            .write_var_bytes(self.cross_chain_id)
            .write_var_bytes(self.from_contract)
            .write_uint64(self.to_chain_id)
            .write_var_bytes(self.to_contract)
            .write_string(self.method)
            .write_var_bytes(self.args)
        )

    def encode(self) -> bytes:
        return self.write_to(ZeroCopySink()).bytes()


@dataclass(frozen=True)
class MerkleValue:
    """Value proven by a relay-chain cross-state proof (ToMerkleValue)."""

    tx_hash: bytes
    from_chain_id: int
    make_tx_param: CrossChainTransferRecord

    @classmethod
    def decode(cls, data: bytes) -> "MerkleValue":
        source = ZeroCopySource(data)
        tx_hash = source.next_var_bytes()
        from_chain_id = source.next_uint64()
        param = CrossChainTransferRecord.read_from(source)
        return cls(tx_hash=tx_hash, from_chain_id=from_chain_id, make_tx_param=param)

    def encode(self) -> bytes:
        sink = ZeroCopySink().write_var_bytes(self.tx_hash).write_uint64(self.from_chain_id)
        return self.make_tx_param.write_to(sink).bytes()


# -- source-chain events --------------------------------------------------


class CadenceValue(BaseModel):
    type: str
    value: Any = None


class CadenceField(BaseModel):
    name: str
    value: CadenceValue


class CadenceComposite(BaseModel):
    id: str
    fields: list[CadenceField] = Field(min_length=1)


class CadenceEvent(BaseModel):
    """JSON-Cadence event envelope."""

    type: Literal["Event"]
    value: CadenceComposite


def decode_source_event(event: SourceEvent) -> CrossChainTransferRecord:
    """
    Decode a source-chain cross-chain event.

    The last event field must be a Cadence String holding the hex encoded
    MakeTxParam.
    """
    try:
        envelope = CadenceEvent.model_validate_json(event.payload)
    except ValidationError as e:
        raise DecodeError(f"invalid event payload in tx {event.transaction_id}: {e}") from e

    last = envelope.value.fields[-1]
    if last.value.type != "String" or not isinstance(last.value.value, str):
        raise DecodeError(
            f"field {last.name!r} of {envelope.value.id} is {last.value.type}, expected String"
        )
    try:
        raw = bytes.fromhex(last.value.value)
    except ValueError as e:
        raise DecodeError(f"field {last.name!r} is not hex: {e}") from e

    return CrossChainTransferRecord.decode(raw)


# -- relay-chain notifications --------------------------------------------


def _integral(value: Any) -> int:
    # JSON numbers may arrive as floats
    if isinstance(value, bool):
        raise ValueError("expected integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(f"expected integer, got {type(value).__name__}")


Integral = Annotated[int, BeforeValidator(_integral), Field(ge=0)]


class SettlementRequest(BaseModel):
    """A makeProof notification emitted by the relay chain."""

    model_config = ConfigDict(frozen=True, strict=True)

    method: Literal["makeProof"]
    from_chain_id: Integral
    to_chain_id: Integral
    tx_hash: str
    height: Integral
    key: str

    @field_validator("key")
    @classmethod
    def _key_is_hex(cls, v: str) -> str:
        bytes.fromhex(v)
        return v

    @property
    def side_chain_id(self) -> int:
        return self.to_chain_id


SETTLEMENT_FIELDS = ("method", "from_chain_id", "to_chain_id", "tx_hash", "height", "key")


def is_make_proof(states: Any) -> bool:
    """Cheap check for the notification method before full validation."""
    return isinstance(states, list) and bool(states) and states[0] == MAKE_PROOF_METHOD


def decode_settlement_request(states: Any) -> SettlementRequest:
    """Validate positional notification states against the makeProof schema."""
    if not isinstance(states, list) or len(states) != len(SETTLEMENT_FIELDS):
        raise DecodeError(f"makeProof notification must have {len(SETTLEMENT_FIELDS)} states: {states!r}")
    try:
        return SettlementRequest(**dict(zip(SETTLEMENT_FIELDS, states)))
    except ValidationError as e:
        raise DecodeError(f"invalid makeProof notification: {e}") from e


def done_marker_key(side_chain_id: int, cross_chain_id: bytes, prefix: bytes = b"doneTx") -> bytes:
    """Storage key of the relay-chain flag marking a transfer as relayed."""
    return ZeroCopySink().write_bytes(prefix).write_uint64(side_chain_id).write_bytes(cross_chain_id).bytes()
