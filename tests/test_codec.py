"""
Tests for the wire codec and payload schemas.
"""

import json

import pytest

from bridge_voter.chains import SourceEvent
from bridge_voter.codec import (
    CrossChainTransferRecord,
    MerkleValue,
    ZeroCopySink,
    ZeroCopySource,
    decode_settlement_request,
    decode_source_event,
    done_marker_key,
    is_make_proof,
)
from bridge_voter.errors import DecodeError, InsufficientDataError

from conftest import EVENT_TYPE, cadence_payload, make_merkle_value, make_proof_states, make_record


class TestZeroCopySource:
    def test_reads_little_endian_integers(self):
        source = ZeroCopySource(bytes.fromhex("0102" "01000000" "0100000000000000"))
        assert source.next_uint16() == 0x0201
        assert source.next_uint32() == 1
        assert source.next_uint64() == 1
        assert source.remaining() == 0

    @pytest.mark.parametrize(
        "encoded, value",
        [
            ("fc", 0xFC),
            ("fdfd00", 0xFD),
            ("fe00000100", 0x10000),
            ("ff0000000001000000", 0x100000000),
        ],
    )
    def test_var_uint(self, encoded, value):
        assert ZeroCopySource(bytes.fromhex(encoded)).next_var_uint() == value
        assert ZeroCopySink().write_var_uint(value).bytes().hex() == encoded

    def test_non_canonical_var_uint_is_rejected(self):
        with pytest.raises(DecodeError):
            ZeroCopySource(bytes.fromhex("fd0100")).next_var_uint()

    def test_reading_past_end_raises_insufficient_data(self):
        source = ZeroCopySource(b"\x05abc")
        with pytest.raises(InsufficientDataError) as exc:
            source.next_var_bytes()
        assert exc.value.needed == 5
        assert exc.value.available == 3

    def test_invalid_utf8_string(self):
        with pytest.raises(DecodeError):
            ZeroCopySource(b"\x02\xff\xfe").next_string()


class TestTransferRecord:
    def test_decodes_fields_in_wire_order(self):
        raw = (
            ZeroCopySink()
            .write_var_bytes(b"\x01" * 32)
            .write_var_bytes(b"\x02\x03")
            .write_var_bytes(b"\x04")
            .write_uint64(6)
            .write_var_bytes(b"\x05" * 20)
            .write_string("unlock")
            .write_var_bytes(b"args")
            .bytes()
        )
        record = CrossChainTransferRecord.decode(raw)

        assert record.tx_hash == b"\x01" * 32
        assert record.cross_chain_id == b"\x02\x03"
        assert record.from_contract == b"\x04"
        assert record.to_chain_id == 6
        assert record.to_contract == b"\x05" * 20
        assert record.method == "unlock"
        assert record.args == b"args"
        assert record.raw == raw

    def test_trailing_bytes_are_ignored(self):
        raw = make_record().encode()
        record = CrossChainTransferRecord.decode(raw + b"\xde\xad")
        assert record.method == "unlock"
        assert record.raw == raw

    def test_truncated_record(self):
        raw = make_record().encode()
        with pytest.raises(InsufficientDataError):
            CrossChainTransferRecord.decode(raw[:-3])

    def test_merkle_value_nests_record(self):
        value = make_merkle_value(ccid=b"\x33", from_chain_id=9)
        decoded = MerkleValue.decode(value.encode())
        assert decoded.from_chain_id == 9
        assert decoded.make_tx_param.cross_chain_id == b"\x33"


class TestSourceEvent:
    def _event(self, payload: bytes) -> SourceEvent:
        return SourceEvent(
            type=EVENT_TYPE,
            transaction_id="ab" * 32,
            transaction_index=0,
            event_index=0,
            payload=payload,
        )

    def test_decodes_last_field(self):
        record = make_record(b"\x44")
        decoded = decode_source_event(self._event(cadence_payload(record.encode().hex())))
        assert decoded == record

    def test_last_field_must_be_string(self):
        with pytest.raises(DecodeError, match="expected String"):
            decode_source_event(self._event(cadence_payload("00", field_type="UInt64")))

    def test_rejects_non_event_document(self):
        payload = json.dumps({"type": "Struct", "value": {"id": "x", "fields": []}}).encode()
        with pytest.raises(DecodeError):
            decode_source_event(self._event(payload))

    def test_rejects_invalid_json(self):
        with pytest.raises(DecodeError):
            decode_source_event(self._event(b"{not json"))

    def test_rejects_truncated_param(self):
        raw_hex = make_record().encode().hex()[:-8]
        with pytest.raises(DecodeError):
            decode_source_event(self._event(cadence_payload(raw_hex)))


class TestSettlementRequest:
    def test_accepts_integral_floats(self):
        request = decode_settlement_request(make_proof_states(side_chain_id=7, key="0a0b", height=50))
        assert request.side_chain_id == 7
        assert request.from_chain_id == 2
        assert request.height == 50
        assert request.key == "0a0b"

    def test_accepts_ints(self):
        request = decode_settlement_request(["makeProof", 2, 7, "cc", 50, "ff"])
        assert request.to_chain_id == 7

    @pytest.mark.parametrize(
        "states",
        [
            ["makeProof", True, 7, "cc", 50, "ff"],
            ["makeProof", 2, -7, "cc", 50, "ff"],
            ["makeProof", 2, 7, 12, 50, "ff"],
            ["makeProof", 2, 7, "cc", 50, "ff", "extra"],
            {"method": "makeProof"},
        ],
    )
    def test_rejects_schema_mismatch(self, states):
        with pytest.raises(DecodeError):
            decode_settlement_request(states)

    def test_is_make_proof(self):
        assert is_make_proof(["makeProof"])
        assert not is_make_proof(["unlock"])
        assert not is_make_proof([])
        assert not is_make_proof("makeProof")


def test_done_marker_key_layout():
    key = done_marker_key(7, b"\xab\xcd")
    assert key == b"doneTx" + (7).to_bytes(8, "little") + b"\xab\xcd"
