"""
Relay-chain client over JSON-RPC.

Reads use the relay node's standard methods (`getblockcount`, `getblock`,
`getsmartcodeevent`, `getcrossstatesproof`, `getstorage`).

Writes assume a deployment detail: `importoutertransfer` and
`addsignature` are not relay-node methods. They must be served on the
configured endpoint by a signing gateway that builds the relay-chain
transaction, signs it with the account named in the request and returns
its hash. A plain relay node rejects both calls with an RPC error, which
fails the height and is retried like any other chain error.
"""

from typing import Any, Optional

import httpx
import structlog

from .chains import MerkleProof, RelayEvent, RelayHeader, RelayNotification, TxStatus
from .codec import done_marker_key
from .config import CROSS_CHAIN_MANAGER_ADDRESS
from .errors import ChainError
from .keys import RelayAccount

logger = structlog.get_logger()


class PolyRPCError(ChainError):
    """Error returned by a relay-chain JSON-RPC call."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC Error {code}: {message}")


class PolyRpcClient:
    """JSON-RPC client for a relay-chain node."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        cross_chain_manager: str = CROSS_CHAIN_MANAGER_ADDRESS,
    ):
        self.url = url
        self.cross_chain_manager = cross_chain_manager
        self.client = httpx.Client(timeout=timeout)
        self._request_id = 0

    def __repr__(self) -> str:
        return f"PolyRpcClient({self.url!r})"

    def _call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Make RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        try:
            response = self.client.post(self.url, json=payload)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ChainError(f"{method} failed: {e}") from e

        error = result.get("error")
        if error:
            if isinstance(error, dict):
                raise PolyRPCError(error.get("code", -1), error.get("message", "Unknown error"))
            raise PolyRPCError(int(error), result.get("desc", "Unknown error"))

        return result.get("result")

    def current_height(self) -> int:
        # getblockcount counts the genesis block
        return int(self._call("getblockcount")) - 1

    def header_by_height(self, height: int) -> RelayHeader:
        block = self._call("getblock", [height, 1])
        if not block:
            raise ChainError(f"block {height} not found")
        header = block.get("Header", {})
        root_hex = header.get("CrossStateRoot")
        return RelayHeader(
            height=int(header.get("Height", height)),
            block_hash=block.get("Hash", ""),
            # hashes are rendered byte-reversed in JSON
            cross_state_root=bytes.fromhex(root_hex)[::-1] if root_hex else None,
        )

    def events_by_block(self, height: int) -> list[RelayEvent]:
        raw_events = self._call("getsmartcodeevent", [height]) or []
        events = []
        for raw in raw_events:
            notifications = [
                RelayNotification(
                    contract_address=n.get("ContractAddress", ""),
                    states=n.get("States"),
                )
                for n in raw.get("Notify") or []
            ]
            events.append(
                RelayEvent(
                    tx_hash=raw.get("TxHash", ""),
                    state=int(raw.get("State", 0)),
                    notifications=notifications,
                )
            )
        return events

    def storage_proof(self, height: int, key: str) -> MerkleProof:
        proof = self._call("getcrossstatesproof", [height, key])
        if not proof or "AuditPath" not in proof:
            raise ChainError(f"no cross-state proof for key {key} at height {height}")
        return MerkleProof(audit_path=proof["AuditPath"], type=proof.get("Type", "MerkleProof"))

    def submit_transfer(
        self,
        side_chain_id: int,
        payload: bytes,
        height: int,
        origin_tx_id: bytes,
        account: RelayAccount,
    ) -> str:
        tx_hash = self._call(
            "importoutertransfer",
            [side_chain_id, payload.hex(), height, origin_tx_id.hex(), account.address],
        )
        logger.info(
            "transfer_submitted",
            tx_hash=tx_hash,
            origin_tx=origin_tx_id.hex(),
            height=height,
        )
        return tx_hash

    def submit_signature(
        self,
        side_chain_id: int,
        subject: bytes,
        signature: bytes,
        account: RelayAccount,
    ) -> str:
        tx_hash = self._call(
            "addsignature",
            [side_chain_id, subject.hex(), signature.hex(), account.address],
        )
        logger.info("signature_submitted", tx_hash=tx_hash, side_chain_id=side_chain_id)
        return tx_hash

    def transaction_status(self, tx_hash: str) -> TxStatus:
        event = self._call("getsmartcodeevent", [tx_hash])
        if not event:
            return TxStatus.PENDING
        return TxStatus.CONFIRMED if int(event.get("State", 0)) == 1 else TxStatus.FAILED

    def query_done_marker(self, side_chain_id: int, cross_chain_id: bytes) -> bool:
        key = done_marker_key(side_chain_id, cross_chain_id)
        value = self._call("getstorage", [self.cross_chain_manager, key.hex()])
        return bool(value)

    def close(self) -> None:
        self.client.close()
