"""
Relay-chain monitor: signs settlement requests addressed to our side chain.
"""

import random
import threading
import time
from typing import Callable, Optional, Sequence

from .chains import RelayChainClient, RelayHeader, TxStatus, wait_for_transaction
from .codec import MerkleValue, SettlementRequest, decode_settlement_request, is_make_proof
from .config import RelayMonitorConfig
from .db import Chain, CheckpointStore
from .errors import DecodeError
from .keys import RelayAccount
from .merkle import AuditPath, parse_audit_path
from .monitor import ClientCursor, PollingMonitor
from .signer import Signer


class RelayMonitor(PollingMonitor):
    """
    Watches the relay chain for makeProof notifications, fetches and
    decodes the cross-state proof, and submits a signature over the
    proven value.

    Height h is handled with the header of h + 1, whose state root seals
    the cross states written at h.
    """

    name = "relay"
    chain = Chain.RELAY

    def __init__(
        self,
        config: RelayMonitorConfig,
        relay_clients: Sequence[RelayChainClient],
        store: CheckpointStore,
        signer: Signer,
        account: RelayAccount,
        *,
        stop: Optional[threading.Event] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(
            store,
            confirmations=config.confirmations,
            poll_interval=config.poll_interval,
            retry_backoff=config.retry_backoff,
            force_height=config.force_height,
            stop=stop,
        )
        self.config = config
        self.signer = signer
        self.account = account
        self.clock = clock
        self.relay = ClientCursor(relay_clients, rng or random.Random())
        self.cursors = [self.relay]

    def latest_height(self) -> int:
        return self.relay.current.current_height()

    def process_height(self, height: int) -> None:
        relay = self.relay.current
        header = relay.header_by_height(height + 1)
        events = relay.events_by_block(height)

        signed = 0
        for event in events:
            for notify in event.notifications:
                if notify.contract_address != self.config.entrance_contract:
                    continue
                if not is_make_proof(notify.states):
                    continue
                try:
                    request = decode_settlement_request(notify.states)
                except DecodeError as e:
                    self.log.warning("settlement_request_undecodable", height=height, tx=event.tx_hash, error=str(e))
                    continue
                if request.side_chain_id != self.config.side_chain_id:
                    continue
                if self._handle_request(relay, header, request, height):
                    signed += 1

        self.log.info("relay_height_processed", height=height, events=len(events), signed=signed)

    def _decode_proof(self, audit_path_hex: str, header: RelayHeader) -> tuple[AuditPath, MerkleValue]:
        try:
            raw = bytes.fromhex(audit_path_hex)
        except ValueError as e:
            raise DecodeError(f"audit path is not hex: {e}") from e
        path = parse_audit_path(raw)
        value = MerkleValue.decode(path.value)

        if self.config.verify_state_root and header.cross_state_root is not None:
            if not path.verify(header.cross_state_root):
                raise DecodeError(f"audit path does not match state root of block {header.height}")
        return path, value

    def _handle_request(
        self,
        relay: RelayChainClient,
        header: RelayHeader,
        request: SettlementRequest,
        height: int,
    ) -> bool:
        """Sign one settlement request; returns True if a signature was submitted."""
        proof = relay.storage_proof(header.height - 1, request.key)
        try:
            path, value = self._decode_proof(proof.audit_path, header)
        except DecodeError as e:
            self.log.warning("settlement_proof_undecodable", height=height, key=request.key, error=str(e))
            return False

        signature = self.signer.sign(path.value)
        tx_hash = relay.submit_signature(self.config.side_chain_id, path.value, signature, self.account)

        status = wait_for_transaction(
            relay,
            tx_hash,
            timeout=self.config.tx_timeout,
            poll_interval=self.config.tx_poll_interval,
            stop=self.stop_event,
            clock=self.clock,
        )
        if status is TxStatus.FAILED:
            # replays hit signatures the relay chain already holds
            self.log.warning("signature_tx_failed", relay_tx=tx_hash, height=height)
        else:
            self.log.info(
                "settlement_signed",
                relay_tx=tx_hash,
                height=height,
                from_chain_id=value.from_chain_id,
                method=value.make_tx_param.method,
            )
        return True
