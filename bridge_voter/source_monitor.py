"""
Source-chain monitor: forwards outbound cross-chain events to the relay chain.
"""

import random
import threading
import time
from typing import Callable, Optional, Sequence

from .chains import RelayChainClient, SourceChainClient, SourceEvent, TxStatus, wait_for_transaction
from .codec import CrossChainTransferRecord, decode_source_event
from .config import SourceMonitorConfig
from .db import Chain, CheckpointStore
from .errors import DecodeError, TransactionFailed
from .keys import RelayAccount
from .monitor import ClientCursor, PollingMonitor


class SourceMonitor(PollingMonitor):
    """
    Watches the source chain and votes each admitted transfer onto the
    relay chain.

    Before every submission the relay chain's done marker for
    (side_chain_id, cross_chain_id) is queried, including when a height is
    retried, so a transfer that already landed is never submitted twice.
    """

    name = "source"
    chain = Chain.SOURCE

    def __init__(
        self,
        config: SourceMonitorConfig,
        source_clients: Sequence[SourceChainClient],
        relay_clients: Sequence[RelayChainClient],
        store: CheckpointStore,
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
        self.account = account
        self.clock = clock
        rng = rng or random.Random()
        self.source = ClientCursor(source_clients, rng)
        self.relay = ClientCursor(relay_clients, rng)
        self.cursors = [self.source, self.relay]

    def latest_height(self) -> int:
        return self.source.current.latest_height()

    def process_height(self, height: int) -> None:
        events = self.source.current.events_in_range(self.config.event_type, height, height)

        submitted = 0
        for event in events:
            if event.type != self.config.event_type:
                continue
            if self._handle_event(event, height):
                submitted += 1

        self.log.info("source_height_processed", height=height, events=len(events), submitted=submitted)

    def _decode(self, event: SourceEvent, height: int) -> Optional[tuple[CrossChainTransferRecord, bytes]]:
        try:
            record = decode_source_event(event)
            origin_tx_id = bytes.fromhex(event.transaction_id)
        except (DecodeError, ValueError) as e:
            self.log.warning(
                "source_event_undecodable",
                height=height,
                tx_id=event.transaction_id,
                error=str(e),
            )
            return None
        return record, origin_tx_id

    def _handle_event(self, event: SourceEvent, height: int) -> bool:
        """Relay one event; returns True if a transfer was submitted."""
        decoded = self._decode(event, height)
        if decoded is None:
            return False
        record, origin_tx_id = decoded

        if not self.config.is_whitelisted(record.method):
            self.log.warning("method_not_whitelisted", method=record.method, height=height)
            return False

        relay = self.relay.current
        side_chain_id = self.config.side_chain_id
        if relay.query_done_marker(side_chain_id, record.cross_chain_id):
            self.log.info(
                "transfer_already_relayed",
                cross_chain_id=record.cross_chain_id.hex(),
                tx_id=event.transaction_id,
            )
            return False

        tx_hash = relay.submit_transfer(side_chain_id, record.raw, height, origin_tx_id, self.account)
        self.log.info(
            "transfer_vote_sent",
            relay_tx=tx_hash,
            origin_tx=event.transaction_id,
            cross_chain_id=record.cross_chain_id.hex(),
            height=height,
        )

        status = wait_for_transaction(
            relay,
            tx_hash,
            timeout=self.config.tx_timeout,
            poll_interval=self.config.tx_poll_interval,
            stop=self.stop_event,
            clock=self.clock,
        )
        if status is TxStatus.FAILED and not relay.query_done_marker(side_chain_id, record.cross_chain_id):
            raise TransactionFailed(tx_hash, "transfer not marked done")

        self.log.info("transfer_vote_confirmed", relay_tx=tx_hash, status=status.value)
        return True
