"""
Checkpointed polling loop shared by the source and relay monitors.

Each tick reads the chain tip, walks every height in
[next_height, tip - confirmations) in order and persists next_height
afterwards. A height that fails is retried on a later tick; next_height
never moves past it.
"""

import random
import threading
from typing import Generic, Optional, Sequence, TypeVar

import structlog

from .chains import choose_client
from .db import Chain, CheckpointStore
from .errors import Cancelled, ChainError, CheckpointError, StartupError

logger = structlog.get_logger()

T = TypeVar("T")


class ClientCursor(Generic[T]):
    """The client a monitor is currently talking to, out of a fixed pool."""

    def __init__(self, clients: Sequence[T], rng: random.Random):
        self.clients = tuple(clients)
        self.rng = rng
        self.index = choose_client(self.clients, rng)
        self._hold = False

    @property
    def current(self) -> T:
        return self.clients[self.index]

    def rotate(self, failed: bool = False) -> None:
        """
        Draw the client for the next request.

        After a failure the failing client is excluded, and that choice is
        kept for the following regular draw so the retry goes elsewhere.
        """
        if failed:
            self.index = choose_client(self.clients, self.rng, exclude=self.index)
            self._hold = True
            return
        if self._hold:
            self._hold = False
            return
        self.index = choose_client(self.clients, self.rng)


class PollingMonitor:
    """Base class for a monitor advancing one chain checkpoint."""

    name = "monitor"
    chain: Chain

    def __init__(
        self,
        store: CheckpointStore,
        *,
        confirmations: int,
        poll_interval: float,
        retry_backoff: float,
        force_height: int = 0,
        stop: Optional[threading.Event] = None,
    ):
        self.store = store
        self.confirmations = confirmations
        self.poll_interval = poll_interval
        self.retry_backoff = retry_backoff
        self.force_height = force_height
        self.stop_event = stop or threading.Event()
        self.cursors: list[ClientCursor] = []

        self.next_height: Optional[int] = None
        self._persisted_height: Optional[int] = None
        self.log = logger.bind(monitor=self.name)

    # -- hooks ---------------------------------------------------------------

    def latest_height(self) -> int:
        """Current tip of the monitored chain."""
        raise NotImplementedError

    def process_height(self, height: int) -> None:
        """Handle every qualifying item at `height`; raise to retry it."""
        raise NotImplementedError

    # -- lifecycle -------------------------------------------------------------

    def rotate_clients(self, failed: bool = False) -> None:
        for cursor in self.cursors:
            cursor.rotate(failed=failed)

    def sleep(self, seconds: float) -> bool:
        """Sleep unless stopped; returns True if a stop was requested."""
        return self.stop_event.wait(seconds)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def resolve_start_height(self) -> int:
        """
        Pick the first height to process.

        Order: forced height, stored checkpoint, current chain tip.
        """
        try:
            stored = self.store.get(self.chain)
        except CheckpointError as e:
            raise StartupError(f"{self.name}: cannot read checkpoint: {e}") from e
        self._persisted_height = stored

        if self.force_height > 0:
            height, origin = self.force_height, "forced"
        elif stored > 0:
            height, origin = stored, "checkpoint"
        else:
            try:
                height, origin = self.latest_height(), "chain_tip"
            except ChainError as e:
                raise StartupError(f"{self.name}: cannot determine start height: {e}") from e

        self.next_height = height
        self.log.info("start_height_resolved", height=height, origin=origin)
        return height

    def run(self) -> None:
        """Poll until stopped."""
        if self.next_height is None:
            self.resolve_start_height()

        self.log.info("monitor_starting", next_height=self.next_height, poll_interval=self.poll_interval)

        while not self.stopped:
            try:
                self.tick()
            except Exception as e:
                self.log.error("tick_error", error=str(e))
                self.sleep(self.retry_backoff)

            if self.sleep(self.poll_interval):
                break

        self.persist()
        self.log.info("monitor_stopped", next_height=self.next_height)

    def tick(self) -> None:
        """Run one polling cycle."""
        if self.stopped:
            return
        if self.next_height is None:
            self.resolve_start_height()

        self.rotate_clients()
        try:
            latest = self.latest_height()
        except ChainError as e:
            self.log.warning("latest_height_failed", error=str(e))
            self.sleep(self.retry_backoff)
            self.rotate_clients(failed=True)
            self.persist()
            return

        if latest < self.next_height + self.confirmations:
            self.log.debug(
                "waiting_for_confirmations",
                latest=latest,
                next_height=self.next_height,
                confirmations=self.confirmations,
            )
        else:
            self.advance(latest - self.confirmations)

        self.persist()

    def advance(self, end: int) -> None:
        """Process heights up to (excluding) `end`, stopping at the first failure."""
        while self.next_height < end:
            if self.stopped:
                self.log.info("monitor_cancelled", next_height=self.next_height)
                return

            height = self.next_height
            self.log.info("handling_height", height=height)
            try:
                self.process_height(height)
            except Cancelled:
                self.log.info("monitor_cancelled", next_height=height)
                return
            except Exception as e:
                self.log.warning("height_failed", height=height, error=str(e))
                self.sleep(self.retry_backoff)
                self.rotate_clients(failed=True)
                return

            self.next_height = height + 1

    def persist(self) -> None:
        """Store next_height if it moved; failures are retried next tick."""
        if self.next_height is None or self.next_height == self._persisted_height:
            return
        try:
            self.store.put(self.chain, self.next_height)
        except CheckpointError as e:
            self.log.warning("checkpoint_write_failed", height=self.next_height, error=str(e))
            return
        self._persisted_height = self.next_height
        self.log.info("checkpoint_saved", next_height=self.next_height)
