"""
Voter: runs the source and relay monitors side by side.
"""

import random
import threading
from typing import Optional, Sequence

import structlog

from .chains import RelayChainClient, SourceChainClient
from .config import VoterConfig
from .db import CheckpointStore
from .errors import ConfigurationError
from .flow import FlowAccessClient
from .keys import RelayAccount, load_account
from .poly import PolyRpcClient
from .relay_monitor import RelayMonitor
from .signer import Signer
from .source_monitor import SourceMonitor

logger = structlog.get_logger()


class Voter:
    """
    Owns both monitors, the checkpoint store and the chain clients.

    The monitors run in their own threads and only share the store
    (disjoint keys) and the read-only client pools.
    """

    def __init__(
        self,
        config: VoterConfig,
        source_clients: Optional[Sequence[SourceChainClient]] = None,
        relay_clients: Optional[Sequence[RelayChainClient]] = None,
        store: Optional[CheckpointStore] = None,
        account: Optional[RelayAccount] = None,
        signer: Optional[Signer] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        settings = config.settings

        # key errors surface before any connection is opened
        self.account = account or load_account(settings)
        self.signer = signer or Signer(
            self.account.key,
            domain_tag=settings.signature_domain_tag,
            hash_algorithm=settings.signature_hash_algorithm,
        )

        if source_clients is None:
            source_clients = [
                FlowAccessClient(url, timeout=settings.rpc_timeout_seconds) for url in config.source_urls
            ]
        if relay_clients is None:
            relay_clients = [
                PolyRpcClient(
                    url,
                    timeout=settings.rpc_timeout_seconds,
                    cross_chain_manager=settings.cross_chain_manager_address,
                )
                for url in config.relay_urls
            ]
        self.source_clients = list(source_clients)
        self.relay_clients = list(relay_clients)
        if not self.source_clients or not self.relay_clients:
            raise ConfigurationError("source and relay client pools must not be empty")
        self.store = store or CheckpointStore(settings.database_url)

        self.stop_event = threading.Event()
        self.source_monitor = SourceMonitor(
            config.source_monitor(),
            self.source_clients,
            self.relay_clients,
            self.store,
            self.account,
            stop=self.stop_event,
            rng=rng or random.Random(),
        )
        self.relay_monitor = RelayMonitor(
            config.relay_monitor(),
            self.relay_clients,
            self.store,
            self.signer,
            self.account,
            stop=self.stop_event,
            rng=rng or random.Random(),
        )
        self._threads: list[threading.Thread] = []

        logger.info(
            "voter_initialized",
            side_chain_id=settings.side_chain_id,
            source_endpoints=len(self.source_clients),
            relay_endpoints=len(self.relay_clients),
            account=self.account.address,
        )

    @property
    def monitors(self) -> tuple[SourceMonitor, RelayMonitor]:
        return (self.source_monitor, self.relay_monitor)

    @property
    def is_running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """
        Resolve start heights and launch both monitor threads.

        Start-height failures raise StartupError before any thread runs.
        """
        if self._threads:
            raise RuntimeError("voter already started")

        for monitor in self.monitors:
            monitor.resolve_start_height()

        for monitor in self.monitors:
            thread = threading.Thread(target=monitor.run, name=f"{monitor.name}-monitor", daemon=True)
            thread.start()
            self._threads.append(thread)

        logger.info("voter_started")

    def stop(self) -> None:
        """Ask both monitors to exit."""
        self.stop_event.set()
        logger.info("voter_stopping")

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def run(self) -> None:
        """Start and block until both monitors exit."""
        self.start()
        # short joins keep the main thread responsive to KeyboardInterrupt
        while self.is_running:
            self.join(timeout=0.5)

    def close(self) -> None:
        """Release the store and client connections."""
        self.store.close()
        for client in [*self.source_clients, *self.relay_clients]:
            close = getattr(client, "close", None)
            if close is not None:
                close()
        logger.info("voter_closed")
