"""
Bridge Voter

Relay core of a cross-chain bridge. Two checkpointed monitors run side
by side:

- the source monitor forwards outbound cross-chain events from the
  source chain to the relay chain, skipping transfers the relay chain
  already marks as done;
- the relay monitor picks up makeProof notifications for our side
  chain, decodes the merkle proof and submits a domain-tagged signature
  over the proven value.

Usage:
    # Run both monitors
    bridge-voter run --config .env

    # Inspect or override checkpoints
    bridge-voter status
    bridge-voter set-height source 1200
"""

__version__ = "0.1.0"

from .config import VoterConfig, Settings
from .db import Chain, CheckpointStore
from .merkle import AuditPath, parse_audit_path
from .codec import CrossChainTransferRecord, MerkleValue, SettlementRequest
from .signer import Signer
from .source_monitor import SourceMonitor
from .relay_monitor import RelayMonitor
from .voter import Voter

__all__ = [
    "__version__",
    "VoterConfig",
    "Settings",
    "Chain",
    "CheckpointStore",
    "AuditPath",
    "parse_audit_path",
    "CrossChainTransferRecord",
    "MerkleValue",
    "SettlementRequest",
    "Signer",
    "SourceMonitor",
    "RelayMonitor",
    "Voter",
]
