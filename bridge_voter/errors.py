"""
Exception hierarchy for the voter.
"""


class VoterError(Exception):
    """Base class for all voter errors."""


class ConfigurationError(VoterError):
    """Invalid or missing configuration."""


class UnsupportedKeyError(ConfigurationError):
    """Private key uses an algorithm the signer cannot handle."""

    def __init__(self, algorithm: str):
        self.algorithm = algorithm
        super().__init__(f"unsupported private key algorithm: {algorithm}")


class StartupError(VoterError):
    """The voter cannot determine a safe starting state."""


class DecodeError(VoterError):
    """Malformed event, proof or payload."""


class InsufficientDataError(DecodeError):
    """Buffer ended before the expected field."""

    def __init__(self, needed: int, available: int):
        self.needed = needed
        self.available = available
        super().__init__(f"insufficient data: need {needed} bytes, have {available}")


class ChainError(VoterError):
    """Transient failure talking to a chain."""


class ConfirmationTimeout(ChainError):
    """Submitted transaction was not confirmed in time."""

    def __init__(self, tx_hash: str, timeout: float):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"transaction {tx_hash} not confirmed within {timeout}s")


class TransactionFailed(ChainError):
    """Submitted transaction landed with a failure state."""

    def __init__(self, tx_hash: str, reason: str = ""):
        self.tx_hash = tx_hash
        self.reason = reason
        super().__init__(f"transaction {tx_hash} failed: {reason or 'execution failed'}")


class CheckpointError(VoterError):
    """Checkpoint store read or write failed."""


class Cancelled(VoterError):
    """Stop was requested while a monitor was blocked."""
