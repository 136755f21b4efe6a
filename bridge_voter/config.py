"""
Configuration management for the bridge voter.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

# Cross-chain manager native contract on the relay chain
CROSS_CHAIN_MANAGER_ADDRESS = "0300000000000000000000000000000000000000"


def split_csv(value: str) -> list[str]:
    """Split a comma-separated setting, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Endpoints (comma-separated)
    source_rpc_urls: str = "http://127.0.0.1:8888"
    relay_rpc_urls: str = "http://127.0.0.1:20336"
    rpc_timeout_seconds: float = 30.0

    # Bridge identity
    side_chain_id: int = 0
    source_event_type: str = ""
    method_whitelist: str = "unlock"
    entrance_contract_address: str = CROSS_CHAIN_MANAGER_ADDRESS
    cross_chain_manager_address: str = CROSS_CHAIN_MANAGER_ADDRESS

    # Monitor tuning
    source_confirmations: int = Field(default=3, ge=0)
    relay_confirmations: int = Field(default=1, ge=0)
    source_poll_interval_seconds: float = 2.0
    relay_poll_interval_seconds: float = 1.0
    retry_backoff_seconds: float = 1.0
    tx_confirm_timeout_seconds: float = 300.0
    tx_poll_interval_seconds: float = 1.0
    verify_state_root: bool = True

    # Forced start heights (0 = disabled)
    force_source_height: int = Field(default=0, ge=0)
    force_relay_height: int = Field(default=0, ge=0)

    # Relay account
    relay_private_key: str = ""
    key_algorithm: str = "ecdsa"
    key_curve: str = "P-256"
    keystore_path: Optional[str] = None
    keystore_password: str = ""
    relay_account_address: str = ""

    # Signature scheme expected by the source chain
    signature_domain_tag: str = "FLOW-V0.0-user"
    signature_hash_algorithm: str = "sha2_256"

    # Checkpoint store
    database_url: str = "sqlite:///./voter.db"

    # Logging
    log_level: str = "info"
    log_format: str = "console"


@dataclass(frozen=True)
class SourceMonitorConfig:
    """Tunables of the source-chain monitor."""

    side_chain_id: int
    event_type: str
    method_whitelist: frozenset[str]
    confirmations: int = 3
    poll_interval: float = 2.0
    retry_backoff: float = 1.0
    tx_timeout: float = 300.0
    tx_poll_interval: float = 1.0
    force_height: int = 0

    def is_whitelisted(self, method: str) -> bool:
        return method in self.method_whitelist


@dataclass(frozen=True)
class RelayMonitorConfig:
    """Tunables of the relay-chain monitor."""

    side_chain_id: int
    entrance_contract: str
    confirmations: int = 1
    poll_interval: float = 1.0
    retry_backoff: float = 1.0
    tx_timeout: float = 300.0
    tx_poll_interval: float = 1.0
    force_height: int = 0
    verify_state_root: bool = True


@dataclass
class VoterConfig:
    """Full voter configuration."""

    settings: Settings

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "VoterConfig":
        """Load configuration from environment."""
        settings = Settings(_env_file=env_path) if env_path else Settings()
        return cls(settings=settings)

    @property
    def source_urls(self) -> list[str]:
        return split_csv(self.settings.source_rpc_urls)

    @property
    def relay_urls(self) -> list[str]:
        return split_csv(self.settings.relay_rpc_urls)

    def source_monitor(self) -> SourceMonitorConfig:
        s = self.settings
        return SourceMonitorConfig(
            side_chain_id=s.side_chain_id,
            event_type=s.source_event_type,
            method_whitelist=frozenset(split_csv(s.method_whitelist)),
            confirmations=s.source_confirmations,
            poll_interval=s.source_poll_interval_seconds,
            retry_backoff=s.retry_backoff_seconds,
            tx_timeout=s.tx_confirm_timeout_seconds,
            tx_poll_interval=s.tx_poll_interval_seconds,
            force_height=s.force_source_height,
        )

    def relay_monitor(self) -> RelayMonitorConfig:
        s = self.settings
        return RelayMonitorConfig(
            side_chain_id=s.side_chain_id,
            entrance_contract=s.entrance_contract_address,
            confirmations=s.relay_confirmations,
            poll_interval=s.relay_poll_interval_seconds,
            retry_backoff=s.retry_backoff_seconds,
            tx_timeout=s.tx_confirm_timeout_seconds,
            tx_poll_interval=s.tx_poll_interval_seconds,
            force_height=s.force_relay_height,
            verify_state_root=s.verify_state_root,
        )

    def validate_for_run(self) -> None:
        """Reject configurations the monitors cannot run with."""
        s = self.settings
        problems = []
        if not self.source_urls:
            problems.append("SOURCE_RPC_URLS is empty")
        if not self.relay_urls:
            problems.append("RELAY_RPC_URLS is empty")
        if s.side_chain_id <= 0:
            problems.append("SIDE_CHAIN_ID must be set")
        if not s.source_event_type:
            problems.append("SOURCE_EVENT_TYPE must be set")
        if s.relay_confirmations < 1:
            # header h+1 must exist before height h is handled
            problems.append("RELAY_CONFIRMATIONS must be at least 1")
        if not s.relay_private_key and not s.keystore_path:
            problems.append("RELAY_PRIVATE_KEY or KEYSTORE_PATH must be set")
        if problems:
            raise ConfigurationError("; ".join(problems))
