"""
Relay account key material.

Keys are normalized once at startup into a fixed-width big-endian
scalar, whatever encoding they were loaded from. Only ECDSA keys are
accepted; other algorithms are rejected here rather than at sign time.
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog
from eth_account import Account

from .config import Settings
from .errors import ConfigurationError, UnsupportedKeyError

logger = structlog.get_logger()


class KeyAlgorithm(str, Enum):
    ECDSA = "ecdsa"
    SM2 = "sm2"
    ED25519 = "ed25519"


SUPPORTED_ALGORITHMS = frozenset({KeyAlgorithm.ECDSA})


class Curve(str, Enum):
    P256 = "P-256"
    SECP256K1 = "secp256k1"

    @property
    def bit_size(self) -> int:
        return 256

    @property
    def order(self) -> int:
        return _CURVE_ORDERS[self]


_CURVE_ORDERS = {
    Curve.P256: 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
    Curve.SECP256K1: 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141,
}


def parse_algorithm(name: str) -> KeyAlgorithm:
    try:
        return KeyAlgorithm(name.lower())
    except ValueError as e:
        raise UnsupportedKeyError(name) from e


def parse_curve(name: str) -> Curve:
    for curve in Curve:
        if curve.value.lower() == name.lower():
            return curve
    raise ConfigurationError(f"unknown curve: {name}")


@dataclass(frozen=True)
class PrivateKeyMaterial:
    """A private key tagged with its algorithm and curve."""

    algorithm: KeyAlgorithm
    curve: Curve
    scalar: int

    def __post_init__(self) -> None:
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise UnsupportedKeyError(self.algorithm.value)
        if not 0 < self.scalar < self.curve.order:
            raise ConfigurationError(f"private key scalar out of range for {self.curve.value}")

    @property
    def size(self) -> int:
        return (self.curve.bit_size + 7) >> 3

    def normalize(self) -> bytes:
        """Big-endian scalar, zero-padded to the curve width."""
        return self.scalar.to_bytes(self.size, "big")

    def __repr__(self) -> str:
        return f"PrivateKeyMaterial(algorithm={self.algorithm.value}, curve={self.curve.value})"

    @classmethod
    def from_hex(cls, key_hex: str, algorithm: str = "ecdsa", curve: str = "P-256") -> "PrivateKeyMaterial":
        alg = parse_algorithm(algorithm)
        crv = parse_curve(curve)
        key_hex = key_hex.strip().removeprefix("0x")
        try:
            raw = bytes.fromhex(key_hex)
        except ValueError as e:
            raise ConfigurationError("private key is not valid hex") from e
        if not raw or len(raw) > (crv.bit_size + 7) >> 3:
            raise ConfigurationError(f"private key has invalid length {len(raw)}")
        return cls(algorithm=alg, curve=crv, scalar=int.from_bytes(raw, "big"))


@dataclass(frozen=True)
class RelayAccount:
    """Account used for relay-chain submissions."""

    address: str
    key: PrivateKeyMaterial


def load_keystore(path: Path, password: str) -> PrivateKeyMaterial:
    """Decrypt an Ethereum V3 keystore file."""
    try:
        keyfile = json.loads(path.read_text())
        raw = Account.decrypt(keyfile, password)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"cannot load keystore {path}: {e}") from e
    return PrivateKeyMaterial(
        algorithm=KeyAlgorithm.ECDSA,
        curve=Curve.SECP256K1,
        scalar=int.from_bytes(bytes(raw), "big"),
    )


def load_private_key(settings: Settings) -> PrivateKeyMaterial:
    """Load the relay key from a keystore file or a hex setting."""
    if settings.keystore_path:
        return load_keystore(Path(settings.keystore_path), settings.keystore_password)
    if settings.relay_private_key:
        return PrivateKeyMaterial.from_hex(
            settings.relay_private_key,
            algorithm=settings.key_algorithm,
            curve=settings.key_curve,
        )
    raise ConfigurationError("no relay key configured (RELAY_PRIVATE_KEY or KEYSTORE_PATH)")


def load_account(settings: Settings) -> RelayAccount:
    """Load the relay account; the address defaults to the key's EVM address."""
    key = load_private_key(settings)
    address = settings.relay_account_address or Account.from_key(key.normalize()).address
    logger.info(
        "relay_account_loaded",
        address=address,
        algorithm=key.algorithm.value,
        curve=key.curve.value,
    )
    return RelayAccount(address=address, key=key)
