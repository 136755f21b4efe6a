"""
Domain-tagged secp256k1 signatures over relay-chain values.

The message is hashed as H(tag || message), where the tag is
right-padded with zero bytes to 32 bytes, and the digest is signed with
ECDSA over secp256k1. Signatures are returned as r || s (64 bytes).
"""

import hashlib
from typing import Any, Callable

import structlog
from coincurve import PrivateKey, PublicKey

from .errors import ConfigurationError
from .keys import PrivateKeyMaterial

logger = structlog.get_logger()

DOMAIN_TAG_LENGTH = 32
SIGNATURE_LENGTH = 64

HASH_ALGORITHMS: dict[str, Callable[[bytes], Any]] = {
    "sha2_256": hashlib.sha256,
    "sha3_256": hashlib.sha3_256,
}


def pad_domain_tag(tag: str) -> bytes:
    raw = tag.encode("utf-8")
    if len(raw) > DOMAIN_TAG_LENGTH:
        raise ConfigurationError(f"domain tag longer than {DOMAIN_TAG_LENGTH} bytes: {tag!r}")
    return raw.ljust(DOMAIN_TAG_LENGTH, b"\x00")


def prefixed_digest(message: bytes, tag: str, hash_algorithm: str = "sha2_256") -> bytes:
    """Hash `message` prefixed with the padded domain tag."""
    try:
        hasher = HASH_ALGORITHMS[hash_algorithm]
    except KeyError:
        raise ConfigurationError(f"unsupported hash algorithm: {hash_algorithm}") from None
    return hasher(pad_domain_tag(tag) + message).digest()


def verify_signature(public_key: PublicKey, digest: bytes, signature: bytes) -> bool:
    """Check an r || s signature over `digest` by public-key recovery."""
    if len(signature) != SIGNATURE_LENGTH:
        return False
    expected = public_key.format(compressed=True)
    for recid in range(4):
        try:
            recovered = PublicKey.from_signature_and_message(
                signature + bytes([recid]), digest, hasher=None
            )
        except Exception:  # coincurve raises a bare Exception when recovery fails
            continue
        if recovered.format(compressed=True) == expected:
            return True
    return False


class Signer:
    """Signs relay-chain values for the source chain's signature manager."""

    def __init__(
        self,
        key: PrivateKeyMaterial,
        domain_tag: str = "FLOW-V0.0-user",
        hash_algorithm: str = "sha2_256",
    ):
        if hash_algorithm not in HASH_ALGORITHMS:
            raise ConfigurationError(f"unsupported hash algorithm: {hash_algorithm}")
        pad_domain_tag(domain_tag)

        self.domain_tag = domain_tag
        self.hash_algorithm = hash_algorithm
        self._private_key = PrivateKey(key.normalize())

        logger.info(
            "signer_initialized",
            domain_tag=domain_tag,
            hash_algorithm=hash_algorithm,
            public_key=self.public_key_hex,
        )

    @property
    def public_key(self) -> PublicKey:
        return self._private_key.public_key

    @property
    def public_key_hex(self) -> str:
        # raw 64-byte X || Y form
        return self.public_key.format(compressed=False)[1:].hex()

    def digest(self, message: bytes) -> bytes:
        return prefixed_digest(message, self.domain_tag, self.hash_algorithm)

    def sign(self, message: bytes) -> bytes:
        """Return the 64-byte r || s signature of `message`."""
        recoverable = self._private_key.sign_recoverable(self.digest(message), hasher=None)
        return recoverable[:SIGNATURE_LENGTH]

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify_signature(self.public_key, self.digest(message), signature)
