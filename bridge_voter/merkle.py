"""
Merkle audit-path decoding.

An audit path is a var-bytes value followed by one (direction flag,
32-byte sibling hash) pair per tree level up to the root.
"""

import hashlib
from dataclasses import dataclass

from .codec import HASH_SIZE, ZeroCopySource
from .errors import DecodeError, InsufficientDataError

LEVEL_SIZE = 1 + HASH_SIZE

# Sibling sits to the left of the running hash
LEFT = 0


def hash_leaf(data: bytes) -> bytes:
    return hashlib.sha256(b"\x00" + data).digest()


def hash_children(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(b"\x01" + left + right).digest()


@dataclass(frozen=True)
class AuditPath:
    """Proven value plus its sibling hashes, leaf level first."""

    value: bytes
    levels: tuple[tuple[int, bytes], ...] = ()

    @property
    def directions(self) -> list[int]:
        return [flag for flag, _ in self.levels]

    @property
    def hashes(self) -> list[bytes]:
        return [h for _, h in self.levels]

    def root(self) -> bytes:
        """Reconstruct the merkle root committed to by this path."""
        node = hash_leaf(self.value)
        for flag, sibling in self.levels:
            if flag == LEFT:
                node = hash_children(sibling, node)
            else:
                node = hash_children(node, sibling)
        return node

    def verify(self, root: bytes) -> bool:
        return self.root() == root


def parse_audit_path(data: bytes) -> AuditPath:
    """
    Decode an audit path.

    Raises InsufficientDataError if the value or any level is truncated;
    a partial path is never returned.
    """
    source = ZeroCopySource(data)
    value = source.next_var_bytes()

    remaining = source.remaining()
    if remaining % LEVEL_SIZE:
        whole = remaining // LEVEL_SIZE
        raise InsufficientDataError((whole + 1) * LEVEL_SIZE, remaining)

    levels = []
    for _ in range(remaining // LEVEL_SIZE):
        flag = source.next_byte()
        if flag not in (0, 1):
            raise DecodeError(f"invalid audit path direction flag {flag:#x}")
        levels.append((flag, source.next_hash()))

    return AuditPath(value=value, levels=tuple(levels))
