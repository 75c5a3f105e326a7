"""Build identifiers for executable files."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class BuildIdKind(enum.Enum):
    """Where a build id came from."""

    GNU = "gnu"
    GO = "go"
    SHA256 = "sha256"


@dataclass(frozen=True)
class BuildId:
    """A GNU build id, a Go build id, or a SHA-256 hash of the .text section."""

    kind: BuildIdKind
    value: str

    @classmethod
    def gnu_from_bytes(cls, data: bytes) -> BuildId:
        """Build a GNU build id from its raw bytes, hex encoded in lower case."""
        return cls(BuildIdKind.GNU, bytes(data).hex())

    @classmethod
    def go_from_bytes(cls, data: bytes) -> BuildId:
        """Build a Go build id; raises UnicodeDecodeError if the bytes are not UTF-8."""
        return cls(BuildIdKind.GO, bytes(data).decode("utf-8"))

    @classmethod
    def sha256_from_digest(cls, digest) -> BuildId:
        """Build an id from a SHA-256 digest, given as bytes or as a hashlib object."""
        if hasattr(digest, "digest"):
            digest = digest.digest()
        return cls(BuildIdKind.SHA256, bytes(digest).hex())

    def __str__(self) -> str:
        return f"{self.kind.value}-{self.value}"