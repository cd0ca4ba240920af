"""Hash service for schema and script identity (canonical JSON + algorithm)."""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod
from typing import Any


class HashAlgorithm(ABC):
    """Abstract hash algorithm (OCP)."""

    @abstractmethod
    def hash(self, data: str) -> str:
        """Compute hash of input string."""
        ...


class SHA1Algorithm(HashAlgorithm):
    """SHA-1; the digest Redis uses to name scripts."""

    def hash(self, data: str) -> str:
        return hashlib.sha1(data.encode()).hexdigest()


class HashService:
    """Single source of truth for schema serialization and hashing."""

    def __init__(self, algorithm: HashAlgorithm | None = None) -> None:
        self.algorithm = algorithm or SHA1Algorithm()

    @staticmethod
    def canonical_json(data: dict[str, Any]) -> str:
        """Canonical JSON for deterministic storage and hashing."""
        return json.dumps(data, sort_keys=True, separators=(",", ":"))

