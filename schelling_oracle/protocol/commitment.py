"""
Commitment hashing for the commit/reveal protocol.

A provider commits to ``sha256("<repr(float(value))>:<nonce>")`` and later
reveals the value and nonce. The value is normalized to ``float`` first so a
JSON ``11`` and ``11.0`` hash identically.
"""

import hashlib
import re

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def canonical_payload(value: float, nonce: str) -> bytes:
    """Return the exact bytes that are hashed for (value, nonce)."""
    return f"{float(value)!r}:{nonce}".encode("utf-8")


def compute_commitment(value: float, nonce: str) -> str:
    """Compute the commitment hash for a value and nonce."""
    return hashlib.sha256(canonical_payload(value, nonce)).hexdigest()


def normalize_commitment(commitment_hash: str) -> str:
    """Lowercase and strip a submitted hash; return '' if it is not a SHA-256 hex digest."""
    candidate = commitment_hash.strip().lower()
    if candidate.startswith("0x"):
        candidate = candidate[2:]
    return candidate if _HEX_DIGEST.match(candidate) else ""


def verify_commitment(commitment_hash: str, value: float, nonce: str) -> bool:
    """Verify that a reveal matches a commitment."""
    return compute_commitment(value, nonce) == commitment_hash
