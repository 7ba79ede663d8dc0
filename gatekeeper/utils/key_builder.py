"""Counter store key derivation."""

from __future__ import annotations

from hashlib import sha256

KEY_NAMESPACE = "rate_limit"


def build_key(identifier: str, key_prefix: str) -> str:
    """Build a stable store key from an identifier and a policy prefix.

    The prefix is length-prefixed before hashing so that no two distinct
    (identifier, key_prefix) pairs produce the same digest input. The raw
    identifier never appears in the key.

    Args:
        identifier: Caller identity (client IP, account id, ...).
        key_prefix: Policy namespace.

    Returns:
        Key of the form ``rate_limit:<key_prefix>:<hex digest>``.
    """

    hasher = sha256()
    hasher.update(f"{len(key_prefix)}:".encode())
    hasher.update(key_prefix.encode())
    hasher.update(identifier.encode())
    return f"{KEY_NAMESPACE}:{key_prefix}:{hasher.hexdigest()}"


def hash_identifier(identifier: str) -> str:
    """Short hash of an identifier for logging without exposing it."""
    return sha256(identifier.encode()).hexdigest()[:16]
