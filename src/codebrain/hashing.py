"""
Short content hashes and ID generators.

Hashes are the first 8 hex characters of SHA-256. They exist for change
detection and addressing only; nothing here is meant to be collision-proof
at scale or cryptographically meaningful.
"""

import hashlib
import json
import secrets
import time
from typing import Any, Dict, List, Optional, Union

EMPTY_HASH = "00000000"
HASH_LENGTH = 8


def compute(content: Optional[Union[str, bytes]]) -> str:
    """
    Hash content to an 8-character hex digest.

    Args:
        content: String or bytes to hash. Empty or None maps to EMPTY_HASH.

    Returns:
        8-character lowercase hex string

    Examples:
        >>> compute("")
        '00000000'
        >>> len(compute("test"))
        8
        >>> compute("hello") == compute("hello")
        True
    """
    if not content:
        return EMPTY_HASH
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()[:HASH_LENGTH]


def compute_table(data: Any) -> str:
    """Hash a JSON-serializable value using its canonical (sorted-key) encoding."""
    return compute(json.dumps(data, sort_keys=True, default=str))


def random_hex() -> str:
    """Random 8-character hex string."""
    return secrets.token_hex(HASH_LENGTH // 2)


def node_id(type_code: str, content: Optional[str] = None, timestamp: Optional[float] = None) -> str:
    """
    Generate a node ID: ``n_<type code>_<unix seconds>_<hash>``.

    The hash mixes the content with the current time and a random salt, so
    identical content created within the same second still gets distinct IDs.

    Args:
        type_code: Short node type code (e.g. ``pat``)
        content: Optional content to fold into the hash
        timestamp: Creation time (defaults to now)
    """
    now = time.time() if timestamp is None else timestamp
    salt = f"{type_code}:{content or ''}:{now!r}:{random_hex()}"
    return f"n_{type_code}_{int(now)}_{compute(salt)}"


def edge_id(source_id: str, target_id: str) -> str:
    """Deterministic edge ID built from truncated hashes of both endpoints."""
    return f"e_{compute(source_id)[:6]}_{compute(target_id)[:6]}"


def delta_hash(changes: List[Dict[str, Any]], parent: Optional[str], timestamp: float) -> str:
    """Content address of a delta: parent + timestamp + change descriptors."""
    descriptors = [
        f"{c.get('op', '')}:{c.get('path', '')}:{c.get('before') or ''}:{c.get('after') or ''}"
        for c in changes
    ]
    return compute(f"{parent or 'root'}|{timestamp!r}|" + "|".join(descriptors))


def path_hash(path: str) -> str:
    """Hash a file path."""
    return compute(path)


def matches(hash1: Optional[str], hash2: Optional[str]) -> bool:
    return hash1 is not None and hash1 == hash2
