"""Layer tree and page body hashing for ETags and determinism checks."""

import hashlib
import json
from typing import Any


def hash_tree(tree: Any) -> str:
    """
    Deterministic hash of a JSON-compatible tree.

    Returns the first 16 hex characters of the SHA-256 of the sorted-key,
    compact JSON serialization.
    """
    serialized = json.dumps(tree, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:16]


def hash_html(html: str) -> str:
    """MD5 of the served HTML body, used as the page ETag."""
    return hashlib.md5(html.encode("utf-8"), usedforsecurity=False).hexdigest()
