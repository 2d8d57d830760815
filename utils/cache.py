"""
Fingerprinting helpers for pipeline descriptors.

- Stable hashes identify candidates across runs (progress resume, tuning cache).
- Hashing of repeated keys is memoized with lru_cache.
"""

import json
from functools import lru_cache
from hashlib import sha256
from typing import Any, Dict


@lru_cache(maxsize=4096)
def fingerprint(key: str) -> str:
    """
    Deterministically hash a string key (cached to avoid repeated hashing).
    """
    return sha256(key.encode("utf-8")).hexdigest()


def descriptor_fingerprint(descriptor: Dict[str, Any]) -> str:
    """Hash of a descriptor's canonical JSON form; key order does not matter."""
    return fingerprint(json.dumps(descriptor, sort_keys=True, default=str))
