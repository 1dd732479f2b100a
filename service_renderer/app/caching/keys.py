"""
Cache key derivation.
"""

import hashlib
import json
from typing import Any, Mapping

# Only fields that change the rendered output belong here. The TTL override
# must stay out or identical pages would be cached once per TTL value.
KEY_FIELDS = ("url",)


def derive_cache_key(params: Mapping[str, Any]) -> str:
    """Derive the cache key for a set of request parameters.

    The key is the SHA-1 hex digest of the canonical JSON form of the
    identity fields. Field order in the incoming mapping does not matter,
    and a missing field is encoded as null so it still yields a key.
    """
    canonical = {name: params.get(name) for name in KEY_FIELDS}
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()
