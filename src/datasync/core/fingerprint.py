"""
Configuration fingerprints.

Produces stable hashes of filter sets so the delta store can tell whether
a run used the same configuration as the previous one. Values are
converted to a canonical JSON form first, so key order, set order and
date types do not affect the hash.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from typing import Any, Mapping


def canonicalize(value: Any) -> Any:
    """
    Convert a value to a JSON-safe canonical form.

    Mappings are key-sorted, sets are sorted and dates become ISO strings.
    """
    if isinstance(value, Mapping):
        return {str(k): canonicalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (set, frozenset)):
        return sorted((canonicalize(v) for v in value), key=str)
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def fingerprint(data: Mapping[str, Any]) -> str:
    """MD5 hex digest of a mapping in canonical form."""
    payload = json.dumps(canonicalize(data), sort_keys=True, separators=(",", ":"))
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
