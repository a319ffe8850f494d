"""
Utility functions for the tile-dither runner.

Hashing of quantized data and canonical JSON for event lines.
"""

import hashlib
import json
from typing import Any

import numpy as np


def sha256_array(data: np.ndarray) -> str:
    """SHA256 of an array's dtype, shape and C-order bytes."""
    arr = np.ascontiguousarray(data)
    h = hashlib.sha256()
    h.update(str(arr.dtype.str).encode("ascii"))
    h.update(json.dumps(list(arr.shape)).encode("ascii"))
    h.update(arr.tobytes())
    return h.hexdigest()


def json_dumps_canonical(obj: Any) -> bytes:
    """Canonical JSON serialization for event lines."""
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")
