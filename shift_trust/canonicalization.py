"""
Shift Trust Canonical JSON

Signed requests and stored records are serialized with one canonical
encoding so that the same logical value always produces the same bytes:

- Object keys sorted lexicographically
- Compact separators, UTF-8, no BOM
- Byte strings rendered as lowercase hex
- Floats rejected (amounts and timestamps are integers)
"""

import json
from typing import Any, Dict, List, Union


def canonicalize(obj: Any) -> bytes:
    """Return the canonical JSON encoding of obj as UTF-8 bytes."""
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    """Return canonical JSON as string."""
    return canonicalize(obj).decode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    elif isinstance(value, int):
        return value
    elif isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    elif isinstance(value, dict):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    for key in obj:
        if not isinstance(key, str):
            raise ValueError(f"Object keys must be strings, got {type(key)}")
    return {k: _canonicalize_value(obj[k]) for k in sorted(obj.keys())}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    return [_canonicalize_value(item) for item in arr]
