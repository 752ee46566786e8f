"""Small helpers for building LXD config mappings."""

from __future__ import annotations

import base64
from collections.abc import MutableMapping


def set_if_set(mapping: MutableMapping[str, str], key: str, value: str) -> None:
    """Set ``key`` to ``value`` unless ``value`` is empty."""
    if value:
        mapping[key] = value


def append_if_set(mapping: MutableMapping[str, str], key: str, value: str) -> None:
    """Set ``key`` to ``value``, appending after a newline to any existing value."""
    if not value:
        return
    existing = mapping.get(key, "")
    mapping[key] = f"{existing}\n{value}" if existing else value


def b32lower_encode(data: bytes) -> str:
    """Encode bytes as padded base32 using a lowercase alphabet."""
    return base64.b32encode(data).decode("ascii").lower()