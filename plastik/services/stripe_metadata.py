"""
Stripe metadata helpers.

Stripe caps each metadata value at 500 characters and a session at 50 keys.
A long value is spread over ``key``, ``key_1``, ``key_2``... and joined back
in the same order when the webhook reads it.
"""
from typing import Dict, Mapping

from plastik.core.exceptions import CartTooLargeError

METADATA_VALUE_LIMIT = 500
METADATA_KEY_LIMIT = 50


def split_metadata_value(key: str, value: str, limit: int = METADATA_VALUE_LIMIT) -> Dict[str, str]:
    chunks = [value[start:start + limit] for start in range(0, len(value), limit)] or [""]
    return {key if n == 0 else f"{key}_{n}": chunk for n, chunk in enumerate(chunks)}


def join_metadata_value(metadata: Mapping[str, str], key: str) -> str:
    parts = [metadata.get(key) or ""]
    n = 1
    while f"{key}_{n}" in metadata:
        parts.append(metadata[f"{key}_{n}"] or "")
        n += 1
    return "".join(parts)


def build_metadata(values: Mapping[str, str], split_key: str) -> Dict[str, str]:
    """Metadata dict with ``split_key`` spread over as many keys as it needs."""
    metadata = {k: v for k, v in values.items() if k != split_key}
    metadata.update(split_metadata_value(split_key, values[split_key]))
    if len(metadata) > METADATA_KEY_LIMIT:
        raise CartTooLargeError(
            f"{split_key} needs {len(metadata)} metadata keys; Stripe allows {METADATA_KEY_LIMIT}"
        )
    return metadata
