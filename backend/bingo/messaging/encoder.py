"""
MessagePack codec for bingo frames.

A frame is one message model's model_dump() packed as a MessagePack map.
Card grids and mark grids are tuples in the domain models and enum members
travel as their plain values, so both are flattened before packing.
"""

from enum import Enum
from typing import Any

import msgpack

# WINNER_ANNOUNCED is the largest frame: it carries the sealed audit record
# with every card and mark grid in the game.
MAX_BUFFER_LEN = 512 * 1024

_UNPACK_LIMITS: dict[str, int] = {
    "max_str_len": 8 * 1024,
    "max_bin_len": 0,  # no binary fields in the protocol
    "max_array_len": 4096,
    "max_map_len": 64,
    "max_ext_len": 0,
}


class DecodeError(Exception):
    """A frame could not be turned into a message dict."""


def _to_wire(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k) if isinstance(k, int) else k: _to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_wire(item) for item in value]
    return value


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(_to_wire(data), use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    """
    Unpack one frame.

    Raises DecodeError for oversized, malformed, or non-map payloads.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(data, raw=False, strict_map_key=True, **_UNPACK_LIMITS)
    except (msgpack.UnpackException, ValueError, TypeError) as e:
        raise DecodeError(f"malformed frame: {e}") from e
    if not isinstance(result, dict):
        raise DecodeError(f"expected dict, got {type(result).__name__}")
    return result
