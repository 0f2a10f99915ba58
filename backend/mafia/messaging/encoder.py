"""
MessagePack encoder/decoder for wire format communication.

Every WebSocket frame in either direction is one MessagePack map.
"""

from typing import Any

import msgpack


def encode(data: dict[str, Any]) -> bytes:
    """
    Encode a dict to MessagePack bytes.
    """
    return msgpack.packb(data)


class DecodeError(Exception):
    """Error raised when MessagePack decoding fails."""


# Size limits to prevent resource exhaustion from malicious payloads.
# Requests are small maps; the largest is a create_room with a role config.
MAX_BUFFER_LEN = 16 * 1024  # 16KB total payload
MAX_STR_LEN = 4 * 1024  # 4KB per string
MAX_BIN_LEN = 1024  # 1KB per binary
MAX_ARRAY_LEN = 64  # max array elements
MAX_MAP_LEN = 32  # max map entries
MAX_EXT_LEN = 64  # max extension data


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a dict.

    Raises DecodeError if data is invalid, not a dict, or exceeds size limits.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected dict, got {type(result).__name__}")

    return result
