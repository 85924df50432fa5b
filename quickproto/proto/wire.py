"""Protocol buffer wire primitives: varints, tags and length-delimited values."""

from collections.abc import Iterator
from enum import IntEnum


class WireError(RuntimeError):
    """Base exception for wire format errors."""


class MalformedWireData(WireError):
    """Raised when bytes do not parse as a valid tag/length/value sequence."""


class WireType(IntEnum):
    """Wire type codes stored in the low three bits of a tag."""

    VARINT = 0
    I64 = 1
    LEN = 2
    SGROUP = 3
    EGROUP = 4
    I32 = 5


MAX_FIELD_NUMBER = (1 << 29) - 1
MAX_VARINT_BYTES = 10

_UINT64_MASK = (1 << 64) - 1


def encode_varint(value: int) -> bytes:
    """Encode an integer as a varint.

    Negative values are encoded as their 64-bit two's complement, which
    always takes ten bytes.
    """
    if value < 0:
        value &= _UINT64_MASK
    output = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            output.append(byte | 0x80)
        else:
            output.append(byte)
            return bytes(output)


def decode_varint(data: bytes | memoryview, offset: int = 0) -> tuple[int, int]:
    """Decode a varint.

    Args:
        data: The bytes to decode from.
        offset: Starting offset in data.

    Returns:
        Tuple of (value, bytes_consumed).
    """
    result = 0
    shift = 0
    position = offset
    end = len(data)

    while True:
        if position >= end:
            raise MalformedWireData("Truncated varint")
        if position - offset >= MAX_VARINT_BYTES:
            raise MalformedWireData("Varint exceeds 10 bytes")
        byte = data[position]
        result |= (byte & 0x7F) << shift
        position += 1
        if not byte & 0x80:
            break
        shift += 7

    return result & _UINT64_MASK, position - offset


def zigzag_encode(value: int) -> int:
    """Map a signed integer onto an unsigned one (0, -1, 1, -2 -> 0, 1, 2, 3)."""
    return (value << 1) ^ (value >> 63)


def zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def encode_tag(field_number: int, wire_type: WireType) -> bytes:
    """Encode a field tag."""
    return encode_varint((field_number << 3) | wire_type)


def decode_tag(data: bytes | memoryview, offset: int = 0) -> tuple[int, WireType, int]:
    """Decode a field tag.

    Returns:
        Tuple of (field_number, wire_type, bytes_consumed).
    """
    tag, consumed = decode_varint(data, offset)
    field_number = tag >> 3
    if field_number < 1 or field_number > MAX_FIELD_NUMBER:
        raise MalformedWireData(f"Invalid field number {field_number}")
    try:
        wire_type = WireType(tag & 0x07)
    except ValueError:
        raise MalformedWireData(f"Invalid wire type {tag & 0x07}") from None
    return field_number, wire_type, consumed


def encode_length_delimited(payload: bytes) -> bytes:
    """Prefix a payload with its varint length."""
    return encode_varint(len(payload)) + payload


def decode_length_delimited(data: bytes | memoryview, offset: int = 0) -> tuple[bytes, int]:
    """Decode a length-prefixed payload.

    Returns:
        Tuple of (payload, bytes_consumed).
    """
    length, consumed = decode_varint(data, offset)
    start = offset + consumed
    if start + length > len(data):
        raise MalformedWireData(
            f"Length-delimited value of {length} bytes exceeds the available data"
        )
    return bytes(data[start : start + length]), consumed + length


def _decode_fixed(data: bytes | memoryview, offset: int, size: int) -> tuple[bytes, int]:
    if offset + size > len(data):
        raise MalformedWireData(f"Truncated {size * 8}-bit value")
    return bytes(data[offset : offset + size]), size


def decode_value(
    data: bytes | memoryview, offset: int, wire_type: WireType
) -> tuple[int | bytes, int]:
    """Decode the raw value that follows a tag.

    Varints come back as unsigned ints. Every other wire type comes back as
    its raw bytes, without the length prefix for LEN values.

    Returns:
        Tuple of (raw_value, bytes_consumed).
    """
    if wire_type == WireType.VARINT:
        return decode_varint(data, offset)
    if wire_type == WireType.LEN:
        return decode_length_delimited(data, offset)
    if wire_type == WireType.I64:
        return _decode_fixed(data, offset, 8)
    if wire_type == WireType.I32:
        return _decode_fixed(data, offset, 4)
    raise MalformedWireData(f"Unsupported wire type {wire_type.name}")


def iter_fields(data: bytes | memoryview) -> Iterator[tuple[int, WireType, int | bytes]]:
    """Iterate over the top-level fields of an encoded message.

    Yields:
        Tuples of (field_number, wire_type, raw_value) in wire order.
    """
    offset = 0
    end = len(data)
    while offset < end:
        field_number, wire_type, consumed = decode_tag(data, offset)
        offset += consumed
        value, consumed = decode_value(data, offset, wire_type)
        offset += consumed
        yield field_number, wire_type, value
