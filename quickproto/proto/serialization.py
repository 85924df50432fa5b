"""Serialization and deserialization for quickproto message types.

Generated message classes only declare their fields. The functions in this
module read that declaration through a MessageDescriptor and do all of the
wire work, so no codec logic is generated per type.
"""

import dataclasses
import logging
import math
import struct
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import cache
from typing import Any, ClassVar, Self

from .text import format_message
from .types import FieldDescriptor, Label, MessageDescriptor, ScalarType
from .wire import (
    MAX_FIELD_NUMBER,
    MalformedWireData,
    WireType,
    decode_varint,
    encode_length_delimited,
    encode_tag,
    encode_varint,
    iter_fields,
    zigzag_decode,
    zigzag_encode,
)

_LOG = logging.getLogger(__name__)


class SerializationError(RuntimeError):
    """Raised when a message cannot be serialized."""


@dataclass(frozen=True)
class ProtoFieldInfo:
    """Metadata for a quickproto message field."""

    number: int
    type: ScalarType | None = None
    label: Label = Label.OPTIONAL
    key_type: ScalarType | None = None
    value_type: ScalarType | None = None
    packed: bool = False
    name: str | None = None  # .proto name, when it differs from the attribute


# Sentinel for missing default
_MISSING: Any = object()

_ZERO_VALUES: dict[ScalarType, Any] = {
    ScalarType.DOUBLE: 0.0,
    ScalarType.FLOAT: 0.0,
    ScalarType.BOOL: False,
    ScalarType.STRING: "",
    ScalarType.BYTES: b"",
}

_INT_RANGES: dict[ScalarType, tuple[int, int]] = {
    ScalarType.INT32: (-(1 << 31), (1 << 31) - 1),
    ScalarType.SINT32: (-(1 << 31), (1 << 31) - 1),
    ScalarType.SFIXED32: (-(1 << 31), (1 << 31) - 1),
    ScalarType.INT64: (-(1 << 63), (1 << 63) - 1),
    ScalarType.SINT64: (-(1 << 63), (1 << 63) - 1),
    ScalarType.SFIXED64: (-(1 << 63), (1 << 63) - 1),
    ScalarType.UINT32: (0, (1 << 32) - 1),
    ScalarType.FIXED32: (0, (1 << 32) - 1),
    ScalarType.UINT64: (0, (1 << 64) - 1),
    ScalarType.FIXED64: (0, (1 << 64) - 1),
}

_FIXED_FORMATS: dict[ScalarType, str] = {
    ScalarType.FIXED32: "<I",
    ScalarType.SFIXED32: "<i",
    ScalarType.FLOAT: "<f",
    ScalarType.FIXED64: "<Q",
    ScalarType.SFIXED64: "<q",
    ScalarType.DOUBLE: "<d",
}


def _scalar(name: str) -> ScalarType:
    try:
        return ScalarType(name)
    except ValueError:
        raise SerializationError(f"Unknown scalar type {name}") from None


def zero_value(scalar: ScalarType) -> Any:
    """Return the zero value of a scalar kind."""
    return _ZERO_VALUES.get(scalar, 0)


def proto_field(
    type: str,
    *,
    number: int,
    label: str = "optional",
    packed: bool = False,
    name: str | None = None,
    default: Any = _MISSING,
) -> Any:
    """Define a scalar message field with serialization metadata.

    Args:
        type: The scalar kind (e.g., "int32", "string").
        number: The field number used in wire tags.
        label: "optional", "required" or "repeated".
        packed: Use packed encoding for a repeated numeric field.
        name: The .proto field name, if it differs from the attribute name.
        default: Default value. Defaults to the kind's zero value.

    Returns:
        A dataclass field with quickproto metadata attached.
    """
    info = ProtoFieldInfo(number, _scalar(type), Label(label), packed=packed, name=name)
    metadata = {"quickproto": info}

    if info.label == Label.REPEATED:
        return field(default_factory=list, metadata=metadata)
    if default is _MISSING:
        default = zero_value(info.type)
    return field(default=default, metadata=metadata)


def map_field(*, number: int, key: str, value: str, name: str | None = None) -> Any:
    """Define a map field, stored as a dict and encoded as repeated entries."""
    info = ProtoFieldInfo(
        number,
        label=Label.REPEATED,
        key_type=_scalar(key),
        value_type=_scalar(value),
        name=name,
    )
    if not info.key_type.is_valid_map_key:
        raise SerializationError(f"{key} cannot be used as a map key")
    return field(default_factory=dict, metadata={"quickproto": info})


class Message:
    """Base class for generated message types.

    Subclasses should be @dataclass decorated and define fields using
    proto_field() or map_field().

    Example:
        @dataclass
        class MapTest(Message):
            full_name: ClassVar[str] = "test.MapTest"
            name: str = proto_field("string", number=1)
            properties: dict[str, str] = map_field(number=2, key="string", value="string")
    """

    full_name: ClassVar[str] = ""

    @classmethod
    def descriptor(cls) -> MessageDescriptor:
        """Return the static descriptor for this message type."""
        return descriptor_for(cls)

    def encode(self, *, deterministic: bool = False) -> bytes:
        """Encode this message to bytes.

        Args:
            deterministic: Sort map entries by key so that equal messages
                always produce identical bytes.
        """
        return encode_message(self, deterministic=deterministic)

    @classmethod
    def decode(cls, data: bytes | memoryview) -> Self:
        """Decode a new message from bytes."""
        instance = cls()
        merge_message(instance, data)
        return instance

    def merge_from_bytes(self, data: bytes | memoryview) -> None:
        """Decode bytes into this message, overwriting fields that appear in data.

        On MalformedWireData the message may be partially populated.
        """
        merge_message(self, data)

    def reset(self) -> None:
        """Clear every field back to its zero value."""
        reset_message(self)

    def __str__(self) -> str:
        return format_message(descriptor_for(type(self)), self)


def is_message(obj: Any) -> bool:
    """Check whether an object or type is a quickproto message."""
    if isinstance(obj, type):
        return issubclass(obj, Message)
    return isinstance(obj, Message)


@cache
def descriptor_for(message_type: type) -> MessageDescriptor:
    """Build the descriptor of a message class from its field metadata."""
    if not dataclasses.is_dataclass(message_type):
        raise SerializationError(f"{message_type.__name__} is not a dataclass")

    fields: list[FieldDescriptor] = []
    for f in dataclasses.fields(message_type):
        info = f.metadata.get("quickproto")
        if info is None:
            continue
        fields.append(
            FieldDescriptor(
                number=info.number,
                name=info.name or f.name,
                attr=f.name,
                label=info.label,
                type=info.type,
                key_type=info.key_type,
                value_type=info.value_type,
                packed=info.packed,
                default=None if f.default is dataclasses.MISSING else f.default,
            )
        )

    fields.sort(key=lambda fd: fd.number)
    seen: set[int] = set()
    for fd in fields:
        if fd.number < 1 or fd.number > MAX_FIELD_NUMBER:
            raise SerializationError(f"{message_type.__name__}.{fd.name} has invalid number")
        if fd.number in seen:
            raise SerializationError(
                f"{message_type.__name__} declares field number {fd.number} twice"
            )
        seen.add(fd.number)

    name = getattr(message_type, "full_name", "") or message_type.__name__
    return MessageDescriptor(name=name, fields=tuple(fields))


@cache
def _fields_by_number(message_type: type) -> dict[int, FieldDescriptor]:
    return {fd.number: fd for fd in descriptor_for(message_type).fields}


def encode_scalar(scalar: ScalarType, value: Any) -> bytes:
    """Encode a scalar value without its tag."""
    if scalar == ScalarType.STRING:
        if not isinstance(value, str):
            raise SerializationError(f"Expected str, got {type(value).__name__}")
        return encode_length_delimited(value.encode("utf-8"))

    if scalar == ScalarType.BYTES:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise SerializationError(f"Expected bytes, got {type(value).__name__}")
        return encode_length_delimited(bytes(value))

    if scalar == ScalarType.BOOL:
        if not isinstance(value, int):
            raise SerializationError(f"Expected bool, got {type(value).__name__}")
        return b"\x01" if value else b"\x00"

    if scalar in (ScalarType.FLOAT, ScalarType.DOUBLE):
        if not isinstance(value, (int, float)):
            raise SerializationError(f"Expected float, got {type(value).__name__}")
        try:
            return struct.pack(_FIXED_FORMATS[scalar], value)
        except (struct.error, OverflowError) as err:
            raise SerializationError(f"{value} does not fit in {scalar}") from err

    if not isinstance(value, int):
        raise SerializationError(f"Expected int, got {type(value).__name__}")
    low, high = _INT_RANGES[scalar]
    if not low <= value <= high:
        raise SerializationError(f"{value} is out of range for {scalar}")

    if scalar in _FIXED_FORMATS:
        return struct.pack(_FIXED_FORMATS[scalar], value)
    if scalar in (ScalarType.SINT32, ScalarType.SINT64):
        return encode_varint(zigzag_encode(value))
    return encode_varint(value)


def _to_signed(value: int, bits: int) -> int:
    if value >= 1 << (bits - 1):
        return value - (1 << bits)
    return value


def decode_scalar(scalar: ScalarType, wire_type: WireType, raw: int | bytes) -> Any:
    """Decode a raw wire value into a scalar of the given kind."""
    if wire_type != scalar.wire_type:
        raise MalformedWireData(
            f"Expected wire type {scalar.wire_type.name} for {scalar}, got {wire_type.name}"
        )

    if isinstance(raw, int):
        if scalar == ScalarType.BOOL:
            return raw != 0
        if scalar == ScalarType.INT32:
            return _to_signed(raw & 0xFFFFFFFF, 32)
        if scalar == ScalarType.INT64:
            return _to_signed(raw, 64)
        if scalar == ScalarType.UINT32:
            return raw & 0xFFFFFFFF
        if scalar == ScalarType.SINT32:
            return zigzag_decode(raw & 0xFFFFFFFF)
        if scalar == ScalarType.SINT64:
            return zigzag_decode(raw)
        return raw

    if scalar == ScalarType.STRING:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise MalformedWireData(f"Invalid UTF-8 in string: {err}") from err
    if scalar == ScalarType.BYTES:
        return raw
    return struct.unpack(_FIXED_FORMATS[scalar], raw)[0]


def _encode_value(
    descriptor: MessageDescriptor, fd: FieldDescriptor, scalar: ScalarType, value: Any
) -> bytes:
    try:
        return encode_scalar(scalar, value)
    except SerializationError as err:
        raise SerializationError(f"{descriptor.name}.{fd.name}: {err}") from err


def _encode_map(
    buf: bytearray,
    descriptor: MessageDescriptor,
    fd: FieldDescriptor,
    mapping: dict[Any, Any] | None,
    deterministic: bool,
) -> None:
    if not mapping:
        return
    assert fd.key_type is not None and fd.value_type is not None

    items: Iterable[tuple[Any, Any]] = mapping.items()
    if deterministic:
        items = sorted(items, key=lambda item: item[0])

    key_tag = encode_tag(1, fd.key_type.wire_type)
    value_tag = encode_tag(2, fd.value_type.wire_type)
    entry_tag = encode_tag(fd.number, WireType.LEN)
    for key, value in items:
        entry = (
            key_tag
            + _encode_value(descriptor, fd, fd.key_type, key)
            + value_tag
            + _encode_value(descriptor, fd, fd.value_type, value)
        )
        buf.extend(entry_tag)
        buf.extend(encode_length_delimited(entry))


def _encode_repeated(
    buf: bytearray, descriptor: MessageDescriptor, fd: FieldDescriptor, values: list[Any] | None
) -> None:
    if not values:
        return
    assert fd.type is not None

    if fd.packed:
        payload = b"".join(_encode_value(descriptor, fd, fd.type, v) for v in values)
        buf.extend(encode_tag(fd.number, WireType.LEN))
        buf.extend(encode_length_delimited(payload))
        return

    tag = encode_tag(fd.number, fd.type.wire_type)
    for value in values:
        buf.extend(tag)
        buf.extend(_encode_value(descriptor, fd, fd.type, value))


def _is_default(fd: FieldDescriptor, value: Any) -> bool:
    if value != fd.default:
        return False
    if isinstance(value, float):
        # -0.0 == 0.0 but the two encode differently
        return math.copysign(1.0, value) == math.copysign(1.0, fd.default)
    return True


def encode_message(message: Message, *, deterministic: bool = False) -> bytes:
    """Encode a message to bytes, driven by its descriptor."""
    descriptor = descriptor_for(type(message))
    buf = bytearray()

    for fd in descriptor.fields:
        value = getattr(message, fd.attr)
        if fd.is_map:
            _encode_map(buf, descriptor, fd, value, deterministic)
        elif fd.label == Label.REPEATED:
            _encode_repeated(buf, descriptor, fd, value)
        else:
            assert fd.type is not None
            if value is None:
                if fd.label == Label.REQUIRED:
                    raise SerializationError(f"{descriptor.name}.{fd.name} is required")
                continue
            # Optional fields holding their default are not written
            if fd.label == Label.OPTIONAL and _is_default(fd, value):
                continue
            buf.extend(encode_tag(fd.number, fd.type.wire_type))
            buf.extend(_encode_value(descriptor, fd, fd.type, value))

    return bytes(buf)


def _decode_map_entry(
    fd: FieldDescriptor, wire_type: WireType, raw: int | bytes
) -> tuple[Any, Any]:
    if wire_type != WireType.LEN or not isinstance(raw, bytes):
        raise MalformedWireData(
            f"Map field {fd.name} must be length-delimited, got {wire_type.name}"
        )
    assert fd.key_type is not None and fd.value_type is not None

    key = zero_value(fd.key_type)
    value = zero_value(fd.value_type)
    for number, sub_type, sub_raw in iter_fields(raw):
        if number == 1:
            key = decode_scalar(fd.key_type, sub_type, sub_raw)
        elif number == 2:
            value = decode_scalar(fd.value_type, sub_type, sub_raw)
    return key, value


def _decode_packed(scalar: ScalarType, raw: bytes) -> list[Any]:
    values: list[Any] = []

    if scalar.wire_type == WireType.VARINT:
        offset = 0
        while offset < len(raw):
            value, consumed = decode_varint(raw, offset)
            offset += consumed
            values.append(decode_scalar(scalar, WireType.VARINT, value))
        return values

    size = 4 if scalar.wire_type == WireType.I32 else 8
    if len(raw) % size:
        raise MalformedWireData(f"Packed {scalar} payload is not a multiple of {size} bytes")
    for offset in range(0, len(raw), size):
        values.append(decode_scalar(scalar, scalar.wire_type, raw[offset : offset + size]))
    return values


def merge_message(message: Message, data: bytes | memoryview) -> None:
    """Decode bytes into an existing message.

    Scalars seen in data overwrite the current value, repeated fields are
    appended to and map entries are inserted with the last occurrence of a
    key winning. Unknown fields are skipped.
    """
    message_type = type(message)
    fields = _fields_by_number(message_type)

    for number, wire_type, raw in iter_fields(data):
        fd = fields.get(number)
        if fd is None:
            _LOG.debug(
                "Skipping unknown field %d (%s) in %s",
                number,
                wire_type.name,
                descriptor_for(message_type).name,
            )
            continue

        if fd.is_map:
            key, value = _decode_map_entry(fd, wire_type, raw)
            mapping = getattr(message, fd.attr)
            if mapping is None:
                mapping = {}
                setattr(message, fd.attr, mapping)
            mapping[key] = value
            continue

        assert fd.type is not None
        if fd.label == Label.REPEATED:
            values = getattr(message, fd.attr)
            if values is None:
                values = []
                setattr(message, fd.attr, values)
            if wire_type == WireType.LEN and fd.type.is_packable:
                assert isinstance(raw, bytes)
                values.extend(_decode_packed(fd.type, raw))
            else:
                values.append(decode_scalar(fd.type, wire_type, raw))
            continue

        setattr(message, fd.attr, decode_scalar(fd.type, wire_type, raw))


def reset_message(message: Message) -> None:
    """Overwrite every field of a message with its default value."""
    for f in dataclasses.fields(message):  # type: ignore[arg-type]
        if f.default_factory is not dataclasses.MISSING:
            setattr(message, f.name, f.default_factory())
        elif f.default is not dataclasses.MISSING:
            setattr(message, f.name, f.default)
