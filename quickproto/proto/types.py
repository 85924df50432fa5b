"""Runtime type descriptors for quickproto message serialization.

These dataclasses describe the structure of message types at runtime. The
generic codec in serialization.py interprets them to encode and decode any
generated message.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .wire import WireType


class ScalarType(StrEnum):
    """Scalar value kinds, named as in .proto files."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"

    @property
    def wire_type(self) -> WireType:
        return _WIRE_TYPES[self]

    @property
    def is_packable(self) -> bool:
        """Only numeric kinds may use packed repeated encoding."""
        return self.wire_type != WireType.LEN

    @property
    def is_valid_map_key(self) -> bool:
        return self not in (ScalarType.DOUBLE, ScalarType.FLOAT, ScalarType.BYTES)


_WIRE_TYPES = {
    ScalarType.DOUBLE: WireType.I64,
    ScalarType.FLOAT: WireType.I32,
    ScalarType.INT32: WireType.VARINT,
    ScalarType.INT64: WireType.VARINT,
    ScalarType.UINT32: WireType.VARINT,
    ScalarType.UINT64: WireType.VARINT,
    ScalarType.SINT32: WireType.VARINT,
    ScalarType.SINT64: WireType.VARINT,
    ScalarType.FIXED32: WireType.I32,
    ScalarType.FIXED64: WireType.I64,
    ScalarType.SFIXED32: WireType.I32,
    ScalarType.SFIXED64: WireType.I64,
    ScalarType.BOOL: WireType.VARINT,
    ScalarType.STRING: WireType.LEN,
    ScalarType.BYTES: WireType.LEN,
}


class Label(StrEnum):
    """Field cardinality."""

    OPTIONAL = "optional"
    REQUIRED = "required"
    REPEATED = "repeated"


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Describes one field of a message.

    For map fields, type is None and key_type/value_type describe the
    implicit entry sub-message. default is the value an optional scalar
    takes when it is absent from the wire.
    """

    number: int
    name: str
    attr: str
    label: Label = Label.OPTIONAL
    type: ScalarType | None = None
    key_type: ScalarType | None = None
    value_type: ScalarType | None = None
    packed: bool = False
    default: Any = None

    @property
    def is_map(self) -> bool:
        return self.key_type is not None

    @property
    def wire_type(self) -> WireType:
        if self.is_map or self.packed:
            return WireType.LEN
        assert self.type is not None
        return self.type.wire_type


@dataclass(frozen=True, slots=True)
class MessageDescriptor:
    """Describes a message type with its fields ordered by number."""

    name: str
    fields: tuple[FieldDescriptor, ...]

    def field_by_number(self, number: int) -> FieldDescriptor | None:
        for field in self.fields:
            if field.number == number:
                return field
        return None

    def field_by_name(self, name: str) -> FieldDescriptor | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None
