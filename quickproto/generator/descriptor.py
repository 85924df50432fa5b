"""Serialized schema descriptors embedded in generated code.

The descriptor is a FileDescriptorProto holding the subset of fields that
quickproto schemas can express. It is encoded with the runtime wire
primitives and gzip-compressed.
"""

import gzip

from quickproto.proto.text import format_scalar
from quickproto.proto.types import ScalarType
from quickproto.proto.wire import WireType, encode_length_delimited, encode_tag, encode_varint

from .types import ProtoField, ProtoFile, ProtoMessage
from .util import to_camel_case, to_json_name

# FieldDescriptorProto.Label
LABELS = {"optional": 1, "required": 2, "repeated": 3}

# FieldDescriptorProto.Type
TYPE_NUMBERS = {
    "double": 1,
    "float": 2,
    "int64": 3,
    "uint64": 4,
    "int32": 5,
    "fixed64": 6,
    "fixed32": 7,
    "bool": 8,
    "string": 9,
    "message": 11,
    "bytes": 12,
    "uint32": 13,
    "sfixed32": 15,
    "sfixed64": 16,
    "sint32": 17,
    "sint64": 18,
}


def _string(number: int, value: str) -> bytes:
    return encode_tag(number, WireType.LEN) + encode_length_delimited(value.encode("utf-8"))


def _varint(number: int, value: int) -> bytes:
    return encode_tag(number, WireType.VARINT) + encode_varint(value)


def _message(number: int, payload: bytes) -> bytes:
    return encode_tag(number, WireType.LEN) + encode_length_delimited(payload)


def map_entry_name(field: ProtoField) -> str:
    """Name of the synthesized nested type holding one map entry."""
    return f"{to_camel_case(field.name)}Entry"


def _default_text(field: ProtoField) -> str | None:
    """FieldDescriptorProto.default_value text of a [default = ...] option."""
    value = field.option("default")
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if field.type.name == "bytes":
        # C-escaped, without the surrounding quotes
        return format_scalar(ScalarType.BYTES, value.encode("latin-1"))[1:-1]
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _field(
    name: str,
    number: int,
    label: str,
    type_name: str,
    *,
    ref: str | None = None,
    packed=False,
    default: str | None = None,
) -> bytes:
    out = _string(1, name) + _varint(3, number) + _varint(4, LABELS[label])
    out += _varint(5, TYPE_NUMBERS[type_name])
    if ref is not None:
        out += _string(6, ref)
    if default is not None:
        out += _string(7, default)
    if packed:
        out += _message(8, _varint(2, 1))  # FieldOptions.packed
    out += _string(10, to_json_name(name))
    return out


def _map_entry(field: ProtoField) -> bytes:
    assert field.key_type is not None
    out = _string(1, map_entry_name(field))
    out += _message(2, _field("key", 1, "optional", field.key_type.name))
    out += _message(2, _field("value", 2, "optional", field.type.name))
    out += _message(7, _varint(7, 1))  # MessageOptions.map_entry
    return out


def _descriptor_proto(proto_file: ProtoFile, message: ProtoMessage) -> bytes:
    full_name = proto_file.full_name(message)
    out = _string(1, message.name)

    for field in message.fields:
        if field.is_map:
            ref = f".{full_name}.{map_entry_name(field)}"
            out += _message(2, _field(field.name, field.number, "repeated", "message", ref=ref))
        else:
            out += _message(
                2,
                _field(
                    field.name,
                    field.number,
                    field.label,
                    field.type.name,
                    packed=field.packed,
                    default=_default_text(field),
                ),
            )

    for field in message.fields:
        if field.is_map:
            out += _message(3, _map_entry(field))

    for reserved_range in message.reserved_numbers():
        # DescriptorProto.ReservedRange end is exclusive
        out += _message(9, _varint(1, reserved_range.start) + _varint(2, reserved_range.end + 1))
    for name in message.reserved_names():
        out += _string(10, name)

    return out


def build_file_descriptor(proto_file: ProtoFile) -> bytes:
    """Encode a schema as FileDescriptorProto bytes."""
    out = _string(1, proto_file.name)
    if proto_file.package:
        out += _string(2, proto_file.package)
    for dependency in proto_file.imports:
        out += _string(3, dependency)
    for message in proto_file.messages:
        out += _message(4, _descriptor_proto(proto_file, message))
    return out


def compress(data: bytes) -> bytes:
    """Gzip descriptor bytes with a fixed timestamp so output is reproducible."""
    return gzip.compress(data, mtime=0)


def format_bytes(data: bytes, width: int = 16, indent: str = "    ") -> str:
    """Format bytes as a parenthesized Python bytes literal, one row per line."""
    lines = []
    for start in range(0, len(data), width):
        row = "".join(f"\\x{byte:02x}" for byte in data[start : start + width])
        lines.append(f'{indent}b"{row}"')
    return "(\n" + "\n".join(lines) + "\n)"
