"""Compact text rendering of messages for diagnostics."""

import math
from typing import Any

from .types import FieldDescriptor, Label, MessageDescriptor, ScalarType

_ESCAPES = {
    ord("\\"): "\\\\",
    ord('"'): '\\"',
    ord("'"): "\\'",
    ord("\n"): "\\n",
    ord("\r"): "\\r",
    ord("\t"): "\\t",
}


def _escape(data: bytes) -> str:
    out: list[str] = []
    for byte in data:
        if byte in _ESCAPES:
            out.append(_ESCAPES[byte])
        elif 0x20 <= byte < 0x7F:
            out.append(chr(byte))
        else:
            out.append(f"\\{byte:03o}")
    return "".join(out)


def format_scalar(scalar: ScalarType, value: Any) -> str:
    """Format one scalar value the way the protobuf text format does."""
    if scalar == ScalarType.STRING:
        return f'"{_escape(value.encode("utf-8"))}"'
    if scalar == ScalarType.BYTES:
        return f'"{_escape(bytes(value))}"'
    if scalar == ScalarType.BOOL:
        return "true" if value else "false"
    if scalar in (ScalarType.FLOAT, ScalarType.DOUBLE):
        if math.isnan(value):
            return "nan"
        if math.isinf(value):
            return "inf" if value > 0 else "-inf"
        return repr(float(value))
    return str(int(value))


def _is_zero(value: Any) -> bool:
    return value is None or not value


def format_message(descriptor: MessageDescriptor, message: Any) -> str:
    """Render the populated fields of a message on a single line.

    Map entries are rendered in key order so output is stable across runs.
    """
    parts: list[str] = []
    for field in descriptor.fields:
        value = getattr(message, field.attr)
        if field.is_map:
            parts.extend(_format_map(field, value or {}))
        elif field.label == Label.REPEATED:
            assert field.type is not None
            parts.extend(f"{field.name}: {format_scalar(field.type, v)}" for v in value or [])
        elif field.label == Label.REQUIRED or not _is_zero(value):
            assert field.type is not None
            parts.append(f"{field.name}: {format_scalar(field.type, value)}")
    return " ".join(parts)


def _format_map(field: FieldDescriptor, mapping: dict[Any, Any]) -> list[str]:
    assert field.key_type is not None and field.value_type is not None
    return [
        f"{field.name} {{ key: {format_scalar(field.key_type, key)} "
        f"value: {format_scalar(field.value_type, mapping[key])} }}"
        for key in sorted(mapping)
    ]
