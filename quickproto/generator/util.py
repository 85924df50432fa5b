"""Naming helpers shared by the generators."""

import keyword

# Attributes of the Message base class that fields must not shadow
_MESSAGE_ATTRS = frozenset(
    ["full_name", "descriptor", "encode", "decode", "merge_from_bytes", "reset"]
)


def to_camel_case(name: str) -> str:
    """Convert snake_case to CamelCase (integer_properties -> IntegerProperties)."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


def to_json_name(name: str) -> str:
    """Convert a field name to its lowerCamelCase JSON name."""
    out: list[str] = []
    capitalize = False
    for char in name:
        if char == "_":
            capitalize = True
        elif capitalize:
            out.append(char.upper())
            capitalize = False
        else:
            out.append(char)
    return "".join(out)


def to_py_identifier(name: str) -> str:
    """Append an underscore to keywords and names taken by the Message base."""
    if keyword.iskeyword(name) or name in _MESSAGE_ATTRS:
        return f"{name}_"
    return name
