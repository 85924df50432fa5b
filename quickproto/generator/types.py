"""Type definitions for schema parsing and code generation."""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin


@dataclass
class ProtoType(DataClassJsonMixin):
    """Represents a scalar type reference."""

    name: str


@dataclass
class ProtoOption(DataClassJsonMixin):
    """Represents an option on a file, message or field."""

    name: str
    value: Any


@dataclass
class ProtoRange(DataClassJsonMixin):
    """Represents an inclusive range of reserved field numbers."""

    start: int
    end: int

    def __contains__(self, number: int) -> bool:
        return self.start <= number <= self.end


@dataclass
class ProtoReserved(DataClassJsonMixin):
    """Represents a reserved statement."""

    ranges: list[ProtoRange]
    names: list[str]


@dataclass
class ProtoField(DataClassJsonMixin):
    """Represents a field of a message.

    For map fields:
    - key_type is the map key type
    - type is the map value type
    - label is always "repeated"
    """

    name: str
    number: int
    label: str
    type: ProtoType
    options: list[ProtoOption] = field(default_factory=list)
    key_type: ProtoType | None = None

    @property
    def is_map(self) -> bool:
        return self.key_type is not None

    def option(self, name: str, default: Any = None) -> Any:
        for opt in self.options:
            if opt.name == name:
                return opt.value
        return default

    @property
    def packed(self) -> bool:
        return self.option("packed") is True


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """Represents a message type definition."""

    name: str
    fields: list[ProtoField]
    options: list[ProtoOption]
    reserved: list[ProtoReserved]

    def reserved_numbers(self) -> list[ProtoRange]:
        return [r for reserved in self.reserved for r in reserved.ranges]

    def reserved_names(self) -> list[str]:
        return [n for reserved in self.reserved for n in reserved.names]


@dataclass
class ProtoFile(DataClassJsonMixin):
    """Represents a complete schema file."""

    name: str
    syntax: str
    package: str | None
    imports: list[str]
    options: list[ProtoOption]
    messages: list[ProtoMessage]

    def full_name(self, message: ProtoMessage) -> str:
        """Return the package-qualified name of a message."""
        if self.package:
            return f"{self.package}.{message.name}"
        return message.name


SCALAR_TYPES = frozenset(
    [
        "double",
        "float",
        "int32",
        "int64",
        "uint32",
        "uint64",
        "sint32",
        "sint64",
        "fixed32",
        "fixed64",
        "sfixed32",
        "sfixed64",
        "bool",
        "string",
        "bytes",
    ]
)

# Floating point and bytes types cannot be map keys
MAP_KEY_TYPES = SCALAR_TYPES - {"double", "float", "bytes"}

PACKABLE_TYPES = SCALAR_TYPES - {"string", "bytes"}
