"""Schema parser for .proto files using Lark."""

import ast
import logging
import os
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark, Token
from lark.visitors import Transformer

from quickproto.proto.serialization import SerializationError, encode_scalar
from quickproto.proto.types import ScalarType

from .types import (
    MAP_KEY_TYPES,
    PACKABLE_TYPES,
    ProtoField,
    ProtoFile,
    ProtoMessage,
    ProtoOption,
    ProtoRange,
    ProtoReserved,
    ProtoType,
)
from .util import to_py_identifier

_LOG = logging.getLogger(__name__)

_g_parser: Lark | None = None

# Numbers 19000-19999 are reserved for the protocol buffer implementation
_IMPLEMENTATION_RESERVED = ProtoRange(19000, 19999)
MAX_FIELD_NUMBER = (1 << 29) - 1

FIELD_OPTIONS = frozenset(["packed", "deprecated", "default"])


class ValidationError(RuntimeError):
    """Raised when schema validation fails."""


@dataclass
class _Name:
    value: str


@dataclass
class _Number:
    value: int


@dataclass
class _String:
    value: str


@dataclass
class _Value:
    value: Any


@dataclass
class _OptionName:
    value: str


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _Import:
    value: str


@dataclass
class _FullIdent:
    value: str


@dataclass
class _FieldOptions:
    options: list[ProtoOption]


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")

    if hasattr(filtered[0], "value"):
        return filtered[0].value
    return filtered[0]


TMany = TypeVar("TMany")


def _find_many(args: list[Any], class_type: type[TMany]) -> list[TMany]:
    return _filter(args, class_type)


def _unquote(text: str) -> str:
    # Schema string escapes are a subset of Python's
    return ast.literal_eval(text)


class TreeTransformer(Transformer):
    """Transform parse tree into schema types."""

    def __init__(self, file_name: str) -> None:
        super().__init__()
        self._file_name = file_name

    def start(self, args: list[Any]) -> ProtoFile:
        return ProtoFile(
            name=self._file_name,
            syntax=_find_one(args, _Syntax) or "proto2",
            package=_find_one(args, _Package),
            imports=[i.value for i in _find_many(args, _Import)],
            options=_find_many(args, ProtoOption),
            messages=_find_many(args, ProtoMessage),
        )

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(value=_find_one(args, _String))

    def package(self, args: list[Any]) -> _Package:
        return _Package(value=_find_one(args, _FullIdent))

    def import_(self, args: list[Any]) -> _Import:
        return _Import(value=_find_one(args, _String))

    def option(self, args: list[Any]) -> ProtoOption:
        return ProtoOption(name=_find_one(args, _OptionName), value=_find_one(args, _Value))

    def message(self, args: list[Any]) -> ProtoMessage:
        return ProtoMessage(
            name=_find_one(args, _Name),
            fields=_find_many(args, ProtoField),
            options=_find_many(args, ProtoOption),
            reserved=_find_many(args, ProtoReserved),
        )

    def field(self, args: list[Any]) -> ProtoField:
        options = _find_one(args, _FieldOptions)
        return ProtoField(
            name=_find_one(args, _Name),
            number=_find_one(args, _Number),
            label=str(args[0]),
            type=_find_one(args, ProtoType),
            options=options.options if options else [],
        )

    def map_field(self, args: list[Any]) -> ProtoField:
        key_type, value_type = _find_many(args, ProtoType)
        options = _find_one(args, _FieldOptions)
        return ProtoField(
            name=_find_one(args, _Name),
            number=_find_one(args, _Number),
            label="repeated",
            type=value_type,
            options=options.options if options else [],
            key_type=key_type,
        )

    def field_options(self, args: list[Any]) -> _FieldOptions:
        return _FieldOptions(options=_find_many(args, ProtoOption))

    def field_option(self, args: list[Any]) -> ProtoOption:
        return self.option(args)

    def reserved(self, args: list[Any]) -> ProtoReserved:
        return ProtoReserved(
            ranges=_find_many(args, ProtoRange),
            names=[s.value for s in _find_many(args, _String)],
        )

    def reserved_range(self, args: list[Any]) -> ProtoRange:
        start = args[0].value
        if len(args) == 1:
            return ProtoRange(start=start, end=start)
        if isinstance(args[1], Token):  # "max"
            return ProtoRange(start=start, end=MAX_FIELD_NUMBER)
        return ProtoRange(start=start, end=args[1].value)

    def option_name(self, args: list[Any]) -> _OptionName:
        return _OptionName(value=str(args[0]))

    def constant(self, args: list[Any]) -> _Value:
        value = args[0]
        if isinstance(value, _String):
            return _Value(value=value.value)
        if isinstance(value, _FullIdent):
            if value.value in ("true", "false"):
                return _Value(value=value.value == "true")
            return _Value(value=value.value)
        text = str(value)
        try:
            return _Value(value=int(text))
        except ValueError:
            return _Value(value=float(text))

    def full_ident(self, args: list[Any]) -> _FullIdent:
        return _FullIdent(value=str(args[0]))

    def name(self, args: list[Any]) -> _Name:
        return _Name(value=str(args[0]))

    def number(self, args: list[Any]) -> _Number:
        return _Number(value=int(args[0]))

    def scalar(self, args: list[Any]) -> ProtoType:
        return ProtoType(name=str(args[0]))

    def string(self, args: list[Any]) -> _String:
        return _String(value=_unquote(str(args[0])))


def _validate_default(where: str, field: ProtoField) -> None:
    value = field.option("default")
    if value is None:
        return
    if field.label == "repeated":
        raise ValidationError(f"{where}: [default] is not allowed on repeated fields")

    kind = ScalarType(field.type.name)
    number = isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == ScalarType.BOOL:
        valid = isinstance(value, bool)
    elif kind == ScalarType.STRING:
        valid = isinstance(value, str)
    elif kind == ScalarType.BYTES:
        valid = isinstance(value, str) and all(ord(c) < 0x100 for c in value)
    elif kind in (ScalarType.FLOAT, ScalarType.DOUBLE):
        valid = number or value in ("inf", "nan")
    else:
        valid = isinstance(value, int) and not isinstance(value, bool)

    if valid and number:
        try:
            encode_scalar(kind, value)
        except SerializationError:
            valid = False
    if not valid:
        raise ValidationError(f"{where}: {value!r} is not a valid {kind} default")


def _validate_message(message: ProtoMessage) -> None:
    numbers: dict[int, str] = {}
    names: set[str] = set()
    reserved_numbers = message.reserved_numbers()
    reserved_names = set(message.reserved_names())

    for field in message.fields:
        where = f"{message.name}.{field.name}"

        if field.number < 1 or field.number > MAX_FIELD_NUMBER:
            raise ValidationError(f"{where}: field number {field.number} is out of range")
        if field.number in _IMPLEMENTATION_RESERVED:
            raise ValidationError(
                f"{where}: field numbers 19000 through 19999 are reserved for the implementation"
            )
        if field.number in numbers:
            raise ValidationError(
                f"{where}: field number {field.number} is already used by "
                f"{message.name}.{numbers[field.number]}"
            )
        if any(field.number in r for r in reserved_numbers):
            raise ValidationError(f"{where}: field number {field.number} is reserved")
        if field.name in names:
            raise ValidationError(f"{where}: field name is declared twice")
        if field.name in reserved_names:
            raise ValidationError(f"{where}: field name is reserved")

        numbers[field.number] = field.name
        names.add(field.name)

        if field.key_type is not None and field.key_type.name not in MAP_KEY_TYPES:
            raise ValidationError(f"{where}: {field.key_type.name} cannot be used as a map key")
        if field.option("packed") is not None:
            if field.is_map or field.label != "repeated" or field.type.name not in PACKABLE_TYPES:
                raise ValidationError(
                    f"{where}: [packed] can only be used on repeated numeric fields"
                )
        for option in field.options:
            if option.name not in FIELD_OPTIONS:
                raise ValidationError(f"{where}: unsupported field option [{option.name}]")
        _validate_default(where, field)

    # Generated classes define a get_<name> accessor next to each field
    attrs = {to_py_identifier(field.name): field for field in message.fields}
    for field in message.fields:
        other = attrs.get(f"get_{field.name}")
        if other is not None:
            raise ValidationError(
                f"{message.name}.{other.name}: name clashes with the accessor "
                f"of {message.name}.{field.name}"
            )


def validate(proto_file: ProtoFile) -> None:
    """Validate a parsed schema."""
    if proto_file.syntax != "proto2":
        raise ValidationError(f'Unsupported syntax "{proto_file.syntax}", only proto2 is supported')

    seen: set[str] = set()
    for message in proto_file.messages:
        if message.name in seen:
            raise ValidationError(f"Message {message.name} is declared twice")
        seen.add(message.name)
        _validate_message(message)


def parse(text: str, file_name: str = "<string>") -> ProtoFile:
    """Parse and validate a .proto schema."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/protodef.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar)

    tree = _g_parser.parse(text)
    proto_file = TreeTransformer(file_name).transform(tree)

    validate(proto_file)
    _LOG.debug(
        "Parsed %s: %d messages, package %s",
        file_name,
        len(proto_file.messages),
        proto_file.package,
    )

    return proto_file
