"""Python code generator for quickproto schemas."""

import logging
from importlib import resources

from jinja2 import Environment, PackageLoader

from .descriptor import build_file_descriptor, compress, format_bytes
from .types import ProtoField, ProtoFile
from .util import to_py_identifier

_LOG = logging.getLogger(__name__)

RUNTIME_FILES = [
    "__init__.py",
    "wire.py",
    "types.py",
    "text.py",
    "serialization.py",
    "registry.py",
]

env = Environment(
    loader=PackageLoader("quickproto.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")

# Map scalar types to Python type annotations
SCALAR_TYPE_MAP = {
    "double": "float",
    "float": "float",
    "int32": "int",
    "int64": "int",
    "uint32": "int",
    "uint64": "int",
    "sint32": "int",
    "sint64": "int",
    "fixed32": "int",
    "fixed64": "int",
    "sfixed32": "int",
    "sfixed64": "int",
    "bool": "bool",
    "string": "str",
    "bytes": "bytes",
}

# Zero value literals keyed by Python type
ZERO_LITERALS = {
    "float": "0.0",
    "int": "0",
    "bool": "False",
    "str": '""',
    "bytes": 'b""',
}


def _py_name(field: ProtoField) -> str:
    return to_py_identifier(field.name)


def _annotation(field: ProtoField) -> str:
    """Map a field to a Python type annotation."""
    value_type = SCALAR_TYPE_MAP[field.type.name]
    if field.key_type is not None:
        return f"dict[{SCALAR_TYPE_MAP[field.key_type.name]}, {value_type}]"
    if field.label == "repeated":
        return f"list[{value_type}]"
    return value_type


def _default_literal(field: ProtoField) -> str | None:
    """Python literal for a [default = ...] option, or None without one."""
    value = field.option("default")
    if value is None:
        return None
    if field.type.name == "bytes":
        return repr(value.encode("latin-1"))
    if field.type.name in ("double", "float"):
        if isinstance(value, str):
            return f'float("{value}")'
        return repr(float(value))
    return repr(value)


def _zero_literal(field: ProtoField) -> str:
    default = _default_literal(field)
    if default is not None:
        return default
    if field.is_map:
        return "{}"
    if field.label == "repeated":
        return "[]"
    return ZERO_LITERALS[SCALAR_TYPE_MAP[field.type.name]]


def _field_decl(field: ProtoField) -> str:
    """Generate the proto_field()/map_field() call declaring a field."""
    args: list[str] = []
    if field.key_type is not None:
        args.append(f"number={field.number}")
        args.append(f'key="{field.key_type.name}"')
        args.append(f'value="{field.type.name}"')
    else:
        args.append(f'"{field.type.name}"')
        args.append(f"number={field.number}")
        if field.label != "optional":
            args.append(f'label="{field.label}"')
        if field.packed:
            args.append("packed=True")
        default = _default_literal(field)
        if default is not None:
            args.append(f"default={default}")
    if _py_name(field) != field.name:
        args.append(f'name="{field.name}"')

    func = "map_field" if field.is_map else "proto_field"
    return f"{func}({', '.join(args)})"


def render(proto: ProtoFile, runtime_import: str = "quickproto_runtime") -> str:
    """Render a schema to Python source code.

    Args:
        proto: The parsed schema.
        runtime_import: Import path of the runtime package. A name without
            dots is treated as a runtime folder next to the generated file.
    """
    descriptor = compress(build_file_descriptor(proto))
    _LOG.info(
        "Rendering %d messages from %s (%d byte descriptor)",
        len(proto.messages),
        proto.name,
        len(descriptor),
    )

    return template.render(
        proto=proto,
        runtime_import=runtime_import,
        local_runtime="." not in runtime_import,
        descriptor_size=len(descriptor),
        descriptor_literal=format_bytes(descriptor),
        py_name=_py_name,
        annotation=_annotation,
        field_decl=_field_decl,
        zero_literal=_zero_literal,
    )


def runtime() -> dict[str, str]:
    """Return the Python runtime files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("quickproto.proto").joinpath(filename).read_text()
        result[filename] = content
    return result
