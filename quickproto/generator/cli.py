"""Command-line interface for quickproto code generation."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from lark.exceptions import UnexpectedInput
from rich.console import Console
from rich.table import Table

from quickproto.generator import ValidationError, parse, python
from quickproto.proto.wire import MalformedWireData, WireType, encode_tag, iter_fields

if TYPE_CHECKING:
    from quickproto.generator.types import ProtoField, ProtoFile

_LOG = logging.getLogger(__name__)


def _load(input_file: str) -> ProtoFile:
    """Parse a schema file, exiting with status 1 on schema errors."""
    with open(input_file, encoding="utf-8") as f:
        text = f.read()

    try:
        return parse(text, file_name=os.path.basename(input_file))
    except (ValidationError, UnexpectedInput) as err:
        print(f"{input_file}: {err}")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """quickproto protocol buffer code generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input .proto file")
@click.option("--output", "-o", "output_file", required=True, help="Output file")
@click.option(
    "--runtime-import",
    "runtime_import",
    is_flag=False,
    flag_value="quickproto.proto",
    default=None,
    help="Import path for runtime. No value=quickproto.proto, omit=quickproto_runtime",
)
def gen(input_file: str, output_file: str, runtime_import: str | None) -> None:
    """Generate Python code from a .proto file."""
    proto_def = _load(input_file)

    # Default to "quickproto_runtime" (local folder) if not specified
    import_path = runtime_import if runtime_import is not None else "quickproto_runtime"
    generated_file = python.render(proto_def, runtime_import=import_path)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write(generated_file)
    _LOG.info("Wrote %s", output_file)


@cli.command()
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--name", default="quickproto_runtime", help="Runtime folder name")
def runtime(output_path: str, name: str) -> None:
    """Generate runtime support code."""
    runtime_dir = Path(output_path) / name
    runtime_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in python.runtime().items():
        (runtime_dir / filename).write_text(content)
    print(f"Generated Python runtime in {runtime_dir}")


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input .proto file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_file: str, output_json: bool) -> None:
    """Display messages, fields and wire tags of a schema."""
    proto = _load(input_file)

    if output_json:
        print(json.dumps(proto.to_dict(), indent=2))
    else:
        _output_plain(proto)


def _type_str(field: ProtoField) -> str:
    if field.key_type is not None:
        return f"map<{field.key_type.name}, {field.type.name}>"
    return field.type.name


def _wire_tag(field: ProtoField) -> str:
    if field.is_map or field.packed or field.type.name in ("string", "bytes"):
        wire_type = WireType.LEN
    elif field.type.name in ("fixed64", "sfixed64", "double"):
        wire_type = WireType.I64
    elif field.type.name in ("fixed32", "sfixed32", "float"):
        wire_type = WireType.I32
    else:
        wire_type = WireType.VARINT
    return f"0x{encode_tag(field.number, wire_type).hex()} ({wire_type.name})"


def _output_plain(proto: ProtoFile) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    console.print("[bold cyan]File[/bold cyan]")
    file_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
    file_table.add_column("Label", style="dim")
    file_table.add_column("Value", style="white")
    file_table.add_row("Name", proto.name)
    file_table.add_row("Syntax", proto.syntax)
    file_table.add_row("Package", proto.package or "(none)")
    console.print(file_table)
    console.print()

    for message in proto.messages:
        console.print(f"[bold cyan]{proto.full_name(message)}[/bold cyan]")
        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("Number", style="green", justify="right")
        table.add_column("Name", style="white")
        table.add_column("Type", style="yellow")
        table.add_column("Label", style="dim")
        table.add_column("Tag", style="dim")

        for field in message.fields:
            label = "map" if field.is_map else field.label
            table.add_row(
                str(field.number), field.name, _type_str(field), label, _wire_tag(field)
            )

        console.print(table)
        console.print()


@cli.command("decode-raw")
@click.option("--input", "-i", "input_file", required=True, help="Encoded message file")
def decode_raw(input_file: str) -> None:
    """Print the top-level wire fields of an encoded message."""
    data = Path(input_file).read_bytes()

    table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    table.add_column("Field", style="green", justify="right")
    table.add_column("Wire type", style="dim")
    table.add_column("Value", style="white")

    try:
        for number, wire_type, value in iter_fields(data):
            shown = value.hex() if isinstance(value, bytes) else str(value)
            table.add_row(str(number), wire_type.name, shown)
    except MalformedWireData as err:
        print(f"{input_file}: {err}")
        sys.exit(1)

    Console().print(table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
