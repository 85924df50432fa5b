"""Process-wide registry of message types and their schema descriptors.

Generated modules register their file descriptor and message types when they
are imported. Importing every generated module is the initialization phase,
and it must finish before the first concurrent lookup. The registry takes no
locks. Call seal() to end the initialization phase explicitly. After that,
any further registration raises RegistryError.
"""

import gzip
import logging
from dataclasses import dataclass

from .serialization import is_message
from .types import FieldDescriptor, MessageDescriptor

_LOG = logging.getLogger(__name__)


class RegistryError(RuntimeError):
    """Raised when registration or lookup fails."""


class DuplicateTypeRegistration(RegistryError):
    """Raised when two registrations use the same name."""


@dataclass(frozen=True, slots=True)
class RegisteredType:
    """A registered message type and the file that declares it."""

    full_name: str
    message_type: type
    file_name: str | None
    file_descriptor: bytes | None  # gzip-compressed

    @property
    def descriptor(self) -> MessageDescriptor:
        return self.message_type.descriptor()  # type: ignore[attr-defined]

    def field(self, name: str) -> FieldDescriptor | None:
        """Look up field metadata by .proto field name."""
        return self.descriptor.field_by_name(name)


class Registry:
    """Name-keyed lookup table for message types and file descriptors."""

    def __init__(self) -> None:
        self._types: dict[str, RegisteredType] = {}
        self._files: dict[str, bytes] = {}
        self._sealed = False

    def _check_open(self, what: str) -> None:
        if self._sealed:
            raise RegistryError(f"Cannot register {what}: registry is sealed")

    def register_file(self, file_name: str, descriptor: bytes) -> None:
        """Register the gzip-compressed descriptor of a schema file."""
        self._check_open(file_name)
        if file_name in self._files:
            raise DuplicateTypeRegistration(f"File {file_name} is already registered")
        self._files[file_name] = descriptor
        _LOG.debug("Registered file %s (%d bytes)", file_name, len(descriptor))

    def register_type(
        self, message_type: type, full_name: str, *, file_name: str | None = None
    ) -> None:
        """Register a message type under its fully-qualified name."""
        self._check_open(full_name)
        if not is_message(message_type):
            raise RegistryError(f"{message_type.__name__} is not a message type")
        if full_name in self._types:
            existing = self._types[full_name].message_type
            raise DuplicateTypeRegistration(
                f"{full_name} is already registered by {existing.__module__}.{existing.__name__}"
            )
        if file_name is not None and file_name not in self._files:
            raise RegistryError(f"{full_name} refers to unregistered file {file_name}")

        self._types[full_name] = RegisteredType(
            full_name=full_name,
            message_type=message_type,
            file_name=file_name,
            file_descriptor=self._files.get(file_name) if file_name else None,
        )
        _LOG.debug("Registered type %s", full_name)

    def seal(self) -> None:
        """End the initialization phase."""
        if not self._sealed:
            _LOG.debug(
                "Sealing registry with %d types and %d files", len(self._types), len(self._files)
            )
        self._sealed = True

    def lookup(self, full_name: str) -> RegisteredType:
        """Return the registration for a type name.

        Raises:
            KeyError: If no type is registered under the name.
        """
        return self._types[full_name]

    def file_descriptor(self, file_name: str, *, decompress: bool = False) -> bytes:
        """Return the descriptor bytes of a registered file."""
        data = self._files[file_name]
        return gzip.decompress(data) if decompress else data

    def type_names(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, full_name: object) -> bool:
        return full_name in self._types


_default = Registry()


def default_registry() -> Registry:
    """Return the process-wide registry used by generated modules."""
    return _default


def register_file(file_name: str, descriptor: bytes) -> None:
    _default.register_file(file_name, descriptor)


def register_type(message_type: type, full_name: str, *, file_name: str | None = None) -> None:
    _default.register_type(message_type, full_name, file_name=file_name)


def lookup(full_name: str) -> RegisteredType:
    return _default.lookup(full_name)


def seal() -> None:
    _default.seal()
