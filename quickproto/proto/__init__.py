"""Runtime support for quickproto generated messages."""

from .registry import DuplicateTypeRegistration as DuplicateTypeRegistration
from .registry import Registry as Registry
from .registry import RegistryError as RegistryError
from .registry import default_registry as default_registry
from .serialization import Message as Message
from .serialization import SerializationError as SerializationError
from .serialization import is_message as is_message
from .serialization import map_field as map_field
from .serialization import proto_field as proto_field
from .types import FieldDescriptor as FieldDescriptor
from .types import Label as Label
from .types import MessageDescriptor as MessageDescriptor
from .types import ScalarType as ScalarType
from .wire import MalformedWireData as MalformedWireData
from .wire import WireError as WireError
