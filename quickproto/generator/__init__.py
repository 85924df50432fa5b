"""quickproto schema compiler."""

from .descriptor import build_file_descriptor as build_file_descriptor
from .parser import ValidationError as ValidationError
from .parser import parse as parse
from .parser import validate as validate
from .types import *
