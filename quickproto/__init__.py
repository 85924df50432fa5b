"""quickproto - Protocol buffer code generator and runtime."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("quickproto")
except PackageNotFoundError:
    __version__ = "(local)"
