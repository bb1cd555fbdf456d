"""Error types raised and logged by the menu engine."""


class DynMenuError(Exception):
    """Base class for all menu engine errors."""


class ParseWarning(DynMenuError):
    """A line of input.conf could not be turned into a menu item."""


class PropertyNotFound(DynMenuError):
    """The player does not know the requested property."""

    def __init__(self, name):
        super().__init__(f"Property '{name}' was not found.")
        self.name = name


class ExpressionCompileError(DynMenuError):
    """A state expression has invalid syntax."""


class ExpressionRuntimeError(DynMenuError):
    """A state expression failed while being evaluated."""


class ProtocolError(DynMenuError):
    """A script message could not be handled."""


class ResourceError(DynMenuError):
    """A file needed at startup could not be read."""


class HostError(DynMenuError):
    """Talking to the player failed."""


class CommandError(HostError):
    """The player rejected a command; the connection itself is fine."""
