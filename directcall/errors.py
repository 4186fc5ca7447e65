"""
Errors raised by the direct invocation engine itself.

Every error in this module signals a programming error in the caller (a bad
descriptor, receiver or argument list) and is raised before the target method
is entered. Exceptions raised by the target method are never converted into
one of these: they reach the caller unchanged.

Each concrete error also derives from the builtin exception that plain Python
would raise for the same mistake, so ``except TypeError`` keeps working.
"""

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Any

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.formatters import fmt_hint, fmt_type

__all__ = [
    "InvocationError",
    "MissingInstance",
    "UnexpectedInstance",
    "UnsupportedMethodShape",
    "ArityMismatch",
    "ArgumentTypeMismatch",
    "ReceiverTypeMismatch",
]


# Classes --------------------------------------------------------------------------------------------------------------

class InvocationError(Exception):
    """Base class for errors raised by the engine, never by the invoked method."""


class MissingInstance(InvocationError, ValueError):
    """An instance method was invoked without a receiver."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"instance method {method} requires a non-None instance")


class UnexpectedInstance(InvocationError, ValueError):
    """A static method was invoked with a receiver."""

    def __init__(self, method: str, instance: Any):
        self.method = method
        super().__init__(f"static method {method} requires instance=None, got {fmt_type(instance)}")


class UnsupportedMethodShape(InvocationError, TypeError):
    """The method cannot be compiled: open generic, variadic, coroutine or unresolvable annotations."""


class ArityMismatch(InvocationError, TypeError):
    """The number of supplied arguments differs from the number of declared parameters."""

    def __init__(self, method: str, expected: int, given: int):
        self.method = method
        self.expected = expected
        self.given = given
        super().__init__(
            f"parameter count mismatch for {method}: {given} arguments given, {expected} expected"
        )


class ArgumentTypeMismatch(InvocationError, TypeError):
    """An argument cannot be converted to its declared parameter type."""

    def __init__(self, method: str, position: int, name: str | None, expected: Any, actual: type):
        self.method = method
        self.position = position
        self.name = name
        self.expected = expected
        self.actual = actual
        label = f"argument {position}" if not name else f"argument {position} ('{name}')"
        super().__init__(
            f"{label} of {method} expected {fmt_hint(expected)}, got {fmt_type(actual)}"
        )


class ReceiverTypeMismatch(InvocationError, TypeError):
    """The receiver is not an instance of the method's declaring class."""

    def __init__(self, method: str, expected: type, actual: type):
        self.method = method
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"instance of {method} must be {fmt_type(expected)}, got {fmt_type(actual)}"
        )
