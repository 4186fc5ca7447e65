"""
Marker objects that are never confused with None or with each other.

Sentinels:
    VOID: Result of invoking a method declared to return no value.
    NOT_FOUND: A lookup miss, or a value a converter rejects.
    UNSET: An optional setting that was not given, where None is a valid value.

Compare with ``is``. Every sentinel is falsy and survives pickling as the
same object.

Example:
    >>> invoke_direct(describe(Calc, "reset"), calc, ()) is VOID
    True
"""

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Final

__all__ = ["VOID", "NOT_FOUND", "UNSET", "VoidType", "NotFoundType", "UnsetType"]


# Classes --------------------------------------------------------------------------------------------------------------

class _Sentinel:
    """One instance per subclass, created on first construction."""
    __slots__ = ()
    _name = "SENTINEL"

    def __new__(cls):
        instance = cls.__dict__.get("_instance")
        if instance is None:
            instance = super().__new__(cls)
            cls._instance = instance
        return instance

    def __repr__(self) -> str:
        return f"<{self._name}>"

    def __eq__(self, other) -> bool:
        return self is other

    def __hash__(self) -> int:
        return id(self)

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> tuple:
        return type(self), ()


class VoidType(_Sentinel):
    """
    Type of VOID.

    A method annotated ``-> None`` yields VOID. A method annotated
    ``-> Optional[T]`` that returns None yields None.
    """
    __slots__ = ()
    _name = "VOID"


class NotFoundType(_Sentinel):
    """Type of NOT_FOUND."""
    __slots__ = ()
    _name = "NOT_FOUND"


class UnsetType(_Sentinel):
    """Type of UNSET, e.g. a test case without an expected result versus one expecting None."""
    __slots__ = ()
    _name = "UNSET"


# Sentinel Objects -----------------------------------------------------------------------------------------------------

VOID: Final[VoidType] = VoidType()
NOT_FOUND: Final[NotFoundType] = NotFoundType()
UNSET: Final[UnsetType] = UnsetType()
