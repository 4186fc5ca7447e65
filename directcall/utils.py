"""
DirectCall utilities shared across the package.

Contains functions used by multiple modules to avoid circular imports.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import inspect
import types
import typing
from types import ModuleType
from typing import Any

# Both spellings of a union: typing.Union[X, Y] and X | Y
UNION_TYPES = (typing.Union, types.UnionType)


# Methods --------------------------------------------------------------------------------------------------------------


def class_name(obj: Any, fully_qualified: bool = False) -> str:
    """
    Get the class name of an object or a class.

    Returns class name whether given an instance or the class itself.
    For example, both `class_name(10)` and `class_name(int)` return 'int'.
    Builtins are never qualified.

    Examples:
        >>> class_name(10)
        'int'
        >>> class Calc: ...
        >>> class_name(Calc, fully_qualified=True)
        'directcall.utils.Calc'
    """
    cls = obj if isinstance(obj, type) else obj.__class__
    name = getattr(cls, "__qualname__", None) or getattr(cls, "__name__", repr(cls))

    if not fully_qualified or cls.__module__ == "builtins":
        return name
    return f"{cls.__module__}.{name}"


def owner_name(owner: Any) -> str:
    """
    Display name of a method owner: a class, a module, or None for free callables.
    """
    if owner is None:
        return "<free>"
    if isinstance(owner, ModuleType):
        return owner.__name__
    if inspect.isclass(owner):
        return class_name(owner, fully_qualified=True)
    return str(owner)
