"""
Argument and result marshalling.

Builds one converter per declared parameter type. A converter takes a raw
argument and returns it converted to the declared type, or NOT_FOUND when no
conversion exists. Converters are built once per signature and reused for
every call through the compiled invoker.

Conversion rules:
    - ``Any``, ``object`` and unannotated parameters accept everything unchanged
    - ``bool`` accepts only bool
    - ``int`` accepts int (not bool, unless strict_bool=False) and narrows ``__index__`` objects
    - ``float`` and ``complex`` widen int/float only when the value survives unchanged
    - ``X | Y`` and ``Optional[X]`` try an exact type match, then each member in order
    - ``Literal[...]`` requires an equal value of the same type
    - ``list[int]`` and other parametrized generics check the container type only
    - ``type[X]`` requires a subclass of X
    - other classes use isinstance(); non-runtime Protocols accept everything
"""

# Standard library -----------------------------------------------------------------------------------------------------
import collections.abc
import inspect
import operator
import typing

from dataclasses import dataclass
from typing import Any, Callable, Literal

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.errors import UnsupportedMethodShape
from directcall.formatters import fmt_hint
from directcall.sentinels import NOT_FOUND
from directcall.utils import UNION_TYPES

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = [
    "MarshalPolicy",
    "DEFAULT_POLICY",
    "Converter",
    "passthrough",
    "converter_for",
    "returns_void",
    "accepts_receiver",
]

Converter = Callable[[Any], Any]


VOID_RETURN_TYPES = (None, type(None), typing.NoReturn, typing.Never)


# Classes --------------------------------------------------------------------------------------------------------------

@dataclass(frozen=True)
class MarshalPolicy:
    """
    Conversion options shared by all invokers compiled into one cache.

    Attributes:
        strict_bool: If True (default), bool values are rejected for int, float and
            complex parameters.
        numeric_promotion: If True (default), int widens to float and int/float widen
            to complex, as long as the converted value compares equal to the original.
        index_narrowing: If True (default), objects implementing ``__index__``
            (e.g. numpy integers) are converted with operator.index() for int parameters.
        check_receiver: If True (default), instance methods require a receiver that is an
            instance of the declaring class.
    """
    strict_bool: bool = True
    numeric_promotion: bool = True
    index_narrowing: bool = True
    check_receiver: bool = True


DEFAULT_POLICY = MarshalPolicy()


# Methods --------------------------------------------------------------------------------------------------------------

def converter_for(hint: Any, policy: MarshalPolicy = DEFAULT_POLICY) -> Converter:
    """
    Build the converter for one parameter annotation.

    Raises:
        UnsupportedMethodShape: If the annotation cannot be checked at run time
            (unresolved string annotation, free type variable, NoReturn, ...).

    Examples:
        >>> converter_for(float)(2)
        2.0
        >>> converter_for(int)(True)
        <NOT_FOUND>
    """
    if hint is typing.Any or hint is object or hint is inspect.Parameter.empty:
        return passthrough
    if hint is None or hint is type(None):
        return _none_converter

    origin = typing.get_origin(hint)

    if origin is typing.Annotated:
        return converter_for(typing.get_args(hint)[0], policy)
    if origin in UNION_TYPES:
        return _union_converter(typing.get_args(hint), policy)
    if origin is Literal:
        return _literal_converter(typing.get_args(hint))
    if origin is type:
        return _subclass_converter(typing.get_args(hint))
    if origin is collections.abc.Callable:
        return _callable_converter
    if origin is not None:
        return converter_for(origin, policy)

    if isinstance(hint, typing.NewType):
        return converter_for(hint.__supertype__, policy)

    if hint is bool:
        return _bool_converter
    if hint is int:
        return _int_converter(policy)
    if hint is float:
        return _float_converter(policy)
    if hint is complex:
        return _complex_converter(policy)

    if isinstance(hint, type):
        if typing.is_typeddict(hint):
            return _instance_converter(dict)
        if getattr(hint, "_is_protocol", False) and not getattr(hint, "_is_runtime_protocol", False):
            # Structural only, isinstance() would raise
            return passthrough
        return _instance_converter(hint)

    raise UnsupportedMethodShape(f"parameter annotation {fmt_hint(hint)} cannot be checked at run time")


def passthrough(value: Any) -> Any:
    """Converter for parameters that accept any value."""
    return value


def returns_void(return_type: Any) -> bool:
    """True when a return annotation declares that the method returns no value."""
    return any(return_type is t for t in VOID_RETURN_TYPES)


def accepts_receiver(declaring_type: Any, instance: Any) -> bool:
    """True when instance can receive a method declared on declaring_type."""
    if not inspect.isclass(declaring_type):
        return True
    return isinstance(instance, declaring_type)


# Private Methods ------------------------------------------------------------------------------------------------------

def _none_converter(value: Any) -> Any:
    return value if value is None else NOT_FOUND


def _bool_converter(value: Any) -> Any:
    return value if isinstance(value, bool) else NOT_FOUND


def _callable_converter(value: Any) -> Any:
    return value if callable(value) else NOT_FOUND


def _instance_converter(cls: type) -> Converter:
    def convert(value):
        return value if isinstance(value, cls) else NOT_FOUND

    return convert


def _int_converter(policy: MarshalPolicy) -> Converter:
    def convert(value):
        if type(value) is int:
            return value
        if isinstance(value, bool):
            return NOT_FOUND if policy.strict_bool else value
        if isinstance(value, int):
            return value
        if policy.index_narrowing and hasattr(type(value), "__index__"):
            try:
                return operator.index(value)
            except TypeError:
                return NOT_FOUND
        return NOT_FOUND

    return convert


def _float_converter(policy: MarshalPolicy) -> Converter:
    def convert(value):
        if type(value) is float:
            return value
        if isinstance(value, bool):
            return NOT_FOUND if policy.strict_bool else float(value)
        if isinstance(value, float):
            return value
        if policy.numeric_promotion and isinstance(value, int):
            return _widen(value, float)
        return NOT_FOUND

    return convert


def _complex_converter(policy: MarshalPolicy) -> Converter:
    def convert(value):
        if type(value) is complex:
            return value
        if isinstance(value, bool):
            return NOT_FOUND if policy.strict_bool else complex(value)
        if isinstance(value, complex):
            return value
        if policy.numeric_promotion and isinstance(value, (int, float)):
            return _widen(value, complex)
        return NOT_FOUND

    return convert


def _widen(value: Any, to: type) -> Any:
    """Convert value to a wider numeric type, or NOT_FOUND if the conversion loses precision."""
    try:
        converted = to(value)
    except OverflowError:
        return NOT_FOUND
    if converted != value and value == value:
        # value == value is False only for NaN, which widens unchanged
        return NOT_FOUND
    return converted


def _union_converter(members: tuple, policy: MarshalPolicy) -> Converter:
    exact = tuple(m for m in members if isinstance(m, type))
    converters = tuple(converter_for(m, policy) for m in members)

    def convert(value):
        if type(value) in exact:
            return value
        for c in converters:
            converted = c(value)
            if converted is not NOT_FOUND:
                return converted
        return NOT_FOUND

    return convert


def _literal_converter(allowed: tuple) -> Converter:
    def convert(value):
        for a in allowed:
            if type(value) is type(a) and value == a:
                return value
        return NOT_FOUND

    return convert


def _subclass_converter(args: tuple) -> Converter:
    bound = args[0] if args else typing.Any
    if bound is typing.Any:
        bounds = None
    elif typing.get_origin(bound) in UNION_TYPES:
        bounds = tuple(typing.get_origin(b) or b for b in typing.get_args(bound))
    else:
        bounds = typing.get_origin(bound) or bound

    def convert(value):
        if not isinstance(value, type):
            return NOT_FOUND
        if bounds is None or issubclass(value, bounds):
            return value
        return NOT_FOUND

    return convert
