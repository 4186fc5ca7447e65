"""
Signature keys: the shape under which compiled invokers are cached.

Annotations are compared through their shape: a nested ``(origin, args)``
tuple that keeps member order. ``typing`` considers ``float | complex`` and
``complex | float`` equal, but their converters try the members in a
different order, so they must not share an invoker.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import typing

from dataclasses import dataclass, field
from typing import Any, Literal

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.descriptor import MethodDescriptor
from directcall.errors import UnsupportedMethodShape
from directcall.formatters import fmt_hint
from directcall.utils import UNION_TYPES

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = ["SignatureKey", "normalize", "hint_shape"]


# Classes --------------------------------------------------------------------------------------------------------------

@dataclass(frozen=True)
class SignatureKey:
    """
    Call shape of a method: ordered parameter types and return type.

    Owner, name and static/instance calling convention are not part of the key,
    so unrelated methods with the same shape share one compiled invoker.
    Equality and hashing use the order-preserving shape of each annotation.
    """
    parameter_types: tuple = field(compare=False)
    return_type: Any = field(compare=False)
    shape: tuple = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "parameter_types", tuple(self.parameter_types))
        object.__setattr__(
            self,
            "shape",
            (tuple(hint_shape(t) for t in self.parameter_types), hint_shape(self.return_type)),
        )

    @property
    def arity(self) -> int:
        return len(self.parameter_types)

    def __str__(self) -> str:
        return " : ".join(fmt_hint(t) for t in (*self.parameter_types, self.return_type))


# Methods --------------------------------------------------------------------------------------------------------------

def hint_shape(hint: Any) -> Any:
    """
    Order-preserving comparison form of an annotation.

    Examples:
        >>> hint_shape(float | complex) == hint_shape(complex | float)
        False
        >>> hint_shape(typing.Optional[int]) == hint_shape(int | None)
        True
    """
    if isinstance(hint, list):
        # Callable parameter lists
        return tuple(hint_shape(h) for h in hint)

    origin = typing.get_origin(hint)
    if origin is None:
        return hint
    if origin is typing.Annotated:
        return origin, hint_shape(hint.__origin__), hint.__metadata__
    if origin is Literal:
        # Literal[1] and Literal[True] compare equal as values
        return origin, tuple((type(a), a) for a in typing.get_args(hint))
    if origin in UNION_TYPES:
        origin = typing.Union
    return origin, tuple(hint_shape(a) for a in typing.get_args(hint))


def normalize(descriptor: MethodDescriptor) -> SignatureKey:
    """
    Derive the signature key of a descriptor.

    Raises:
        UnsupportedMethodShape: If the descriptor is a generic definition, or its
            annotations are not hashable and so cannot identify a shape.

    Examples:
        >>> class Calc:
        ...     def add(self, a: int, b: int) -> int: ...
        ...     @staticmethod
        ...     def mul(a: int, b: int) -> int: ...
        >>> normalize(describe(Calc, "add")) == normalize(describe(Calc, "mul"))
        True
        >>> str(normalize(describe(Calc, "add")))
        'int : int : int'
    """
    if descriptor.is_generic_definition:
        free = ", ".join(fmt_hint(v) for v in descriptor.type_parameters) or "?"
        raise UnsupportedMethodShape(
            f"cannot invoke generic method definition {descriptor.qualname} "
            f"(free type parameters: {free}); concretize it first"
        )

    key = SignatureKey(descriptor.parameter_types, descriptor.return_type)
    try:
        hash(key)
    except TypeError:
        raise UnsupportedMethodShape(
            f"{descriptor.qualname}: annotations are not hashable: {key}"
        ) from None
    return key
