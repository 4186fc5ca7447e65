"""
Method descriptors: the run-time metadata the invocation engine dispatches on.

A MethodDescriptor names a method (owner + name), its ordered parameter types,
its return type and whether it takes a receiver. Descriptors are normally
produced by describe(), which reads them from a class, module or callable, but
any metadata provider may construct them directly.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import inspect
import sys
import typing

from dataclasses import dataclass, field, replace
from types import ModuleType
from typing import Any, Callable, Mapping, ParamSpec, TypeVar, TypeVarTuple

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.errors import UnsupportedMethodShape
from directcall.formatters import fmt_hint
from directcall.utils import owner_name

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = ["MethodDescriptor", "describe"]

TYPE_VAR_TYPES = (TypeVar, ParamSpec, TypeVarTuple)

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


# Classes --------------------------------------------------------------------------------------------------------------

@dataclass(frozen=True)
class MethodDescriptor:
    """
    Read-only description of a concrete method.

    Attributes:
        declaring_type: Owner of the method: a class, a module, or None for free callables.
        name: Method name.
        parameter_types: Ordered parameter annotations, receiver excluded. typing.Any when unannotated.
        return_type: Return annotation. type(None) means "returns no value"; typing.Any when unannotated.
        target: The callable to dispatch to. Instance methods receive the instance as first argument.
        is_static: True when no receiver is passed (staticmethod, classmethod, free function).
        is_generic_definition: True when any annotation still holds a free type variable.
            Forced to True on construction when free type variables are found.
        parameter_names: Parameter names, used in error messages only.
    """
    declaring_type: Any
    name: str
    parameter_types: tuple
    return_type: Any
    target: Callable[..., Any] = field(repr=False)
    is_static: bool = False
    is_generic_definition: bool = False
    parameter_names: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "parameter_types", tuple(self.parameter_types))
        object.__setattr__(self, "parameter_names", tuple(self.parameter_names))

        if self.parameter_names and len(self.parameter_names) != len(self.parameter_types):
            raise ValueError(
                f"{self.qualname}: {len(self.parameter_names)} parameter names given "
                f"for {len(self.parameter_types)} parameter types"
            )
        if not self.is_generic_definition and self.type_parameters:
            object.__setattr__(self, "is_generic_definition", True)

    @property
    def arity(self) -> int:
        return len(self.parameter_types)

    @property
    def qualname(self) -> str:
        return f"{owner_name(self.declaring_type)}.{self.name}"

    @property
    def type_parameters(self) -> tuple:
        """Free type variables in parameter and return annotations, in order of appearance."""
        found = []
        for hint in (*self.parameter_types, self.return_type):
            for var in _free_type_vars(hint):
                if var not in found:
                    found.append(var)
        return tuple(found)

    def concretize(self, mapping: Mapping[Any, Any]) -> "MethodDescriptor":
        """
        Return a copy with type variables substituted according to mapping.

        Type variables absent from mapping stay free, in which case the result is
        still a generic definition.

        Examples:
            >>> T = TypeVar("T")
            >>> def first(items: list[T]) -> T: ...
            >>> describe(first).concretize({T: int}).parameter_types
            (list[int],)
        """
        parameter_types = tuple(_substitute(hint, mapping) for hint in self.parameter_types)
        return_type = _substitute(self.return_type, mapping)
        concrete = replace(
            self,
            parameter_types=parameter_types,
            return_type=return_type,
            is_generic_definition=False,
        )
        return concrete

    def __str__(self) -> str:
        names = self.parameter_names or tuple(f"arg{i}" for i in range(self.arity))
        params = ", ".join(f"{n}: {fmt_hint(t)}" for n, t in zip(names, self.parameter_types))
        prefix = "static " if self.is_static else ""
        return f"{prefix}{self.qualname}({params}) -> {fmt_hint(self.return_type)}"


# Methods --------------------------------------------------------------------------------------------------------------

def describe(owner_or_callable: Any, name: str | None = None) -> MethodDescriptor:
    """
    Build a MethodDescriptor from live Python objects.

    Args:
        owner_or_callable: A class, parametrized generic class (``Box[int]``), module,
            or, when name is omitted, a function or bound method.
        name: Member name to look up on the owner.

    Returns:
        Descriptor of the method. Plain functions defined in a class are instance
        methods; staticmethod and classmethod members and module-level functions
        are static.

    Raises:
        AttributeError: If the owner has no member with that name.
        UnsupportedMethodShape: If the member is not a method, is a coroutine function,
            has variadic or required keyword-only parameters, or has annotations
            that cannot be resolved.

    Examples:
        >>> class Calc:
        ...     def add(self, a: int, b: int) -> int:
        ...         return a + b
        >>> d = describe(Calc, "add")
        >>> d.parameter_types, d.return_type, d.is_static
        ((<class 'int'>, <class 'int'>), <class 'int'>, False)
    """
    if name is None:
        obj = owner_or_callable
        if inspect.ismethod(obj):
            receiver = obj.__self__
            owner = receiver if inspect.isclass(receiver) else type(receiver)
            return describe(owner, obj.__name__)
        if inspect.isclass(obj):
            raise UnsupportedMethodShape(f"{owner_name(obj)} is a class, not a method")
        if callable(obj):
            module = sys.modules.get(getattr(obj, "__module__", None) or "")
            return _describe_free(module, getattr(obj, "__name__", repr(obj)), obj)
        raise TypeError(f"describe() expects a class, module or callable, got {obj!r}")

    owner = owner_or_callable

    if isinstance(owner, ModuleType):
        return _describe_free(owner, name, getattr(owner, name))

    origin = typing.get_origin(owner)
    if origin is not None and inspect.isclass(origin):
        # Box[int] -> describe on Box, then bind Box's type parameters
        descriptor = describe(origin, name)
        bindings = dict(zip(getattr(origin, "__parameters__", ()), typing.get_args(owner)))
        return descriptor.concretize(bindings)

    if not inspect.isclass(owner):
        raise TypeError(f"describe() expects a class or module as owner, got {owner!r}")

    raw = inspect.getattr_static(owner, name)

    if isinstance(raw, staticmethod):
        return _build(owner, name, raw.__func__, raw.__func__, is_static=True, has_receiver=False)
    if isinstance(raw, classmethod):
        return _build(owner, name, raw.__func__, getattr(owner, name), is_static=True, has_receiver=True)
    if inspect.isfunction(raw) or inspect.ismethoddescriptor(raw):
        return _build(owner, name, raw, raw, is_static=False, has_receiver=True)

    raise UnsupportedMethodShape(f"{owner_name(owner)}.{name} is not a method, got {type(raw).__name__}")


# Private Methods ------------------------------------------------------------------------------------------------------

def _describe_free(module: ModuleType | None, name: str, func: Any) -> MethodDescriptor:
    if inspect.isclass(func) or not callable(func):
        raise UnsupportedMethodShape(f"{owner_name(module)}.{name} is not a function")
    return _build(module, name, func, func, is_static=True, has_receiver=False)


def _build(
    owner: Any,
    name: str,
    func: Callable[..., Any],
    target: Callable[..., Any],
    *,
    is_static: bool,
    has_receiver: bool,
) -> MethodDescriptor:
    """
    Read parameters and annotations of func into a descriptor dispatching to target.

    func is the plain function carrying the signature; target is what gets called
    (they differ for classmethods, where target is bound to the owner).
    """
    qualname = f"{owner_name(owner)}.{name}"

    if inspect.iscoroutinefunction(func) or inspect.isasyncgenfunction(func):
        raise UnsupportedMethodShape(
            f"{qualname} is asynchronous; drive it from the caller's event loop instead"
        )

    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError) as exc:
        raise UnsupportedMethodShape(f"{qualname}: signature is not available ({exc})") from exc

    hints = _type_hints(func, qualname)
    params = list(sig.parameters.values())

    if has_receiver:
        if not params or params[0].kind not in _POSITIONAL:
            raise UnsupportedMethodShape(f"{qualname} has no positional receiver parameter")
        params = params[1:]

    names = []
    types = []
    for p in params:
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise UnsupportedMethodShape(f"{qualname}: variadic parameter '{p.name}' has no fixed arity")
        if p.kind is inspect.Parameter.KEYWORD_ONLY:
            if p.default is inspect.Parameter.empty:
                raise UnsupportedMethodShape(f"{qualname}: keyword-only parameter '{p.name}' is required")
            continue
        names.append(p.name)
        types.append(hints.get(p.name, typing.Any))

    return MethodDescriptor(
        declaring_type=owner,
        name=name,
        parameter_types=tuple(types),
        return_type=hints.get("return", typing.Any),
        target=target,
        is_static=is_static,
        parameter_names=tuple(names),
    )


def _type_hints(func: Callable[..., Any], qualname: str) -> dict[str, Any]:
    # Builtins and other C callables carry no annotations
    if not (inspect.isfunction(func) or inspect.ismethod(func)):
        return {}
    try:
        return typing.get_type_hints(func)
    except Exception as exc:
        raise UnsupportedMethodShape(f"{qualname}: cannot resolve annotations ({exc})") from exc


def _free_type_vars(hint: Any) -> tuple:
    if isinstance(hint, TYPE_VAR_TYPES):
        return (hint,)
    if typing.get_origin(hint) is not None:
        return tuple(getattr(hint, "__parameters__", ()))
    return ()


def _substitute(hint: Any, mapping: Mapping[Any, Any]) -> Any:
    if isinstance(hint, TYPE_VAR_TYPES):
        return mapping.get(hint, hint)
    params = getattr(hint, "__parameters__", ()) if typing.get_origin(hint) is not None else ()
    if not params:
        return hint
    args = tuple(mapping.get(p, p) for p in params)
    return hint[args if len(args) > 1 else args[0]]
