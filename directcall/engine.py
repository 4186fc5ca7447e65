"""
Direct invocation of methods resolved at run time.

invoke_direct() calls the method described by a MethodDescriptor the way
source code would call it: exceptions raised by the method reach the caller
as the very same exception object, with no wrapper type in between. The
engine's own errors (see directcall.errors) are raised before the target
method is entered.

Dispatch code is compiled once per call shape and cached, see directcall.cache.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import inspect

from typing import Any, Iterable

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.cache import InvokerCache, default_cache
from directcall.descriptor import MethodDescriptor, describe
from directcall.errors import (
    ArityMismatch,
    MissingInstance,
    ReceiverTypeMismatch,
    UnexpectedInstance,
)
from directcall.marshal import accepts_receiver
from directcall.signature import normalize

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = ["DirectInvoker", "invoke_direct", "call_direct"]


# Classes --------------------------------------------------------------------------------------------------------------

class DirectInvoker:
    """
    Invocation engine bound to one InvokerCache.

    Args:
        cache: Cache of compiled invokers. A fresh private cache when omitted;
            pass default_cache() to share compiled invokers process-wide.

    Examples:
        >>> engine = DirectInvoker()
        >>> engine.invoke(describe(Calc, "add"), Calc(), (2, 3))
        5
    """

    def __init__(self, cache: InvokerCache | None = None):
        self.cache = cache if cache is not None else InvokerCache()

    def __repr__(self) -> str:
        return f"<DirectInvoker cache={self.cache!r}>"

    def invoke(self, descriptor: MethodDescriptor, instance: Any = None, arguments: Iterable[Any] | None = ()) -> Any:
        """
        Invoke the described method on instance with arguments.

        Args:
            descriptor: Concrete method descriptor.
            instance: Receiver for instance methods, None for static methods.
            arguments: Positional arguments, one per declared parameter.

        Returns:
            The method's return value, or VOID if the method is declared to return no value.

        Raises:
            MissingInstance: Instance method invoked with instance=None.
            UnexpectedInstance: Static method invoked with an instance.
            UnsupportedMethodShape: Generic definition, or an annotation without converter.
            ArityMismatch: Wrong number of arguments.
            ReceiverTypeMismatch: Instance is not of the declaring class (policy.check_receiver).
            ArgumentTypeMismatch: An argument does not convert to its parameter type.
            Exception: Whatever the invoked method raises, unchanged.
        """
        __tracebackhide__ = True

        if arguments is None:
            arguments = ()
        elif not isinstance(arguments, (list, tuple)):
            arguments = tuple(arguments)

        self._check_call(descriptor, instance, arguments)

        invoker = self.cache.get_or_compile(normalize(descriptor))
        return invoker(descriptor, instance, arguments)

    def call(self, method: Any, *args: Any) -> Any:
        """
        Describe and invoke a function or bound method in one step.

        Bound instance methods use their ``__self__`` as receiver. Describing is
        not cached, prefer invoke() with a stored descriptor in loops.
        """
        __tracebackhide__ = True

        descriptor = describe(method)
        receiver = getattr(method, "__self__", None) if inspect.ismethod(method) else None
        instance = None if descriptor.is_static else receiver
        return self.invoke(descriptor, instance, args)

    def _check_call(self, descriptor: MethodDescriptor, instance: Any, arguments: tuple | list) -> None:
        __tracebackhide__ = True

        if not descriptor.is_static and instance is None:
            raise MissingInstance(descriptor.qualname)
        if descriptor.is_static and instance is not None:
            raise UnexpectedInstance(descriptor.qualname, instance)

        # Generic definitions are rejected by normalize(), after the receiver checks
        # and before the arity check
        if descriptor.is_generic_definition:
            normalize(descriptor)

        if len(arguments) != descriptor.arity:
            raise ArityMismatch(descriptor.qualname, descriptor.arity, len(arguments))

        if (
            not descriptor.is_static
            and self.cache.policy.check_receiver
            and not accepts_receiver(descriptor.declaring_type, instance)
        ):
            raise ReceiverTypeMismatch(descriptor.qualname, descriptor.declaring_type, type(instance))


# Methods --------------------------------------------------------------------------------------------------------------

def invoke_direct(
    descriptor: MethodDescriptor,
    instance: Any = None,
    arguments: Iterable[Any] | None = (),
    *,
    cache: InvokerCache | None = None,
) -> Any:
    """
    Invoke the described method through the process-wide cache, or through cache if given.

    See DirectInvoker.invoke() for arguments, return value and errors.

    Examples:
        >>> invoke_direct(describe(Calc, "add"), Calc(), (2, 3))
        5
        >>> invoke_direct(describe(Calc, "reset"), Calc(), ())
        <VOID>
    """
    __tracebackhide__ = True
    return DirectInvoker(cache if cache is not None else default_cache()).invoke(descriptor, instance, arguments)


def call_direct(method: Any, *args: Any, cache: InvokerCache | None = None) -> Any:
    """
    Describe and invoke a function or bound method through the process-wide cache.

    Examples:
        >>> call_direct(Calc().add, 2, 3)
        5
    """
    __tracebackhide__ = True
    return DirectInvoker(cache if cache is not None else default_cache()).call(method, *args)
