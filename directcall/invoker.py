"""
Compiled invokers: one per signature key.

A compiled invoker carries everything that depends only on the call shape
(argument converters and the return convention). The method to call is not
part of it; it comes from the descriptor supplied with each call, so every
method sharing the shape dispatches through the same invoker.
"""

# Standard library -----------------------------------------------------------------------------------------------------
from typing import Any, Sequence

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.descriptor import MethodDescriptor
from directcall.errors import ArgumentTypeMismatch
from directcall.marshal import DEFAULT_POLICY, Converter, MarshalPolicy, converter_for, returns_void, passthrough
from directcall.sentinels import NOT_FOUND, VOID
from directcall.signature import SignatureKey

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = ["CompiledInvoker", "compile_invoker"]


# Classes --------------------------------------------------------------------------------------------------------------

class CompiledInvoker:
    """
    Immutable callable that marshals arguments and dispatches one call shape.

    Call it as ``invoker(descriptor, instance, arguments)``; descriptor must
    normalize to the invoker's key. The target is called directly, without any
    surrounding try block, so exceptions raised by the target reach the caller
    as they are.
    """
    __slots__ = ("key", "_converters", "_identity", "_void")

    def __init__(self, key: SignatureKey, converters: Sequence[Converter], void: bool):
        object.__setattr__(self, "key", key)
        object.__setattr__(self, "_converters", tuple(converters))
        object.__setattr__(self, "_identity", all(c is passthrough for c in converters))
        object.__setattr__(self, "_void", void)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return f"<CompiledInvoker {self.key}>"

    @property
    def returns_void(self) -> bool:
        return self._void

    def __call__(self, descriptor: MethodDescriptor, instance: Any, arguments: Sequence[Any]) -> Any:
        __tracebackhide__ = True

        args = self.marshal(descriptor, arguments)

        if descriptor.is_static:
            result = descriptor.target(*args)
        else:
            result = descriptor.target(instance, *args)

        if self._void:
            return VOID
        return result

    def marshal(self, descriptor: MethodDescriptor, arguments: Sequence[Any]) -> Sequence[Any]:
        """
        Convert raw arguments to the declared parameter types.

        Raises:
            ArgumentTypeMismatch: For the first argument that cannot be converted.
        """
        __tracebackhide__ = True

        if self._identity:
            return arguments

        converted = []
        for position, (convert, value) in enumerate(zip(self._converters, arguments)):
            result = convert(value)
            if result is NOT_FOUND:
                names = descriptor.parameter_names
                raise ArgumentTypeMismatch(
                    descriptor.qualname,
                    position,
                    names[position] if names else None,
                    self.key.parameter_types[position],
                    type(value),
                )
            converted.append(result)
        return converted


# Methods --------------------------------------------------------------------------------------------------------------

def compile_invoker(key: SignatureKey, policy: MarshalPolicy = DEFAULT_POLICY) -> CompiledInvoker:
    """
    Build the invoker for a signature key.

    Deterministic and free of side effects, so an invoker built by a thread that
    loses an insertion race can be dropped.

    Raises:
        UnsupportedMethodShape: If a parameter annotation has no run-time converter.
    """
    converters = [converter_for(hint, policy) for hint in key.parameter_types]
    return CompiledInvoker(key, converters, returns_void(key.return_type))
