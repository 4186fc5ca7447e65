"""
Formatting helpers for exception messages and log records.

Describe values, types and type hints the way they read in source code.
Broken __repr__ methods never raise, and long representations are truncated.
"""

# Standard library -----------------------------------------------------------------------------------------------------
import typing
from typing import Any, Literal

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.utils import UNION_TYPES, class_name


# Methods --------------------------------------------------------------------------------------------------------------

def fmt_type(obj: Any, *, fully_qualified: bool = False) -> str:
    """Format a type, or the type of a value, as ``<name>``.

    Examples:
        >>> fmt_type(42)
        '<int>'

        >>> fmt_type(ValueError)
        '<ValueError>'
    """
    return f"<{class_name(obj, fully_qualified=fully_qualified)}>"


def fmt_hint(hint: Any) -> str:
    """Format a type annotation the way it would be written in source code.

    Examples:
        >>> fmt_hint(int)
        'int'

        >>> fmt_hint(list[int])
        'list[int]'

        >>> fmt_hint(typing.Optional[str])
        'str | None'
    """
    if hint is type(None) or hint is None:
        return "None"
    if hint is typing.Any:
        return "Any"

    origin = typing.get_origin(hint)
    args = typing.get_args(hint)

    if origin in UNION_TYPES:
        return " | ".join(fmt_hint(a) for a in args)
    if origin is Literal:
        return f"Literal[{', '.join(_safe_repr(a) for a in args)}]"
    if origin is not None:
        name = getattr(origin, "__qualname__", None) or getattr(origin, "_name", None) or str(origin)
        if not args:
            return name
        return f"{name}[{', '.join(fmt_hint(a) for a in args)}]"

    if isinstance(hint, type):
        return class_name(hint)
    if isinstance(hint, list):
        # Callable parameter lists
        return f"[{', '.join(fmt_hint(a) for a in hint)}]"
    if hint is Ellipsis:
        return "..."
    name = getattr(hint, "__name__", None)
    return name if name else repr(hint)


def fmt_value(obj: Any, *, max_repr: int = 80) -> str:
    """
    Format a value as ``<type: repr>`` for exception messages.

    Examples:
        >>> fmt_value(42)
        '<int: 42>'

        >>> fmt_value("hello world", max_repr=5)
        "<str: 'hello...'>"
    """
    r = _truncate(_safe_repr(obj), max_repr).replace(">", "\\>")
    return f"<{type(obj).__name__}: {r}>"


# Private Methods ------------------------------------------------------------------------------------------------------

def _truncate(text: str, max_len: int) -> str:
    """Keep at most max_len characters; quoted reprs keep their closing quote."""
    if max_len <= 0:
        return ""
    if len(text) <= max_len:
        return text
    if len(text) >= 2 and text[0] in ("'", '"') and text[-1] == text[0]:
        return f"{text[0]}{text[1:1 + max_len]}...{text[0]}"
    return text[:max_len] + "..."


def _safe_repr(obj: Any) -> str:
    try:
        return repr(obj)
    except Exception as exc:
        return f"<{type(obj).__name__} object (repr failed: {type(exc).__name__})>"
