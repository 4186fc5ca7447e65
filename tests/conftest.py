#
# Pytest Fixtures
#

# Standard library -----------------------------------------------------------------------------------------------------
import itertools
import pathlib
import sys
import textwrap
from types import ModuleType
from typing import Callable

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.cache import InvokerCache
from directcall.engine import DirectInvoker
from directcall.runner import load_module

_module_ids = itertools.count()


# Fixtures -------------------------------------------------------------------------------------------------------------

@pytest.fixture
def compiled_keys() -> list:
    """Signature keys in the order their invokers were stored."""
    return []


@pytest.fixture
def cache(compiled_keys) -> InvokerCache:
    """Isolated invoker cache recording every stored key into compiled_keys."""
    return InvokerCache(on_compile=lambda key, invoker: compiled_keys.append(key))


@pytest.fixture
def engine(cache) -> DirectInvoker:
    """Invocation engine bound to the isolated cache."""
    return DirectInvoker(cache)


@pytest.fixture
def make_module(tmp_path: pathlib.Path, monkeypatch) -> Callable[[str], ModuleType]:
    """Write source to a uniquely named .py file and load it as a module."""

    def _make(source: str, stem: str = "sample_tests") -> ModuleType:
        name = f"{stem}_{next(_module_ids)}"
        path = tmp_path / f"{name}.py"
        path.write_text(textwrap.dedent(source))
        # Placeholder makes monkeypatch remove the entry at teardown
        monkeypatch.setitem(sys.modules, name, None)
        return load_module(str(path))

    return _make
