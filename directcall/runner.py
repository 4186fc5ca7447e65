"""
Direct test runner.

Runs the tests of a module through the direct invocation engine. Unlike a
regular test runner, a failing test is not recorded and skipped over: its
exception leaves the runner unchanged (after teardowns have run), so a
debugger or the interpreter's traceback shows the failure where it happened.

Discovery follows xunit conventions:
    - module-level ``test_*`` functions, hooks ``setup_module``/``teardown_module``
      and ``setup_function``/``teardown_function``
    - ``Test*`` classes with ``test_*`` methods, hooks ``setup_class``/``teardown_class``
      and ``setup_method``/``teardown_method``
    - hooks take no arguments

One fixture instance is created per class suite before ``setup_class`` and
released after ``teardown_class`` (its ``close()`` is called when present).

Examples:
    In a module ``calc_tests``:

        class TestCalc:
            @case(2, 3, expected=5)
            @case(-1, 1, expected=0)
            def test_add(self, a: int, b: int) -> int:
                return a + b

    >>> result = run_module("calc_tests")
    >>> result.passed
    ['calc_tests::TestCalc::test_add[2-3]', 'calc_tests::TestCalc::test_add[-1-1]']
"""

# Standard library -----------------------------------------------------------------------------------------------------
import importlib
import importlib.util
import inspect
import logging
import sys
import threading
import time

from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Protocol

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.cache import default_cache
from directcall.descriptor import MethodDescriptor, describe
from directcall.engine import DirectInvoker
from directcall.formatters import fmt_value
from directcall.sentinels import UNSET, VOID

# Public API -----------------------------------------------------------------------------------------------------------
__all__ = [
    "Case",
    "case",
    "MaxTimeExceeded",
    "TestTimeout",
    "TestMethod",
    "TestSuite",
    "RunResult",
    "RunListener",
    "LoggingListener",
    "build_suite",
    "load_module",
    "run_module",
]

logger = logging.getLogger(__name__)

CASES_ATTR = "__directcall_cases__"


# Exceptions -----------------------------------------------------------------------------------------------------------

class MaxTimeExceeded(AssertionError):
    """A test passed but took longer than its max_time."""


class TestTimeout(TimeoutError):
    """A test did not finish within its timeout."""
    __test__ = False


# Classes --------------------------------------------------------------------------------------------------------------

@dataclass(frozen=True)
class Case:
    """
    One argument set of a test method.

    Attributes:
        args: Positional arguments passed to the test.
        expected: Value the test must return; UNSET to skip the comparison.
        repeat: Number of consecutive runs.
        max_time: Seconds a single run may take, setup and teardown included.
        timeout: Seconds after which the run is abandoned on its worker thread.
        id: Display id; derived from args when omitted.
    """
    args: tuple = ()
    expected: Any = UNSET
    repeat: int = 1
    max_time: float | None = None
    timeout: float | None = None
    id: str | None = None

    def __post_init__(self):
        if self.repeat < 1:
            raise ValueError(f"repeat must be >= 1, got {self.repeat}")
        for attr in ("max_time", "timeout"):
            value = getattr(self, attr)
            if value is not None and value <= 0:
                raise ValueError(f"{attr} must be positive, got {value}")

    @property
    def label(self) -> str | None:
        if self.id is not None:
            return self.id
        if self.args:
            return "-".join(str(a) for a in self.args)
        return None


def case(
    *args: Any,
    expected: Any = UNSET,
    repeat: int = 1,
    max_time: float | None = None,
    timeout: float | None = None,
    id: str | None = None,
) -> Callable:
    """
    Attach an argument set to a test. Stack to run the same test with several argument sets.

    Examples:
        >>> @case(2, 3, expected=5)
        ... @case(0, 0, expected=0, repeat=3)
        ... def test_add(a: int, b: int) -> int:
        ...     return a + b
    """
    spec = Case(args=args, expected=expected, repeat=repeat, max_time=max_time, timeout=timeout, id=id)

    def decorator(func):
        target = func.__func__ if isinstance(func, (staticmethod, classmethod)) else func
        # Decorators apply bottom-up, prepend to keep source order
        setattr(target, CASES_ATTR, [spec, *getattr(target, CASES_ATTR, [])])
        return func

    return decorator


@dataclass
class RunResult:
    """Tests that passed, in execution order, with their durations in seconds."""
    passed: list[str] = field(default_factory=list)
    durations: dict[str, float] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.passed)

    @property
    def total_time(self) -> float:
        return sum(self.durations.values())


class RunListener(Protocol):
    """Receives progress events from a run."""

    def run_started(self, suite: "TestSuite", test_count: int) -> None: ...

    def run_finished(self, result: RunResult, failure: BaseException | None) -> None: ...

    def suite_started(self, suite: "TestSuite") -> None: ...

    def suite_finished(self, suite: "TestSuite", elapsed: float) -> None: ...

    def test_started(self, test: "TestMethod") -> None: ...

    def test_finished(self, test: "TestMethod", elapsed: float) -> None: ...


class LoggingListener:
    """RunListener writing progress to the ``directcall.runner`` logger."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log if log is not None else logger

    def run_started(self, suite, test_count):
        self.log.info("Test run started: %s (%d tests)", suite.name, test_count)

    def run_finished(self, result, failure):
        if failure is None:
            self.log.info("Test run finished - SUCCESS (%d passed, took %.3f sec)", result.count, result.total_time)
        else:
            self.log.warning(
                "Test run finished - FAILURE after %d passed: %s: %s",
                result.count, type(failure).__name__, failure,
            )

    def suite_started(self, suite):
        self.log.info("Start suite %s", suite.full_name)

    def suite_finished(self, suite, elapsed):
        self.log.info("End suite %s (took %.3f sec)", suite.full_name, elapsed)

    def test_started(self, test):
        self.log.info("Running test %s ...", test.name)

    def test_finished(self, test, elapsed):
        self.log.debug("Passed %s (%.3f sec)", test.full_name, elapsed)


@dataclass
class TestMethod:
    """One test: a method descriptor with one argument set."""
    __test__ = False

    descriptor: MethodDescriptor
    case: Case = field(default_factory=Case)
    suite: "TestSuite | None" = field(default=None, repr=False)

    @property
    def name(self) -> str:
        label = self.case.label
        return self.descriptor.name if label is None else f"{self.descriptor.name}[{label}]"

    @property
    def full_name(self) -> str:
        if self.suite is None:
            return self.name
        return f"{self.suite.full_name}::{self.name}"

    def run(self, engine: DirectInvoker, fixture: Any, listener: RunListener) -> float:
        """
        Run the test case.repeat times, each time between the suite's per-test hooks.

        Returns:
            Total elapsed seconds.

        Raises:
            AssertionError: The result differs from case.expected.
            MaxTimeExceeded: A run passed but exceeded case.max_time.
            TestTimeout: A run exceeded case.timeout.
            Exception: Anything the test or its hooks raise, unchanged.
        """
        __tracebackhide__ = True

        listener.test_started(self)
        setups = self.suite.setup_each if self.suite is not None else []
        teardowns = self.suite.teardown_each if self.suite is not None else []

        total = 0.0
        for _ in range(self.case.repeat):
            start = time.perf_counter()
            failure = None
            try:
                for hook in setups:
                    engine.invoke(hook, _receiver(hook, fixture), ())
                result = self._call(engine, _receiver(self.descriptor, fixture))
                if self.case.expected is not UNSET:
                    _assert_expected(self, self.case.expected, result)
            except BaseException as exc:
                failure = exc
                raise
            finally:
                _run_teardowns(engine, teardowns, fixture, failure)

            elapsed = time.perf_counter() - start
            total += elapsed
            if self.case.max_time is not None and elapsed > self.case.max_time:
                raise MaxTimeExceeded(
                    f"{self.full_name}: elapsed time of {elapsed * 1000:.0f}ms "
                    f"exceeds maximum of {self.case.max_time * 1000:.0f}ms"
                )

        listener.test_finished(self, total)
        return total

    def _call(self, engine: DirectInvoker, instance: Any) -> Any:
        __tracebackhide__ = True

        if self.case.timeout is None:
            return engine.invoke(self.descriptor, instance, self.case.args)

        outcome = _Outcome()

        def work():
            try:
                outcome.value = engine.invoke(self.descriptor, instance, self.case.args)
            except BaseException as exc:
                outcome.error = exc

        # Daemon: a thread cannot be interrupted, and an abandoned worker must not keep the process alive
        worker = threading.Thread(target=work, name=f"directcall-timeout-{self.name}", daemon=True)
        worker.start()
        worker.join(self.case.timeout)

        if worker.is_alive():
            logger.warning("%s still running after its %s sec timeout, abandoned", self.full_name, self.case.timeout)
            raise TestTimeout(f"{self.full_name} did not finish within {self.case.timeout} sec")
        if outcome.error is not None:
            raise outcome.error
        return outcome.value


class _Outcome:
    """Result or exception handed back by a timeout worker thread."""
    __slots__ = ("value", "error")

    def __init__(self):
        self.value = None
        self.error = None


@dataclass
class TestSuite:
    """
    A module or class of tests, with its hooks and child suites.

    Attributes:
        name: Module name or class name.
        fixture_type: Class instantiated once for the suite; None for module suites.
        tests: Tests run in order, before child suites.
        suites: Child suites.
        setup_suite, teardown_suite: Hooks run once around the whole suite.
        setup_each, teardown_each: Hooks run around every test of this suite.
    """
    __test__ = False

    name: str
    fixture_type: type | None = None
    tests: list[TestMethod] = field(default_factory=list)
    suites: list["TestSuite"] = field(default_factory=list)
    setup_suite: list[MethodDescriptor] = field(default_factory=list)
    teardown_suite: list[MethodDescriptor] = field(default_factory=list)
    setup_each: list[MethodDescriptor] = field(default_factory=list)
    teardown_each: list[MethodDescriptor] = field(default_factory=list)
    parent: "TestSuite | None" = field(default=None, repr=False)

    @property
    def full_name(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent.full_name}::{self.name}"

    @property
    def count(self) -> int:
        return len(self.tests) + sum(s.count for s in self.suites)

    def add_test(self, test: TestMethod) -> None:
        test.suite = self
        self.tests.append(test)

    def add_suite(self, suite: "TestSuite") -> None:
        suite.parent = self
        self.suites.append(suite)

    def iter_tests(self):
        yield from self.tests
        for child in self.suites:
            yield from child.iter_tests()

    def run(self, engine: DirectInvoker, listener: RunListener, result: RunResult) -> None:
        """
        Run hooks, tests and child suites. The first failure propagates unchanged
        once teardown hooks have run.
        """
        __tracebackhide__ = True

        listener.suite_started(self)
        start = time.perf_counter()
        fixture = self._create_fixture()
        failure = None
        try:
            for hook in self.setup_suite:
                engine.invoke(hook, _receiver(hook, fixture), ())
            for test in self.tests:
                elapsed = test.run(engine, fixture, listener)
                result.passed.append(test.full_name)
                result.durations[test.full_name] = elapsed
            for child in self.suites:
                child.run(engine, listener, result)
        except BaseException as exc:
            failure = exc
            raise
        finally:
            try:
                _run_teardowns(engine, self.teardown_suite, fixture, failure)
            finally:
                self._release_fixture(engine, fixture, failure)
                listener.suite_finished(self, time.perf_counter() - start)

    def _create_fixture(self) -> Any:
        if self.fixture_type is None:
            return None
        return self.fixture_type()

    def _release_fixture(self, engine: DirectInvoker, fixture: Any, failure: BaseException | None) -> None:
        if fixture is None:
            return
        close = getattr(fixture, "close", None)
        if not callable(close):
            return
        try:
            engine.call(close)
        except Exception as exc:
            if failure is None:
                raise
            _note_secondary(failure, f"{self.full_name}.close", exc)


# Methods --------------------------------------------------------------------------------------------------------------

def build_suite(module: ModuleType, *, pattern: str | None = None) -> TestSuite:
    """
    Discover the tests of a module.

    Args:
        module: Module to scan. Only functions and classes defined in it are collected.
        pattern: Keep only tests whose full name contains this substring.

    Returns:
        Module suite with one child suite per ``Test*`` class that has tests left.
    """
    suite = TestSuite(name=module.__name__)
    suite.setup_suite = _hooks(module, "setup_module")
    suite.teardown_suite = _hooks(module, "teardown_module")
    suite.setup_each = _hooks(module, "setup_function")
    suite.teardown_each = _hooks(module, "teardown_function")

    for name, obj in list(vars(module).items()):
        if getattr(obj, "__module__", None) != module.__name__:
            continue
        if name.startswith("test_") and inspect.isfunction(obj):
            for test in _tests_for(describe(module, name)):
                suite.add_test(test)
        elif name.startswith("Test") and inspect.isclass(obj) and getattr(obj, "__test__", True):
            suite.add_suite(_class_suite(obj))

    if pattern:
        _filter(suite, pattern)
    return suite


def load_module(spec: str) -> ModuleType:
    """Import a module by dotted name, or load it from a ``.py`` file path."""
    if not spec.endswith(".py"):
        return importlib.import_module(spec)

    path = Path(spec).resolve()
    module_spec = importlib.util.spec_from_file_location(path.stem, path)
    if module_spec is None or module_spec.loader is None:
        raise ImportError(f"Cannot load module from {path}")

    module = importlib.util.module_from_spec(module_spec)
    sys.modules[path.stem] = module
    try:
        module_spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(path.stem, None)
        raise
    return module


def run_module(
    module: ModuleType | str,
    *,
    listener: RunListener | None = None,
    invoker: DirectInvoker | None = None,
    pattern: str | None = None,
) -> RunResult:
    """
    Discover and run the tests of a module through the direct invocation engine.

    Args:
        module: Module object, dotted module name, or path to a ``.py`` file.
        listener: Progress receiver; LoggingListener when omitted.
        invoker: Engine to use; one sharing default_cache() when omitted.
        pattern: Keep only tests whose full name contains this substring.

    Returns:
        RunResult of a run in which every test passed.

    Raises:
        Exception: The first failure, unchanged.
    """
    __tracebackhide__ = True

    if isinstance(module, str):
        module = load_module(module)

    suite = build_suite(module, pattern=pattern)
    engine = invoker if invoker is not None else DirectInvoker(default_cache())
    listener = listener if listener is not None else LoggingListener()
    result = RunResult()

    listener.run_started(suite, suite.count)
    try:
        suite.run(engine, listener, result)
    except BaseException as exc:
        listener.run_finished(result, exc)
        raise
    listener.run_finished(result, None)
    return result


# Private Methods ------------------------------------------------------------------------------------------------------

def _receiver(descriptor: MethodDescriptor, fixture: Any) -> Any:
    return None if descriptor.is_static else fixture


def _assert_expected(test: TestMethod, expected: Any, actual: Any) -> None:
    __tracebackhide__ = True
    if actual is VOID:
        raise AssertionError(f"{test.full_name} returns no value, expected {fmt_value(expected)}")
    if actual != expected:
        raise AssertionError(f"{test.full_name}: expected {fmt_value(expected)}, got {fmt_value(actual)}")


def _run_teardowns(
    engine: DirectInvoker,
    hooks: list[MethodDescriptor],
    fixture: Any,
    failure: BaseException | None,
) -> None:
    """
    Run teardown hooks in reverse order.

    While a failure is propagating, a failing teardown is logged and noted on the
    original failure, which keeps propagating; otherwise the teardown failure propagates.
    """
    for hook in reversed(hooks):
        try:
            engine.invoke(hook, _receiver(hook, fixture), ())
        except Exception as exc:
            if failure is None:
                raise
            _note_secondary(failure, hook.qualname, exc)


def _note_secondary(failure: BaseException, where: str, exc: BaseException) -> None:
    logger.error("%s failed while handling %s", where, type(failure).__name__, exc_info=exc)
    failure.add_note(f"{where} also failed: {type(exc).__name__}: {exc}")


def _hooks(owner: Any, name: str) -> list[MethodDescriptor]:
    if not hasattr(owner, name):
        return []
    return [describe(owner, name)]


def _tests_for(descriptor: MethodDescriptor) -> list[TestMethod]:
    func = getattr(descriptor.target, "__func__", descriptor.target)
    cases = getattr(func, CASES_ATTR, None) or [Case()]
    return [TestMethod(descriptor, c) for c in cases]


def _class_suite(cls: type) -> TestSuite:
    suite = TestSuite(name=cls.__qualname__, fixture_type=cls)
    suite.setup_suite = _hooks(cls, "setup_class")
    suite.teardown_suite = _hooks(cls, "teardown_class")
    suite.setup_each = _hooks(cls, "setup_method")
    suite.teardown_each = _hooks(cls, "teardown_method")

    seen = []
    for klass in reversed(cls.__mro__):
        for name in vars(klass):
            if name.startswith("test_") and name not in seen:
                seen.append(name)

    for name in seen:
        if callable(getattr(cls, name)):
            for test in _tests_for(describe(cls, name)):
                suite.add_test(test)
    return suite


def _filter(suite: TestSuite, pattern: str) -> None:
    suite.tests = [t for t in suite.tests if pattern in t.full_name]
    for child in suite.suites:
        _filter(child, pattern)
    suite.suites = [s for s in suite.suites if s.count]
