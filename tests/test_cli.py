#
# DirectCall - CLI Tests
#

# Standard library -----------------------------------------------------------------------------------------------------
import os
import pdb
import subprocess
import sys
import textwrap
from pathlib import Path

# Third-party ----------------------------------------------------------------------------------------------------------
import pytest

# Local ----------------------------------------------------------------------------------------------------------------
from directcall.__main__ import main

PASSING_SOURCE = """
    from directcall.runner import case

    @case(1, 2, expected=3)
    def test_add(a: int, b: int) -> int:
        return a + b

    def test_other():
        pass
"""

FAILING_SOURCE = """
    def test_divide():
        return 1 // 0
"""

HANGING_SOURCE = """
    import time
    from directcall.runner import case

    @case(timeout=0.2)
    def test_hangs():
        while True:
            time.sleep(0.05)
"""

PROJECT_ROOT = Path(__file__).resolve().parents[1]


# Tests ----------------------------------------------------------------------------------------------------------------

class TestMain:
    def test_reports_passed(self, make_module, capsys):
        module = make_module(PASSING_SOURCE)
        assert main([module.__file__]) == 0
        out = capsys.readouterr().out
        assert out.startswith("2 passed in ")

    def test_pattern(self, make_module, capsys):
        module = make_module(PASSING_SOURCE)
        assert main([module.__file__, "-k", "other", "-v"]) == 0
        assert capsys.readouterr().out.startswith("1 passed in ")

    def test_failure_propagates(self, make_module, monkeypatch):
        module = make_module(FAILING_SOURCE)
        monkeypatch.setattr(pdb, "post_mortem", lambda tb: pytest.fail("debugger opened without --pdb"))
        with pytest.raises(ZeroDivisionError):
            main([module.__file__])

    def test_pdb_opens_at_failure(self, make_module, monkeypatch):
        module = make_module(FAILING_SOURCE)
        seen = []
        monkeypatch.setattr(pdb, "post_mortem", lambda tb: seen.append(tb))
        with pytest.raises(ZeroDivisionError):
            main([module.__file__, "--pdb"])
        assert len(seen) == 1
        assert seen[0] is not None

    def test_requires_module(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 2


class TestProcessExit:
    def test_timed_out_worker_does_not_block_exit(self, tmp_path):
        """A test that never returns is abandoned and the process still exits."""
        path = tmp_path / "hanging_tests.py"
        path.write_text(textwrap.dedent(HANGING_SOURCE))
        python_path = [str(PROJECT_ROOT), os.environ.get("PYTHONPATH", "")]
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(p for p in python_path if p)}

        completed = subprocess.run(
            [sys.executable, "-m", "directcall", str(path)],
            capture_output=True,
            text=True,
            timeout=30,
            env=env,
        )

        assert completed.returncode != 0
        assert "TestTimeout" in completed.stderr
        assert "did not finish within 0.2 sec" in completed.stderr
