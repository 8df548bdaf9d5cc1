"""Unit tests for utility functions (django_scaffold.utils).

Tests cover:
- run_command (success, failure, timeout, explicit environment)
- format_command / tail_lines / format_duration
- confirm (--yes and interactive paths)
- Rich output helpers
"""

from __future__ import annotations

import sys
from unittest.mock import patch

import pytest

from django_scaffold.utils import (
    confirm,
    format_command,
    format_duration,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    run_command,
    tail_lines,
)


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success(self):
        code, stdout, stderr = await run_command([sys.executable, "-c", "print('hello')"])
        assert code == 0
        assert stdout == "hello"
        assert stderr == ""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_exit_code(self):
        code, _, stderr = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"]
        )
        assert code == 3
        assert stderr == "bad"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_returns_minus_one(self):
        code, _, stderr = await run_command(
            [sys.executable, "-c", "import time; time.sleep(10)"], timeout=1
        )
        assert code == -1
        assert "timed out" in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_explicit_environment_is_not_merged(self, monkeypatch):
        monkeypatch.setenv("DJS_LEAK_CHECK", "leaked")
        script = "import os; print(os.environ.get('DJS_LEAK_CHECK'), os.environ.get('ONLY'))"
        code, stdout, _ = await run_command(
            [sys.executable, "-c", script], env={"ONLY": "me"}, inherit_env=False
        )
        assert code == 0
        assert stdout == "None me"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_env_merges_by_default(self, monkeypatch):
        monkeypatch.setenv("DJS_PARENT", "parent")
        script = "import os; print(os.environ['DJS_PARENT'], os.environ['EXTRA'])"
        _, stdout, _ = await run_command([sys.executable, "-c", script], env={"EXTRA": "x"})
        assert stdout == "parent x"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cwd(self, tmp_path):
        _, stdout, _ = await run_command(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )
        assert stdout == str(tmp_path.resolve())

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_executable_raises(self):
        with pytest.raises(FileNotFoundError):
            await run_command(["definitely-not-a-real-binary-djs"])


class TestFormatting:
    @pytest.mark.unit
    def test_format_command(self):
        assert format_command(["pip", "install", "-r", "x.txt"]) == "pip install -r x.txt"
        assert format_command("ls -la") == "ls -la"

    @pytest.mark.unit
    def test_tail_lines(self):
        text = "\n".join(f"line {i}" for i in range(30))
        tail = tail_lines(text, 20)
        assert tail.splitlines()[0] == "line 10"
        assert tail.splitlines()[-1] == "line 29"
        assert tail_lines("", 5) == ""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "seconds, expected",
        [(3.7, "3.7s"), (65.2, "1m 5s"), (3661.0, "1h 1m 1s"), (-1, "0.0s")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestConfirm:
    @pytest.mark.unit
    def test_assume_yes_does_not_prompt(self):
        with patch("django_scaffold.utils.Confirm.ask") as ask:
            assert confirm("Overwrite?", assume_yes=True) is True
        ask.assert_not_called()

    @pytest.mark.unit
    def test_interactive_defaults_to_no(self):
        with patch("django_scaffold.utils.Confirm.ask", return_value=False) as ask:
            assert confirm("Overwrite?") is False
        assert ask.call_args.kwargs["default"] is False


class TestRichHelpers:
    @pytest.mark.unit
    def test_helpers_do_not_raise(self):
        print_step_header(1, 9, "check prerequisites")
        print_summary_table({"a": "1", "b": "2"}, title="T")
        print_success("ok")
        print_warning("careful")
        print_error("bad")
