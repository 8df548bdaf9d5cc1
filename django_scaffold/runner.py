"""External command execution for pipeline steps.

An :class:`ExecutionStep` is built, run once by :class:`CommandRunner`, and
discarded.  A non-zero exit or a timeout raises
:class:`~django_scaffold.errors.ExternalCommandFailed` with the tail of the
captured output; the runner never retries.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from django_scaffold.config import ScaffoldConfig
from django_scaffold.errors import ExternalCommandFailed
from django_scaffold.utils import format_command, run_command, tail_lines

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


@dataclass
class ExecutionStep:
    """One external command invocation.

    When *env* is given together with ``inherit_env=False`` the child sees
    exactly that mapping and nothing from the parent process.
    """

    name: str
    command: list[str]
    cwd: Path
    timeout: int = 300
    env: dict[str, str] | None = None
    inherit_env: bool = True

    @property
    def display(self) -> str:
        return format_command(self.command)


@dataclass
class CommandOutcome:
    step: ExecutionStep
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class CommandRunner:
    """Runs :class:`ExecutionStep` objects sequentially."""

    def __init__(self) -> None:
        self.history: list[CommandOutcome] = []

    async def run(self, step: ExecutionStep) -> int:
        """Run *step* and return its exit code (always ``0`` on return).

        Raises:
            ExternalCommandFailed: non-zero exit, timeout, or the executable
                could not be started.
        """
        logger.debug("Running %s in %s", step.display, step.cwd)
        try:
            code, stdout, stderr = await run_command(
                step.command,
                cwd=step.cwd,
                timeout=step.timeout,
                env=step.env,
                inherit_env=step.inherit_env,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ExternalCommandFailed(step.display, 127, str(exc)) from exc

        self.history.append(CommandOutcome(step=step, exit_code=code, stdout=stdout, stderr=stderr))
        if stdout:
            logger.debug("%s stdout:\n%s", step.name, stdout)

        if code != 0:
            diagnostics = stderr or stdout
            raise ExternalCommandFailed(
                step.display, code, tail_lines(diagnostics, STDERR_TAIL_LINES)
            )
        return code


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------


def parse_env_file(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines, ignoring blanks and ``#`` comments."""
    values: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


def build_project_env(config: ScaffoldConfig, env_values: dict[str, str] | None = None) -> dict[str, str]:
    """Explicit environment for commands that load the project's settings.

    Contains the generated ``.env`` values, the venv's ``PATH`` and
    ``VIRTUAL_ENV``, and ``DJANGO_SETTINGS_MODULE`` pointing at the local
    variant.  Nothing else from the calling process leaks through apart from
    the OS essentials a Python interpreter needs to start.
    """
    venv_bin = config.venv_bin.resolve()
    env: dict[str, str] = dict(env_values or {})
    env["PATH"] = os.pathsep.join([str(venv_bin), os.defpath.lstrip(os.pathsep)])
    env["VIRTUAL_ENV"] = str(config.venv_path.resolve())
    env["DJANGO_SETTINGS_MODULE"] = config.settings_module
    for essential in ("SYSTEMROOT", "HOME", "LANG", "TMPDIR", "TEMP", "TMP"):
        if essential in os.environ:
            env.setdefault(essential, os.environ[essential])
    return env
