"""Prerequisite checks for the external tools the scaffolder drives.

Each :class:`ToolRequirement` describes how to probe for a tool, how to read
its version, and the inclusive version range that is supported.  The checker
only inspects exit codes and output; it never changes anything on disk.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from pydantic import BaseModel, Field

from django_scaffold.utils import run_command

logger = logging.getLogger(__name__)


class CheckStatus(str, Enum):
    SATISFIED = "satisfied"
    MISSING = "missing"
    VERSION_MISMATCH = "version_mismatch"


class ToolRequirement(BaseModel):
    """A single external tool the pipeline depends on."""

    name: str
    probe: list[str] = Field(..., description="Command that exits 0 when the tool is usable")
    version_command: list[str] | None = Field(
        default=None, description="Command whose output contains the version"
    )
    version_pattern: str = Field(default=r"(\d+(?:\.\d+)+)")
    min_version: str | None = None
    max_version: str | None = None
    install_hint: str = ""

    @property
    def version_range(self) -> str:
        low = self.min_version or "*"
        high = self.max_version or "*"
        return f"[{low}, {high}]"


class CheckResult(BaseModel):
    requirement: ToolRequirement
    status: CheckStatus
    version: str | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is CheckStatus.SATISFIED


# ---------------------------------------------------------------------------
# Version helpers
# ---------------------------------------------------------------------------


def parse_version(text: str, pattern: str = r"(\d+(?:\.\d+)+)") -> tuple[int, ...] | None:
    """Extract a dotted version from *text*.

    Examples::

        parse_version("Python 3.12.4") -> (3, 12, 4)
        parse_version("no digits")     -> None
    """
    match = re.search(pattern, text)
    if not match:
        return None
    return tuple(int(part) for part in match.group(1).split("."))


def version_in_range(
    version: tuple[int, ...],
    min_version: str | None = None,
    max_version: str | None = None,
) -> bool:
    """Inclusive range check.

    Bounds are compared only on the components they specify, so a maximum of
    ``"3.13"`` admits ``3.13.11`` but rejects ``3.14.0``.
    """
    if min_version:
        low = tuple(int(p) for p in min_version.split("."))
        if version[: len(low)] < low:
            return False
    if max_version:
        high = tuple(int(p) for p in max_version.split("."))
        if version[: len(high)] > high:
            return False
    return True


# ---------------------------------------------------------------------------
# Default requirements
# ---------------------------------------------------------------------------

PYTHON_INSTALL_HINT = """\
Please install Python 3.11, 3.12, or 3.13 (latest stable) before continuing.

Installation options:
  - On Ubuntu/Debian: sudo apt update && sudo apt install python3.13 python3.13-venv python3.13-dev
  - On macOS with Homebrew: brew install python@3.13
  - On Windows: Download from https://www.python.org/downloads/
  - Using pyenv (recommended):
      curl https://pyenv.run | bash
      pyenv install 3.13.11
      pyenv global 3.13.11"""

PIP_INSTALL_HINT = (
    "Please install pip (Python package installer) before continuing.\n"
    "This is required for installing Django and other packages."
)

VENV_INSTALL_HINT = (
    "Please install the python3-venv package:\n"
    "  - On Ubuntu/Debian: sudo apt install python3-venv\n"
    "  - On other systems, check your Python installation"
)


def default_requirements(python: str = "python3") -> list[ToolRequirement]:
    """The interpreter, pip and the venv module, in that order."""
    return [
        ToolRequirement(
            name=python,
            probe=[python, "--version"],
            version_command=[python, "--version"],
            min_version="3.11",
            max_version="3.13",
            install_hint=PYTHON_INSTALL_HINT,
        ),
        ToolRequirement(
            name="pip",
            probe=[python, "-m", "pip", "--version"],
            install_hint=PIP_INSTALL_HINT,
        ),
        ToolRequirement(
            name="venv",
            probe=[python, "-m", "venv", "--help"],
            install_hint=VENV_INSTALL_HINT,
        ),
    ]


# ---------------------------------------------------------------------------
# Checker
# ---------------------------------------------------------------------------


class PrerequisiteChecker:
    """Probes tools and classifies them as satisfied, missing or mismatched."""

    def __init__(self, timeout: int = 30) -> None:
        self.timeout = timeout

    async def check(self, requirement: ToolRequirement) -> CheckResult:
        """Probe one tool.

        A probe that cannot be spawned at all (binary not on ``PATH``) counts
        as ``MISSING``, exactly like a non-zero exit.
        """
        try:
            code, stdout, stderr = await run_command(requirement.probe, timeout=self.timeout)
        except (FileNotFoundError, PermissionError) as exc:
            logger.debug("Probe for %s could not start: %s", requirement.name, exc)
            return CheckResult(requirement=requirement, status=CheckStatus.MISSING, detail=str(exc))

        if code != 0:
            return CheckResult(
                requirement=requirement,
                status=CheckStatus.MISSING,
                detail=stderr or stdout,
            )

        if requirement.version_command is None:
            return CheckResult(requirement=requirement, status=CheckStatus.SATISFIED, detail=stdout)

        if requirement.version_command != requirement.probe:
            code, stdout, stderr = await run_command(
                requirement.version_command, timeout=self.timeout
            )
        # Python 2 and some tools print their version on stderr.
        version = parse_version(f"{stdout}\n{stderr}", requirement.version_pattern)
        if version is None:
            return CheckResult(
                requirement=requirement,
                status=CheckStatus.VERSION_MISMATCH,
                detail=f"could not parse a version from: {stdout or stderr!r}",
            )

        version_str = ".".join(str(p) for p in version)
        if not version_in_range(version, requirement.min_version, requirement.max_version):
            return CheckResult(
                requirement=requirement,
                status=CheckStatus.VERSION_MISMATCH,
                version=version_str,
            )
        return CheckResult(requirement=requirement, status=CheckStatus.SATISFIED, version=version_str)

    async def check_all(self, requirements: list[ToolRequirement]) -> list[CheckResult]:
        """Probe tools sequentially, stopping at the first missing one."""
        results: list[CheckResult] = []
        for requirement in requirements:
            result = await self.check(requirement)
            results.append(result)
            if result.status is CheckStatus.MISSING:
                break
        return results
