"""Exception hierarchy for the scaffolder.

Every failure the tool can report derives from :class:`ScaffoldError`, so the
pipeline can catch one type per step and record which step failed and why.
"""

from __future__ import annotations

from pathlib import Path


class ScaffoldError(Exception):
    """Base class for all scaffolding failures."""


# ---------------------------------------------------------------------------
# Prerequisites
# ---------------------------------------------------------------------------


class PrerequisiteMissing(ScaffoldError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, install_hint: str = "") -> None:
        self.tool = tool
        self.install_hint = install_hint
        message = f"Required tool '{tool}' is not installed."
        if install_hint:
            message = f"{message}\n{install_hint}"
        super().__init__(message)


class PrerequisiteVersionMismatch(ScaffoldError):
    """A tool is installed but its version is outside the supported range."""

    def __init__(self, tool: str, found: str, expected: str) -> None:
        self.tool = tool
        self.found = found
        self.expected = expected
        super().__init__(
            f"{tool} version {found} is outside the supported range {expected}."
        )


# ---------------------------------------------------------------------------
# Rendering / planning
# ---------------------------------------------------------------------------


class MissingTemplateParameter(ScaffoldError):
    """A template references a placeholder that has no binding."""

    def __init__(self, template_id: str, detail: str) -> None:
        self.template_id = template_id
        self.detail = detail
        super().__init__(f"Template '{template_id}' is missing a parameter: {detail}")


class PlanError(ScaffoldError):
    """The scaffold plan itself is malformed (e.g. duplicate paths)."""


# ---------------------------------------------------------------------------
# File system
# ---------------------------------------------------------------------------


class MaterializeError(ScaffoldError):
    """Base class for file-system failures; always names the offending path."""

    reason = "file-system error"

    def __init__(self, path: str | Path, detail: str = "") -> None:
        self.path = Path(path)
        self.detail = detail
        message = f"{self.reason}: {self.path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class PathConflict(MaterializeError):
    """A directory was expected where a file exists, or vice versa."""

    reason = "Path conflict"


class PermissionDenied(MaterializeError):
    reason = "Permission denied"


class DiskFull(MaterializeError):
    reason = "No space left on device"


# ---------------------------------------------------------------------------
# External commands
# ---------------------------------------------------------------------------


class ExternalCommandFailed(ScaffoldError):
    """An external command exited non-zero or timed out."""

    def __init__(self, command: str, exit_code: int, stderr_tail: str = "") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        message = f"Command failed (exit {exit_code}): {command}"
        if stderr_tail:
            message = f"{message}\n{stderr_tail}"
        super().__init__(message)
