"""Shared pytest fixtures for the django-scaffold test suite.

Provides reusable fixtures for:
- Run configurations rooted in a temporary directory
- A fake command runner that simulates venv / startproject side effects
- A fake prerequisite checker with scripted statuses
- Rendered scaffold plans
"""

from __future__ import annotations

from pathlib import Path

import pytest

from django_scaffold.config import ScaffoldConfig
from django_scaffold.errors import ExternalCommandFailed
from django_scaffold.prereqs import CheckResult, CheckStatus, ToolRequirement, default_requirements
from django_scaffold.runner import CommandRunner, ExecutionStep
from django_scaffold.scaffolder.plan import build_parameters, build_structure_plan, render_plan
from django_scaffold.scaffolder.templates import TemplateRenderer

TEST_SECRET = "test-secret-key-0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def scaffold_config(tmp_path: Path) -> ScaffoldConfig:
    """Non-interactive config whose root does not exist yet."""
    return ScaffoldConfig(root=tmp_path / "site", assume_yes=True)


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def rendered_structure(scaffold_config: ScaffoldConfig, renderer: TemplateRenderer):
    parameters = build_parameters(scaffold_config, TEST_SECRET)
    return render_plan(build_structure_plan(scaffold_config), renderer, parameters)


# ---------------------------------------------------------------------------
# Fake command runner
# ---------------------------------------------------------------------------

STARTPROJECT_FILES = {
    "manage.py": "#!/usr/bin/env python\n# generated by startproject\n",
    "{pkg}/__init__.py": "",
    "{pkg}/settings.py": "SECRET_KEY = 'insecure'\n",
    "{pkg}/urls.py": "urlpatterns = []\n",
    "{pkg}/wsgi.py": "# startproject wsgi\n",
    "{pkg}/asgi.py": "# startproject asgi\n",
}


class FakeRunner(CommandRunner):
    """Records every ExecutionStep and simulates the effects the pipeline relies on.

    Steps whose ``name`` appears in *fail_on* raise ExternalCommandFailed.
    """

    def __init__(self, fail_on: set[str] | None = None) -> None:
        super().__init__()
        self.fail_on = fail_on or set()
        self.steps: list[ExecutionStep] = []

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.steps]

    async def run(self, step: ExecutionStep) -> int:
        self.steps.append(step)
        if step.name in self.fail_on:
            raise ExternalCommandFailed(step.display, 1, f"{step.name} blew up\nlast line")

        if step.name == "venv":
            venv = Path(step.command[-1])
            (venv / "bin").mkdir(parents=True, exist_ok=True)
            (venv / "bin" / "python").write_text("", encoding="utf-8")
        elif step.name == "startproject":
            pkg = step.command[-2]
            for rel, content in STARTPROJECT_FILES.items():
                target = step.cwd / rel.format(pkg=pkg)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
        return 0


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


# ---------------------------------------------------------------------------
# Fake prerequisite checker
# ---------------------------------------------------------------------------

class FakeChecker:
    """Returns scripted statuses keyed by requirement name (default: satisfied)."""

    def __init__(self, statuses: dict[str, CheckStatus] | None = None, version: str = "3.12.4") -> None:
        self.statuses = statuses or {}
        self.version = version
        self.checked: list[str] = []

    async def check(self, requirement: ToolRequirement) -> CheckResult:
        self.checked.append(requirement.name)
        status = self.statuses.get(requirement.name, CheckStatus.SATISFIED)
        version = self.version if requirement.version_command else None
        return CheckResult(requirement=requirement, status=status, version=version)

    async def check_all(self, requirements: list[ToolRequirement]) -> list[CheckResult]:
        results = []
        for requirement in requirements:
            result = await self.check(requirement)
            results.append(result)
            if result.status is CheckStatus.MISSING:
                break
        return results


@pytest.fixture
def fake_checker() -> FakeChecker:
    return FakeChecker()


@pytest.fixture
def requirements() -> list[ToolRequirement]:
    return default_requirements("python3")
