"""django-scaffold Pipeline Orchestrator.

Drives the scaffolding run as an ordered list of step objects:

CheckingPrereqs        -- probe python / pip / venv, render and validate the plan.
BuildingEnv            -- create the venv, install Django, run startproject.
CreatingStructure      -- settings package, manage.py, wsgi.py, manifests, asset dirs.
WritingConfig          -- the .env file and its credentials/ entry.
InstallingDependencies -- pip install -r requirements/local.txt.
RunningMigration       -- manage.py migrate with an explicit environment.

The run stops at the first failing step.  Nothing is rolled back: every step
is idempotent, so the recovery path is to fix the cause and run again.

Usage::

    python -m django_scaffold --root ./mysite
    python -m django_scaffold --root ./mysite --project-name core --yes
"""

from __future__ import annotations

import re
import shutil
import sys
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from rich.panel import Panel
from rich.text import Text

from django_scaffold.config import ScaffoldConfig
from django_scaffold.errors import (
    ExternalCommandFailed,
    PathConflict,
    PrerequisiteMissing,
    PrerequisiteVersionMismatch,
    ScaffoldError,
)
from django_scaffold.prereqs import CheckStatus, PrerequisiteChecker, ToolRequirement, default_requirements
from django_scaffold.runner import CommandRunner, ExecutionStep, build_project_env, parse_env_file
from django_scaffold.scaffolder.materializer import MaterializeResult, Materializer, translate_os_error
from django_scaffold.scaffolder.plan import (
    OverwritePolicy,
    RenderedPlan,
    build_env_plan,
    build_parameters,
    build_structure_plan,
    render_plan,
)
from django_scaffold.scaffolder.templates import TemplateRenderer, generate_secret_key
from django_scaffold.utils import (
    confirm,
    console,
    format_duration,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
)

# ---------------------------------------------------------------------------
# States and results
# ---------------------------------------------------------------------------


class RunState(str, Enum):
    INIT = "Init"
    CHECKING_PREREQS = "CheckingPrereqs"
    ABORTED = "Aborted"
    BUILDING_ENV = "BuildingEnv"
    CREATING_STRUCTURE = "CreatingStructure"
    WRITING_CONFIG = "WritingConfig"
    INSTALLING_DEPENDENCIES = "InstallingDependencies"
    RUNNING_MIGRATION = "RunningMigration"
    COMPLETED = "Completed"
    FAILED = "Failed"


class StepFailed(ScaffoldError):
    """Raised by :meth:`Pipeline.run_or_raise` when a step fails."""

    def __init__(self, step: str, state: RunState, cause: BaseException) -> None:
        self.step = step
        self.state = state
        self.cause = cause
        super().__init__(f"Step '{step}' ({state.value}) failed: {cause}")


@dataclass
class StepResult:
    name: str
    state: RunState
    ok: bool = True
    detail: str = ""
    duration: float = 0.0


@dataclass
class Summary:
    """Outcome of one run."""

    state: RunState
    results: list[StepResult] = field(default_factory=list)
    failed_step: str | None = None
    failed_state: RunState | None = None
    error: str = ""
    diagnostics: str = ""
    cause: ScaffoldError | None = None
    materialized: dict[str, int] = field(default_factory=dict)
    next_steps: list[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is RunState.COMPLETED

    @property
    def executed_steps(self) -> list[str]:
        return [r.name for r in self.results]


# ---------------------------------------------------------------------------
# Step context
# ---------------------------------------------------------------------------


@dataclass
class StepContext:
    """Everything a step needs; paths come from here, never from the cwd."""

    config: ScaffoldConfig
    runner: CommandRunner
    checker: PrerequisiteChecker
    renderer: TemplateRenderer
    materializer: Materializer
    ask: Callable[[str], bool]
    requirements: list[ToolRequirement]
    parameters: Mapping[str, Any] | None = None
    structure_plan: RenderedPlan | None = None
    env_plan: RenderedPlan | None = None
    replaceable: set[Path] = field(default_factory=set)
    materialized: MaterializeResult = field(default_factory=MaterializeResult)
    env_values: dict[str, str] = field(default_factory=dict)

    @property
    def root(self) -> Path:
        return self.config.root


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class Step(ABC):
    """A unit of the pipeline.  ``execute`` raises ``ScaffoldError`` on failure."""

    name: str = ""
    state: RunState = RunState.INIT

    @abstractmethod
    async def execute(self, ctx: StepContext) -> StepResult: ...

    def result(self, detail: str = "") -> StepResult:
        return StepResult(name=self.name, state=self.state, detail=detail)


class CheckPrerequisitesStep(Step):
    name = "check prerequisites"
    state = RunState.CHECKING_PREREQS

    async def execute(self, ctx: StepContext) -> StepResult:
        found: list[str] = []
        for check in await ctx.checker.check_all(ctx.requirements):
            requirement = check.requirement
            if check.status is CheckStatus.MISSING:
                raise PrerequisiteMissing(requirement.name, requirement.install_hint)
            if check.status is CheckStatus.VERSION_MISMATCH:
                print_warning(
                    f"Warning: {requirement.name} version {check.version or '?'} may not be "
                    f"compatible; supported range is {requirement.version_range}."
                )
                if not ctx.ask("Do you want to continue anyway?"):
                    raise PrerequisiteVersionMismatch(
                        requirement.name, check.version or "unknown", requirement.version_range
                    )
            label = f"{requirement.name} {check.version}" if check.version else requirement.name
            console.print(f"  [green]+[/green] {label}")
            found.append(label)
        return self.result(", ".join(found))


class RenderPlanStep(Step):
    """Render every template before anything touches the disk."""

    name = "render plan"
    state = RunState.CHECKING_PREREQS

    async def execute(self, ctx: StepContext) -> StepResult:
        secret_key = _existing_secret(ctx.config.env_file) or generate_secret_key(
            ctx.config.secret_length
        )
        ctx.parameters = build_parameters(ctx.config, secret_key)
        ctx.structure_plan = render_plan(
            build_structure_plan(ctx.config), ctx.renderer, ctx.parameters
        )
        ctx.env_plan = render_plan(build_env_plan(ctx.config), ctx.renderer, ctx.parameters)
        count = len(ctx.structure_plan.entries) + len(ctx.env_plan.entries)
        return self.result(f"{count} entries rendered")


class CreateVirtualEnvStep(Step):
    name = "create virtual environment"
    state = RunState.BUILDING_ENV

    async def execute(self, ctx: StepContext) -> StepResult:
        config = ctx.config
        try:
            config.root.mkdir(parents=True, exist_ok=True)
        except (FileExistsError, NotADirectoryError) as exc:
            raise PathConflict(config.root, "project root is not a directory") from exc
        except OSError as exc:
            raise translate_os_error(exc, config.root) from exc

        venv = config.venv_path
        if venv.exists() and not venv.is_dir():
            raise PathConflict(venv, "expected a virtual environment directory")
        if venv.is_dir():
            print_warning(f"Warning: {config.venv_dir} directory already exists.")
            if config.skip_existing or not ctx.ask(
                "Do you want to recreate it? This will delete the existing one."
            ):
                return self.result(f"using existing {config.venv_dir}")
            try:
                shutil.rmtree(venv)
            except OSError as exc:
                raise translate_os_error(exc, venv) from exc

        await ctx.runner.run(
            ExecutionStep(
                name="venv",
                command=[config.python, "-m", "venv", str(venv.resolve())],
                cwd=config.root,
                timeout=config.timeouts.command,
            )
        )
        return self.result(f"created {config.venv_dir}")


class BootstrapPackagesStep(Step):
    name = "install Django"
    state = RunState.BUILDING_ENV

    async def execute(self, ctx: StepContext) -> StepResult:
        config = ctx.config
        python = str(config.venv_python.resolve())
        for label, args in (
            ("upgrade pip", ["install", "--upgrade", "pip"]),
            ("install django", ["install", config.django_requirement]),
        ):
            await ctx.runner.run(
                ExecutionStep(
                    name=label,
                    command=[python, "-m", "pip", *args],
                    cwd=config.root,
                    timeout=config.timeouts.install,
                )
            )
        return self.result(config.django_requirement)


class StartProjectStep(Step):
    """``django-admin startproject <name> .`` unless the project already exists.

    Files created here are handed to the structure step as replaceable, and
    the single-module ``settings.py`` it generates is removed in favour of
    the settings package.

    On a rerun the step is skipped, but entry points that still select the
    removed single-module settings are marked replaceable as well.
    """

    name = "start project"
    state = RunState.BUILDING_ENV

    GENERATED = ("manage.py", "{pkg}/__init__.py", "{pkg}/settings.py", "{pkg}/urls.py",
                 "{pkg}/wsgi.py", "{pkg}/asgi.py")

    async def execute(self, ctx: StepContext) -> StepResult:
        config = ctx.config
        if config.manage_py.exists() and config.package_path.is_dir():
            stale = stale_entry_points(config)
            ctx.replaceable |= stale
            if stale:
                return self.result(f"Django project already exists; refreshing {len(stale)} entry point(s)")
            return self.result("Django project already exists")

        candidates = [config.root / p.format(pkg=config.project_name) for p in self.GENERATED]
        before = {p for p in candidates if p.exists()}

        await ctx.runner.run(
            ExecutionStep(
                name="startproject",
                command=[
                    str(config.venv_python.resolve()), "-m", "django",
                    "startproject", config.project_name, ".",
                ],
                cwd=config.root,
                timeout=config.timeouts.command,
            )
        )

        created = {p for p in candidates if p.exists()} - before
        legacy_settings = config.package_path / "settings.py"
        if legacy_settings in created:
            try:
                legacy_settings.unlink()
            except OSError as exc:
                raise translate_os_error(exc, legacy_settings) from exc
            created.discard(legacy_settings)
        ctx.replaceable |= created
        return self.result(f"created {config.project_name}/")


ENTRY_POINTS = ("manage.py", "{pkg}/wsgi.py", "{pkg}/asgi.py")


def stale_entry_points(config: ScaffoldConfig) -> set[Path]:
    """Entry points still defaulting to ``<pkg>.settings`` while that module is gone."""
    if (config.package_path / "settings.py").exists():
        return set()
    pattern = re.compile(
        r"DJANGO_SETTINGS_MODULE['\"]\s*,\s*['\"]" + re.escape(config.project_name) + r"\.settings['\"]"
    )
    stale: set[Path] = set()
    for rel in ENTRY_POINTS:
        path = config.root / rel.format(pkg=config.project_name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            continue
        except OSError as exc:
            raise translate_os_error(exc, path) from exc
        if pattern.search(text):
            stale.add(path)
    return stale


class CreateStructureStep(Step):
    name = "create project structure"
    state = RunState.CREATING_STRUCTURE

    async def execute(self, ctx: StepContext) -> StepResult:
        assert ctx.structure_plan is not None
        result = ctx.materializer.materialize(ctx.structure_plan, ctx.root, ctx.replaceable)
        ctx.materialized.merge(result)
        counts = result.as_counts()
        return self.result(
            f"{counts['written']} written, {counts['overwritten']} overwritten, "
            f"{counts['unchanged']} unchanged, {counts['skipped']} skipped"
        )


class WriteEnvFileStep(Step):
    name = "write environment file"
    state = RunState.WRITING_CONFIG

    async def execute(self, ctx: StepContext) -> StepResult:
        assert ctx.env_plan is not None
        result = ctx.materializer.materialize(ctx.env_plan, ctx.root)
        ctx.materialized.merge(result)
        try:
            ctx.env_values = parse_env_file(ctx.config.env_file.read_text(encoding="utf-8"))
        except OSError as exc:
            raise translate_os_error(exc, ctx.config.env_file) from exc
        mode = ctx.config.credentials_mode.value
        return self.result(f".env + credentials/.env ({mode})")


class InstallRequirementsStep(Step):
    name = "install requirements"
    state = RunState.INSTALLING_DEPENDENCIES

    manifest = "requirements/local.txt"

    async def execute(self, ctx: StepContext) -> StepResult:
        config = ctx.config
        await ctx.runner.run(
            ExecutionStep(
                name="pip install",
                command=[str(config.venv_python.resolve()), "-m", "pip", "install", "-r", self.manifest],
                cwd=config.root,
                timeout=config.timeouts.install,
            )
        )
        return self.result(self.manifest)


class MigrateStep(Step):
    name = "run migrations"
    state = RunState.RUNNING_MIGRATION

    async def execute(self, ctx: StepContext) -> StepResult:
        config = ctx.config
        await ctx.runner.run(
            ExecutionStep(
                name="migrate",
                command=[str(config.venv_python.resolve()), "manage.py", "migrate"],
                cwd=config.root,
                timeout=config.timeouts.command,
                env=build_project_env(config, ctx.env_values),
                inherit_env=False,
            )
        )
        return self.result(f"DJANGO_SETTINGS_MODULE={config.settings_module}")


def default_steps(dry_run: bool = False) -> list[Step]:
    steps: list[Step] = [CheckPrerequisitesStep(), RenderPlanStep()]
    if dry_run:
        return steps
    return steps + [
        CreateVirtualEnvStep(),
        BootstrapPackagesStep(),
        StartProjectStep(),
        CreateStructureStep(),
        WriteEnvFileStep(),
        InstallRequirementsStep(),
        MigrateStep(),
    ]


# ---------------------------------------------------------------------------
# Pipeline Orchestrator
# ---------------------------------------------------------------------------


class Pipeline:
    """django-scaffold Pipeline Orchestrator.

    Attributes:
        config: Run configuration.
        state: Current :class:`RunState`.
        transitions: Every state entered, in order, starting with ``Init``.
    """

    def __init__(
        self,
        config: ScaffoldConfig,
        *,
        runner: CommandRunner | None = None,
        checker: PrerequisiteChecker | None = None,
        requirements: list[ToolRequirement] | None = None,
        ask: Callable[[str], bool] | None = None,
        steps: list[Step] | None = None,
    ) -> None:
        self.config = config
        self.state = RunState.INIT
        self.transitions: list[RunState] = [RunState.INIT]
        self.steps = steps if steps is not None else default_steps(config.dry_run)

        ask = ask or (lambda message: confirm(message, config.assume_yes))
        policy = OverwritePolicy.SKIP if config.skip_existing else None
        self.context = StepContext(
            config=config,
            runner=runner or CommandRunner(),
            checker=checker or PrerequisiteChecker(timeout=config.timeouts.probe),
            renderer=TemplateRenderer(),
            materializer=Materializer(ask, policy=policy, credentials_mode=config.credentials_mode),
            ask=ask,
            requirements=requirements if requirements is not None else default_requirements(config.python),
        )

    def _enter(self, state: RunState) -> None:
        if state is not self.state:
            self.state = state
            self.transitions.append(state)

    async def run(self) -> Summary:
        """Execute every step in order and return the run summary."""
        start = time.monotonic()
        config = self.config

        console.print(
            Panel(
                f"[bold bright_cyan]Django Project Setup[/bold bright_cyan]\n"
                f"Root    : {config.root.resolve()}\n"
                f"Project : {config.project_name}\n"
                f"Settings: {config.settings_module}",
                title="[bold]Scaffold Start[/bold]",
                border_style="bright_cyan",
            )
        )

        summary = Summary(state=RunState.INIT)
        total = len(self.steps)

        for index, step in enumerate(self.steps, start=1):
            self._enter(step.state)
            print_step_header(index, total, step.name)
            step_start = time.monotonic()
            try:
                result = await step.execute(self.context)
            except ScaffoldError as exc:
                elapsed = time.monotonic() - step_start
                summary.results.append(
                    StepResult(step.name, step.state, ok=False, detail=str(exc), duration=elapsed)
                )
                summary.failed_step = step.name
                summary.failed_state = step.state
                summary.cause = exc
                summary.error = str(exc)
                if isinstance(exc, ExternalCommandFailed):
                    summary.error = f"Command failed (exit {exc.exit_code}): {exc.command}"
                    summary.diagnostics = exc.stderr_tail
                self._enter(
                    RunState.ABORTED if step.state is RunState.CHECKING_PREREQS else RunState.FAILED
                )
                print_error(
                    f"Step '{step.name}' FAILED after {format_duration(elapsed)}: {summary.error}"
                )
                break

            result.duration = time.monotonic() - step_start
            summary.results.append(result)
            print_success(f"{step.name}: {result.detail or 'done'}")
        else:
            self._enter(RunState.COMPLETED)

        summary.state = self.state
        summary.duration = time.monotonic() - start
        summary.materialized = self.context.materialized.as_counts()
        if summary.success:
            summary.next_steps = next_steps(config)

        self._print_final_summary(summary)
        return summary

    async def run_or_raise(self) -> Summary:
        """Like :meth:`run` but raises :class:`StepFailed` on failure."""
        summary = await self.run()
        if not summary.success:
            assert summary.failed_step is not None and summary.failed_state is not None
            raise StepFailed(summary.failed_step, summary.failed_state, summary.cause) from summary.cause
        return summary

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _print_final_summary(self, summary: Summary) -> None:
        rows = {
            r.name: f"{'ok' if r.ok else 'FAILED'} ({format_duration(r.duration)})"
            for r in summary.results
        }
        rows["Final state"] = summary.state.value
        rows["Total time"] = format_duration(summary.duration)
        print_summary_table(rows, title="Scaffold Summary")

        if self.config.dry_run and summary.success:
            plan_paths = []
            for plan in (self.context.structure_plan, self.context.env_plan):
                if plan is not None:
                    plan_paths.extend(plan.paths)
            console.print(Panel("\n".join(plan_paths), title="Planned file set (dry run)"))
            return

        if not summary.success:
            print_error(f"Setup stopped at '{summary.failed_step}': {summary.error}")
            if summary.diagnostics:
                console.print(Panel(Text(summary.diagnostics), title="Command output", border_style="red"))
            print_warning("Fix the cause and run the tool again; completed steps are safe to repeat.")
            return

        print_success("Django project setup completed successfully!")
        console.print(
            Panel(
                "\n".join(summary.next_steps),
                title="Next steps",
                border_style="green",
            )
        )


def next_steps(config: ScaffoldConfig) -> list[str]:
    """The manual follow-ups printed after a successful run."""
    if sys.platform == "win32":
        activate = f"{config.venv_dir}\\Scripts\\activate"
    else:
        activate = f"source {config.venv_dir}/bin/activate"
    return [
        "1. Create a superuser: python manage.py createsuperuser",
        "2. Create your first app: python manage.py startapp myapp apps/myapp",
        f"3. Add your app to INSTALLED_APPS in {config.project_name}/settings/local.py",
        "4. Update your .env file with proper values for production",
        "5. Set the DJANGO_SETTINGS_MODULE environment variable:",
        f"   export DJANGO_SETTINGS_MODULE={config.settings_module}",
        "",
        f"To activate the virtual environment, run: {activate}",
        "To deactivate the virtual environment later, run: deactivate",
    ]


def _existing_secret(env_file: Path) -> str | None:
    """Reuse the SECRET_KEY of a previous run so reruns leave ``.env`` intact."""
    if not env_file.is_file():
        return None
    try:
        values = parse_env_file(env_file.read_text(encoding="utf-8"))
    except OSError:
        return None
    return values.get("SECRET_KEY") or None


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``django-scaffold`` / ``python -m django_scaffold``."""
    import argparse
    import asyncio

    from pydantic import ValidationError

    from django_scaffold.config import CredentialsMode
    from django_scaffold.utils import setup_logging

    parser = argparse.ArgumentParser(
        prog="django-scaffold",
        description="Scaffold a Django project with split settings, manifests and a venv",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  django-scaffold\n"
            "  django-scaffold --root ./mysite --project-name core --yes\n"
            "  django-scaffold --config scaffold.yaml --dry-run\n"
        ),
    )
    parser.add_argument("--root", type=Path, default=None, help="Project root (default: ./django_template)")
    parser.add_argument("--project-name", default=None, help="Django project package (default: config)")
    parser.add_argument("--config", type=Path, default=None, help="JSON or YAML configuration file")
    parser.add_argument("--yes", "-y", action="store_true", default=None, help="Answer yes to every prompt")
    parser.add_argument(
        "--skip-existing", action="store_true", default=None,
        help="Never overwrite existing files or recreate an existing venv",
    )
    parser.add_argument(
        "--credentials-mode", choices=[m.value for m in CredentialsMode], default=None,
        help="How credentials/.env mirrors .env (default: symlink)",
    )
    parser.add_argument("--secret-length", type=int, default=None, help="Random bytes in SECRET_KEY")
    parser.add_argument("--dry-run", action="store_true", default=None, help="Check and render only")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    overrides: dict[str, Any] = {
        "root": args.root,
        "project_name": args.project_name,
        "assume_yes": args.yes,
        "skip_existing": args.skip_existing,
        "credentials_mode": args.credentials_mode,
        "secret_length": args.secret_length,
        "dry_run": args.dry_run,
    }
    try:
        if args.config:
            base = ScaffoldConfig.load(args.config).model_dump()
            base.update({k: v for k, v in overrides.items() if v is not None})
            config = ScaffoldConfig.model_validate(base)
        else:
            config = ScaffoldConfig.from_env(**overrides)
    except (ValidationError, OSError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] Invalid configuration: {exc}")
        sys.exit(2)

    summary = asyncio.run(Pipeline(config).run())
    if not summary.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
