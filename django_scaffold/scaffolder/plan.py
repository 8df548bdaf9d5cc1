"""Scaffold plans: the declarative description of the generated file set.

A plan is an ordered list of :class:`DirSpec`, :class:`FileSpec` and
:class:`MirrorSpec` entries with paths relative to the project root.
:func:`render_plan` renders every template up front and returns a
:class:`RenderedPlan`, so a missing parameter is reported before the
materializer touches the disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Any, Mapping, Union

from django_scaffold.config import ScaffoldConfig
from django_scaffold.errors import PlanError
from django_scaffold.scaffolder.settings_gen import VARIANTS, base_context, variant_context
from django_scaffold.scaffolder.templates import TemplateRenderer


class OverwritePolicy(str, Enum):
    SKIP = "skip"
    PROMPT_OVERWRITE = "prompt_overwrite"


@dataclass(frozen=True)
class DirSpec:
    path: str
    mode: int | None = None


@dataclass(frozen=True)
class FileSpec:
    """A file produced from a template, from literal content, or empty.

    Exactly one of *template* and *content* may be set; neither means
    "create empty".
    """

    path: str
    template: str | None = None
    content: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)
    mode: int | None = None
    policy: OverwritePolicy | None = None


@dataclass(frozen=True)
class MirrorSpec:
    """A second location exposing an earlier file (symlink or copy)."""

    path: str
    source: str
    mode: int | None = None


PlanEntry = Union[DirSpec, FileSpec, MirrorSpec]


@dataclass(frozen=True)
class RenderedFile:
    path: str
    content: str
    mode: int | None = None
    policy: OverwritePolicy | None = None


RenderedEntry = Union[DirSpec, RenderedFile, MirrorSpec]


class ScaffoldPlan:
    """Ordered, path-unique list of plan entries."""

    def __init__(self, name: str, entries: list[PlanEntry] | None = None) -> None:
        self.name = name
        self.entries: list[PlanEntry] = []
        self._paths: set[str] = set()
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: PlanEntry) -> None:
        path = _normalise(entry.path)
        if path in self._paths:
            raise PlanError(f"Duplicate path in plan '{self.name}': {path}")
        if isinstance(entry, MirrorSpec) and _normalise(entry.source) not in self._paths:
            raise PlanError(
                f"Mirror {path} refers to {entry.source}, which is not an earlier entry"
            )
        if isinstance(entry, FileSpec) and entry.template and entry.content is not None:
            raise PlanError(f"{path}: set either a template or literal content, not both")
        self._paths.add(path)
        self.entries.append(entry)

    @property
    def paths(self) -> list[str]:
        return [_normalise(e.path) for e in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class RenderedPlan:
    name: str
    entries: list[RenderedEntry]

    @property
    def paths(self) -> list[str]:
        return [_normalise(e.path) for e in self.entries]


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


def build_parameters(config: ScaffoldConfig, secret_key: str) -> Mapping[str, Any]:
    """Template parameters for one run.  The returned mapping is read-only."""
    return MappingProxyType(
        {
            "project_name": config.project_name,
            "settings_module": config.settings_module,
            "django_requirement": config.django_requirement,
            "secret_key": secret_key,
            "env": config.env.model_dump(),
            "base": base_context(),
        }
    )


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

REQUIREMENT_MANIFESTS = ("base", "local", "staging", "production")


def build_structure_plan(config: ScaffoldConfig) -> ScaffoldPlan:
    """Settings package, entry points, manifests and asset directories."""
    pkg = config.project_name
    plan = ScaffoldPlan("structure")

    plan.add(DirSpec(f"{pkg}/settings"))
    plan.add(FileSpec(f"{pkg}/settings/__init__.py"))
    plan.add(FileSpec(f"{pkg}/settings/base.py", template="settings/base.py"))
    for variant in VARIANTS.values():
        plan.add(
            FileSpec(
                f"{pkg}/settings/{variant.name}.py",
                template="settings/variant.py",
                context=variant_context(variant),
            )
        )

    plan.add(FileSpec("manage.py", template="manage.py", mode=0o755))
    plan.add(FileSpec(f"{pkg}/wsgi.py", template="wsgi.py"))
    plan.add(FileSpec(f"{pkg}/asgi.py", template="asgi.py"))

    plan.add(DirSpec("requirements"))
    for manifest in REQUIREMENT_MANIFESTS:
        plan.add(FileSpec(f"requirements/{manifest}.txt", template=f"requirements/{manifest}.txt"))

    plan.add(DirSpec("apps"))
    plan.add(FileSpec("apps/__init__.py"))
    for directory in ("static", "staticfiles", "templates", "media"):
        plan.add(DirSpec(directory))
    return plan


def build_env_plan(config: ScaffoldConfig) -> ScaffoldPlan:
    """The canonical ``.env`` plus its ``credentials/`` entry."""
    return ScaffoldPlan(
        "env",
        [
            FileSpec(".env", template="env", mode=0o600),
            DirSpec("credentials", mode=0o700),
            MirrorSpec("credentials/.env", source=".env", mode=0o600),
        ],
    )


def render_plan(
    plan: ScaffoldPlan,
    renderer: TemplateRenderer,
    parameters: Mapping[str, Any],
) -> RenderedPlan:
    """Render every file entry.  Pure; raises before anything is written."""
    rendered: list[RenderedEntry] = []
    for entry in plan:
        if isinstance(entry, FileSpec):
            if entry.template:
                content = renderer.render(entry.template, {**parameters, **entry.context})
            else:
                content = entry.content or ""
            rendered.append(
                RenderedFile(
                    path=_normalise(entry.path),
                    content=content,
                    mode=entry.mode,
                    policy=entry.policy,
                )
            )
        else:
            rendered.append(entry)
    return RenderedPlan(name=plan.name, entries=rendered)


def _normalise(path: str) -> str:
    normalised = PurePosixPath(path)
    if normalised.is_absolute() or ".." in normalised.parts:
        raise PlanError(f"Plan paths must be relative to the project root: {path}")
    return normalised.as_posix()
