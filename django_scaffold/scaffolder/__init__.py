"""Plan, render and materialize the generated Django file set.

Quick usage::

    from django_scaffold.scaffolder import (
        Materializer, TemplateRenderer, build_parameters, build_structure_plan, render_plan,
    )

    plan = render_plan(build_structure_plan(config), TemplateRenderer(), build_parameters(config, key))
    Materializer(confirm=lambda _: False).materialize(plan, config.root)
"""

from django_scaffold.scaffolder.materializer import MaterializeResult, Materializer
from django_scaffold.scaffolder.plan import (
    DirSpec,
    FileSpec,
    MirrorSpec,
    OverwritePolicy,
    RenderedPlan,
    ScaffoldPlan,
    build_env_plan,
    build_parameters,
    build_structure_plan,
    render_plan,
)
from django_scaffold.scaffolder.templates import TemplateRenderer, generate_secret_key

__all__ = [
    "DirSpec",
    "FileSpec",
    "MaterializeResult",
    "Materializer",
    "MirrorSpec",
    "OverwritePolicy",
    "RenderedPlan",
    "ScaffoldPlan",
    "TemplateRenderer",
    "build_env_plan",
    "build_parameters",
    "build_structure_plan",
    "generate_secret_key",
    "render_plan",
]
