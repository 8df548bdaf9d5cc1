"""django-scaffold -- sets up a Django project with split settings.

Quick usage::

    import asyncio
    from django_scaffold import Pipeline, ScaffoldConfig

    config = ScaffoldConfig(root="./mysite", project_name="core", assume_yes=True)
    summary = asyncio.run(Pipeline(config).run())
"""

from django_scaffold.config import ScaffoldConfig
from django_scaffold.pipeline import Pipeline, RunState, Summary

__version__ = "0.1.0"

__all__ = [
    "Pipeline",
    "RunState",
    "ScaffoldConfig",
    "Summary",
]
