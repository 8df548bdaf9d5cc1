"""Jinja2 template rendering for project scaffolding.

Provides the TemplateRenderer class which loads Jinja2 templates from the
``django_scaffold/scaffolder/templates/`` directory and renders them with a
parameter mapping.  Undefined placeholders are an error rather than an empty
string, so a misconfigured run fails before anything is written.
"""

from __future__ import annotations

import secrets
from pathlib import Path
from typing import Any, Mapping

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    UndefinedError,
    select_autoescape,
)

from django_scaffold.errors import MissingTemplateParameter

# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for project scaffolding.

    Templates are addressed by their path relative to the template directory
    without the ``.j2`` suffix (``"settings/base.py"``), or with it.  Rendering
    is pure: the same template id and parameters always produce the same text.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    # -- Single template rendering -----------------------------------------

    def render(self, template_id: str, parameters: Mapping[str, Any]) -> str:
        """Render a single template with the provided parameters.

        Raises:
            MissingTemplateParameter: a placeholder has no binding.
            TemplateNotFound: *template_id* does not exist.
        """
        name = template_id if template_id.endswith(".j2") else f"{template_id}.j2"
        template = self.env.get_template(name)
        try:
            return template.render(**parameters)
        except UndefinedError as exc:
            raise MissingTemplateParameter(template_id, str(exc)) from exc


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


def generate_secret_key(length: int = 50) -> str:
    """Return a URL-safe random token built from *length* random bytes."""
    return secrets.token_urlsafe(length)
