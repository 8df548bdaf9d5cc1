"""Unit tests for the template renderer (django_scaffold.scaffolder.templates).

Tests cover:
- Deterministic rendering
- MissingTemplateParameter on unbound placeholders
- Generated Python files are syntactically valid
- Secret key generation
"""

from __future__ import annotations

import pytest

from django_scaffold.config import ScaffoldConfig
from django_scaffold.errors import MissingTemplateParameter
from django_scaffold.scaffolder.plan import build_parameters
from django_scaffold.scaffolder.settings_gen import VARIANTS, variant_context
from django_scaffold.scaffolder.templates import TemplateRenderer, generate_secret_key

SECRET = "s" * 60


@pytest.fixture
def parameters():
    return build_parameters(ScaffoldConfig(project_name="core"), SECRET)


class TestRender:
    @pytest.mark.unit
    def test_deterministic(self, renderer: TemplateRenderer, parameters):
        first = renderer.render("settings/base.py", parameters)
        second = renderer.render("settings/base.py", parameters)
        assert first == second

    @pytest.mark.unit
    def test_accepts_suffix(self, renderer: TemplateRenderer, parameters):
        assert renderer.render("wsgi.py.j2", parameters) == renderer.render("wsgi.py", parameters)

    @pytest.mark.unit
    def test_missing_parameter(self, renderer: TemplateRenderer):
        with pytest.raises(MissingTemplateParameter) as exc_info:
            renderer.render("env", {"env": {}})
        assert exc_info.value.template_id == "env"


class TestRenderedContent:
    @pytest.mark.unit
    def test_env_file(self, renderer: TemplateRenderer, parameters):
        text = renderer.render("env", parameters)
        assert f"SECRET_KEY={SECRET}\n" in text
        assert "ALLOWED_HOSTS=localhost,127.0.0.1,.localhost\n" in text
        assert "DB_ENGINE=django.db.backends.sqlite3\n" in text
        for key in ("EMAIL_USE_TLS", "REDIS_URL", "LOG_LEVEL", "TIME_ZONE"):
            assert f"\n{key}=" in text

    @pytest.mark.unit
    def test_manage_py_defaults_to_local_settings(self, renderer: TemplateRenderer, parameters):
        text = renderer.render("manage.py", parameters)
        assert "os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'core.settings.local')" in text
        assert "environ.Env.read_env" in text
        compile(text, "manage.py", "exec")

    @pytest.mark.unit
    @pytest.mark.parametrize("template", ["wsgi.py", "asgi.py"])
    def test_entry_points_reference_local_settings(self, renderer: TemplateRenderer, parameters, template):
        text = renderer.render(template, parameters)
        assert "'core.settings.local'" in text
        compile(text, template, "exec")

    @pytest.mark.unit
    def test_base_settings_compile(self, renderer: TemplateRenderer, parameters):
        text = renderer.render("settings/base.py", parameters)
        compile(text, "base.py", "exec")
        assert "ROOT_URLCONF = 'core.urls'" in text
        assert "DEBUG = env('DEBUG')" in text

    @pytest.mark.unit
    @pytest.mark.parametrize("name", sorted(VARIANTS))
    def test_variant_modules_compile(self, renderer: TemplateRenderer, parameters, name):
        context = variant_context(VARIANTS[name])
        text = renderer.render("settings/variant.py", {**parameters, **context})
        compile(text, f"{name}.py", "exec")
        assert "from .base import *" in text

    @pytest.mark.unit
    def test_environment_manifests_include_base(self, renderer: TemplateRenderer, parameters):
        assert "Django~=6.0.0" in renderer.render("requirements/base.txt", parameters)
        for manifest in ("local", "staging", "production"):
            text = renderer.render(f"requirements/{manifest}.txt", parameters)
            assert "-r base.txt" in text


class TestSecretKey:
    @pytest.mark.unit
    def test_random_and_long_enough(self):
        first, second = generate_secret_key(), generate_secret_key()
        assert first != second
        assert len(first) >= 50
        assert "\n" not in first and "=" not in first
