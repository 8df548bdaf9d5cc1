"""Settings-variant composition.

The generated ``settings/`` package has one base module and four environment
modules.  Each environment module is described here as an ordered list of
:class:`SettingsOverride` entries applied on top of :data:`BASE_SETTINGS`.
Collapsing an override list keeps the *last* value for a repeated key at the
position where the key first appeared, so the generated module never assigns
the same name twice.

Values are plain Python data (``str``, ``bool``, ``int``, ``list``, ``tuple``,
``dict``) or :class:`PyExpr` for source text that must be emitted verbatim,
such as ``BASE_DIR / 'db.sqlite3'``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

INDENT = "    "


@dataclass(frozen=True)
class PyExpr:
    """Raw Python source emitted as-is by :func:`format_py`."""

    source: str


@dataclass(frozen=True)
class SettingsOverride:
    key: str
    value: Any
    comment: str = ""
    prelude: str = ""


@dataclass(frozen=True)
class SettingsVariant:
    name: str
    description: str
    overrides: tuple[SettingsOverride, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Python literal formatting
# ---------------------------------------------------------------------------


def format_py(value: Any, level: int = 0) -> str:
    """Format *value* as Python source.

    Dicts with content are always expanded one key per line; lists and tuples
    stay inline unless they contain a dict.
    """
    if isinstance(value, PyExpr):
        return value.source
    if isinstance(value, dict):
        if not value:
            return "{}"
        pad = INDENT * (level + 1)
        lines = [
            f"{pad}{format_py(k)}: {format_py(v, level + 1)},"
            for k, v in value.items()
        ]
        return "{\n" + "\n".join(lines) + "\n" + INDENT * level + "}"
    if isinstance(value, (list, tuple)):
        open_, close = ("[", "]") if isinstance(value, list) else ("(", ")")
        if any(isinstance(item, dict) for item in value):
            pad = INDENT * (level + 1)
            lines = [f"{pad}{format_py(item, level + 1)}," for item in value]
            return open_ + "\n" + "\n".join(lines) + "\n" + INDENT * level + close
        inner = ", ".join(format_py(item, level) for item in value)
        if isinstance(value, tuple) and len(value) == 1:
            inner += ","
        return f"{open_}{inner}{close}"
    return repr(value)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def compose_overrides(overrides: tuple[SettingsOverride, ...] | list[SettingsOverride]) -> dict[str, SettingsOverride]:
    """Collapse an ordered override list; the last write for a key wins."""
    collapsed: dict[str, SettingsOverride] = {}
    for override in overrides:
        collapsed[override.key] = override
    return collapsed


def effective_settings(variant: SettingsVariant) -> dict[str, Any]:
    """The settings a variant ends up with: the base record plus its overrides."""
    resolved: dict[str, Any] = dict(BASE_SETTINGS)
    for key, override in compose_overrides(variant.overrides).items():
        resolved[key] = override.value
    return resolved


def variant_context(variant: SettingsVariant) -> dict[str, Any]:
    """Template context for ``settings/variant.py.j2``."""
    entries = [
        {
            "key": o.key,
            "source": format_py(o.value),
            "comment": o.comment,
            "prelude": o.prelude.strip("\n"),
        }
        for o in compose_overrides(variant.overrides).values()
    ]
    return {"variant_name": variant.name, "description": variant.description, "entries": entries}


def base_context() -> dict[str, str]:
    """Pre-formatted base record, keyed by setting name, for ``settings/base.py.j2``."""
    return {key: format_py(value) for key, value in BASE_SETTINGS.items()}


# ---------------------------------------------------------------------------
# The base record
# ---------------------------------------------------------------------------

BASE_SETTINGS: dict[str, Any] = {
    "DEBUG": PyExpr("env('DEBUG')"),
    "ALLOWED_HOSTS": PyExpr("env.list('ALLOWED_HOSTS', default=[])"),
    "DATABASES": {
        "default": {
            "ENGINE": PyExpr("env('DB_ENGINE')"),
            "NAME": PyExpr("env('DB_NAME')"),
            "USER": PyExpr("env('DB_USER')"),
            "PASSWORD": PyExpr("env('DB_PASSWORD')"),
            "HOST": PyExpr("env('DB_HOST')"),
            "PORT": PyExpr("env('DB_PORT')"),
        }
    },
    "EMAIL_BACKEND": "django.core.mail.backends.smtp.EmailBackend",
}

_SELF = "'self'"
_NONE = "'none'"
_UNSAFE_INLINE = "'unsafe-inline'"

_SECURITY_HARDENING: tuple[SettingsOverride, ...] = (
    SettingsOverride("SECURE_BROWSER_XSS_FILTER", True, comment="Security settings"),
    SettingsOverride("SECURE_CONTENT_TYPE_NOSNIFF", True),
    SettingsOverride("SECURE_HSTS_INCLUDE_SUBDOMAINS", True),
    SettingsOverride("SECURE_HSTS_SECONDS", 31536000),
    SettingsOverride("SECURE_REDIRECT_EXEMPT", []),
    SettingsOverride("SECURE_SSL_REDIRECT", True),
    SettingsOverride("SESSION_COOKIE_SECURE", True),
    SettingsOverride("CSRF_COOKIE_SECURE", True),
)

_SQLITE_MEMORY = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}}

_DISABLE_MIGRATIONS = '''\
# Disable migrations for faster testing
class DisableMigrations:
    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None
'''

LOCAL = SettingsVariant(
    name="local",
    description="Local development settings.",
    overrides=(
        SettingsOverride("DEBUG", True),
        SettingsOverride(
            "ALLOWED_HOSTS",
            ["localhost", "127.0.0.1"],
            comment="Override specific settings for local development",
        ),
        SettingsOverride(
            "DATABASES",
            {
                "default": {
                    "ENGINE": "django.db.backends.sqlite3",
                    "NAME": PyExpr("BASE_DIR / 'db.sqlite3'"),
                }
            },
            comment="Use SQLite for local development (optional)",
        ),
        SettingsOverride(
            "EMAIL_BACKEND",
            "django.core.mail.backends.console.EmailBackend",
            comment="Email backend for development",
        ),
        SettingsOverride(
            "SECURE_CSP_REPORT_ONLY",
            {
                "default-src": _SELF,
                "script-src": [_SELF, _UNSAFE_INLINE, "'unsafe-eval'"],
                "style-src": [_SELF, _UNSAFE_INLINE],
                "img-src": [_SELF, "data:", "localhost:*"],
                "font-src": [_SELF],
                "connect-src": [_SELF, "localhost:*"],
                "frame-ancestors": [_SELF],
            },
            comment="Content Security Policy for development (report-only mode)",
        ),
        SettingsOverride(
            "TASKS",
            {
                "default": {
                    "BACKEND": "django.tasks.backends.development.DevelopmentBackend",
                    "OPTIONS": {},
                }
            },
            comment="Background Tasks Framework",
        ),
    ),
)

STAGING = SettingsVariant(
    name="staging",
    description="Staging settings.",
    overrides=(
        SettingsOverride("DEBUG", False),
        SettingsOverride(
            "ALLOWED_HOSTS", ["staging.yourdomain.com"], comment="Staging-specific settings"
        ),
        *_SECURITY_HARDENING,
        SettingsOverride(
            "SECURE_CSP_REPORT_ONLY",
            {
                "default-src": _SELF,
                "script-src": [_SELF, _UNSAFE_INLINE, "www.google-analytics.com"],
                "style-src": [_SELF, _UNSAFE_INLINE, "fonts.googleapis.com"],
                "img-src": [_SELF, "data:", "www.google-analytics.com"],
                "font-src": [_SELF, "fonts.gstatic.com"],
                "connect-src": [_SELF, "api.staging.yourdomain.com"],
                "frame-ancestors": [_NONE],
            },
            comment="Content Security Policy",
        ),
        SettingsOverride(
            "TASKS",
            {
                "default": {
                    "BACKEND": "django.tasks.backends.redis.RedisBackend",
                    "OPTIONS": {"host": "localhost", "port": 6379, "db": 0},
                }
            },
            comment="Background Tasks Framework",
        ),
    ),
)

PRODUCTION = SettingsVariant(
    name="production",
    description="Production settings.",
    overrides=(
        SettingsOverride("DEBUG", False),
        SettingsOverride(
            "ALLOWED_HOSTS",
            ["yourdomain.com", "www.yourdomain.com"],
            comment="Production-specific settings",
        ),
        *_SECURITY_HARDENING,
        SettingsOverride(
            "SECURE_REFERRER_POLICY", "same-origin", comment="Additional production security settings"
        ),
        SettingsOverride("SECURE_PROXY_SSL_HEADER", ("HTTP_X_FORWARDED_PROTO", "https")),
        SettingsOverride(
            "SECURE_CSP",
            {
                "default-src": _SELF,
                "script-src": [_SELF, "www.google-analytics.com"],
                "style-src": [_SELF, "fonts.googleapis.com"],
                "img-src": [_SELF, "data:", "www.google-analytics.com"],
                "font-src": [_SELF, "fonts.gstatic.com"],
                "connect-src": [_SELF, "api.yourdomain.com"],
                "frame-ancestors": [_NONE],
            },
            comment="Content Security Policy",
        ),
        SettingsOverride(
            "TASKS",
            {
                "default": {
                    "BACKEND": "django.tasks.backends.database.DatabaseBackend",
                    "OPTIONS": {},
                }
            },
            comment="Background Tasks Framework",
        ),
    ),
)

TESTING = SettingsVariant(
    name="testing",
    description="Test-run settings.",
    overrides=(
        SettingsOverride("DEBUG", True),
        SettingsOverride(
            "DATABASES", _SQLITE_MEMORY, comment="Use an in-memory database for faster tests"
        ),
        SettingsOverride(
            "MIGRATION_MODULES", PyExpr("DisableMigrations()"), prelude=_DISABLE_MIGRATIONS
        ),
        SettingsOverride(
            "EMAIL_BACKEND",
            "django.core.mail.backends.console.EmailBackend",
            comment="Use console email backend for testing",
        ),
        SettingsOverride(
            "SECURE_CSP_REPORT_ONLY",
            {
                "default-src": _SELF,
                "script-src": [_SELF, _UNSAFE_INLINE],
                "style-src": [_SELF, _UNSAFE_INLINE],
                "img-src": [_SELF, "data:"],
                "font-src": [_SELF],
                "connect-src": [_SELF],
                "frame-ancestors": [_NONE],
            },
            comment="Content Security Policy for testing",
        ),
        SettingsOverride(
            "TASKS",
            {
                "default": {
                    "BACKEND": "django.tasks.backends.testing.TestingBackend",
                    "OPTIONS": {},
                }
            },
            comment="Background Tasks Framework for testing",
        ),
    ),
)

VARIANTS: dict[str, SettingsVariant] = {
    v.name: v for v in (LOCAL, STAGING, PRODUCTION, TESTING)
}
