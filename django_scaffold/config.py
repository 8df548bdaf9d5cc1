"""django-scaffold configuration.

Centralised, typed configuration for a scaffolding run. All settings use
Pydantic v2 models so they can be validated at construction time and loaded
from JSON, YAML or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class CredentialsMode(str, Enum):
    """How ``credentials/.env`` relates to the canonical root ``.env``."""

    SYMLINK = "symlink"
    COPY = "copy"


class EnvFileConfig(BaseModel):
    """Default values written into the generated ``.env`` file.

    The secret key is not stored here: it is generated once per run and
    injected as a template parameter.
    """

    debug: bool = Field(default=True)
    allowed_hosts: list[str] = Field(
        default_factory=lambda: ["localhost", "127.0.0.1", ".localhost"]
    )
    db_engine: str = Field(default="django.db.backends.sqlite3")
    db_name: str = Field(default="db.sqlite3")
    db_user: str = Field(default="")
    db_password: str = Field(default="")
    db_host: str = Field(default="")
    db_port: str = Field(default="")
    email_host: str = Field(default="smtp.gmail.com")
    email_port: int = Field(default=587)
    email_host_user: str = Field(default="your-email@gmail.com")
    email_host_password: str = Field(default="your-app-password")
    email_use_tls: bool = Field(default=True)
    redis_url: str = Field(default="redis://127.0.0.1:6379/0")
    log_level: str = Field(default="INFO")
    time_zone: str = Field(default="UTC")


class TimeoutConfig(BaseModel):
    """Per-command-class timeouts in seconds."""

    install: int = Field(
        default=900, ge=30, description="Package installation commands (network bound)"
    )
    command: int = Field(default=300, ge=10, description="Every other external command")
    probe: int = Field(default=30, ge=1, description="Prerequisite probes")


class ScaffoldConfig(BaseModel):
    """Global configuration for one scaffolding run.

    Instances are created once by the CLI entry point (or by tests) and then
    threaded through every pipeline step via the step context.
    """

    root: Path = Field(default=Path("./django_template"))
    project_name: str = Field(default="config", description="Django project package name")
    python: str = Field(default="python3", description="Interpreter used to create the venv")
    django_requirement: str = Field(default="Django~=6.0.0")
    venv_dir: str = Field(default=".venv")
    secret_length: int = Field(default=50, ge=16)
    assume_yes: bool = Field(default=False, description="Answer yes to every prompt")
    skip_existing: bool = Field(
        default=False, description="Never overwrite existing files, even top-level ones"
    )
    credentials_mode: CredentialsMode = Field(default=CredentialsMode.SYMLINK)
    dry_run: bool = Field(default=False)
    env: EnvFileConfig = Field(default_factory=EnvFileConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    @field_validator("project_name")
    @classmethod
    def _valid_package_name(cls, value: str) -> str:
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", value):
            raise ValueError(f"'{value}' is not a valid Python package name")
        return value

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def venv_path(self) -> Path:
        return self.root / self.venv_dir

    @property
    def venv_bin(self) -> Path:
        """``Scripts`` on Windows, ``bin`` everywhere else."""
        if sys.platform == "win32":
            return self.venv_path / "Scripts"
        return self.venv_path / "bin"

    @property
    def venv_python(self) -> Path:
        name = "python.exe" if sys.platform == "win32" else "python"
        return self.venv_bin / name

    @property
    def package_path(self) -> Path:
        """The inner Django project package (``<root>/<project_name>``)."""
        return self.root / self.project_name

    @property
    def manage_py(self) -> Path:
        return self.root / "manage.py"

    @property
    def env_file(self) -> Path:
        return self.root / ".env"

    @property
    def settings_module(self) -> str:
        """Default ``DJANGO_SETTINGS_MODULE`` value (the local variant)."""
        return f"{self.project_name}.settings.local"

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration as JSON or YAML (by file suffix)."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.suffix in (".yml", ".yaml"):
            data = self.model_dump(mode="json")
            target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        else:
            target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "ScaffoldConfig":
        """Load a configuration file written by :meth:`save` (JSON or YAML)."""
        source = Path(path)
        raw = source.read_text(encoding="utf-8")
        if source.suffix in (".yml", ".yaml"):
            return cls.model_validate(yaml.safe_load(raw) or {})
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls, **overrides: Any) -> "ScaffoldConfig":
        """Build a ``ScaffoldConfig`` from environment variables.

        Recognised variables (all optional):
            DJS_ROOT, DJS_PROJECT_NAME, DJS_PYTHON, DJS_ASSUME_YES,
            DJS_SECRET_LENGTH, DJS_CREDENTIALS_MODE, DJS_INSTALL_TIMEOUT.

        Keyword *overrides* win over the environment.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("DJS_ROOT"):
            kwargs["root"] = Path(os.environ["DJS_ROOT"])
        if os.environ.get("DJS_PROJECT_NAME"):
            kwargs["project_name"] = os.environ["DJS_PROJECT_NAME"]
        if os.environ.get("DJS_PYTHON"):
            kwargs["python"] = os.environ["DJS_PYTHON"]
        if os.environ.get("DJS_ASSUME_YES"):
            kwargs["assume_yes"] = _truthy(os.environ["DJS_ASSUME_YES"])
        if os.environ.get("DJS_SECRET_LENGTH"):
            kwargs["secret_length"] = int(os.environ["DJS_SECRET_LENGTH"])
        if os.environ.get("DJS_CREDENTIALS_MODE"):
            kwargs["credentials_mode"] = CredentialsMode(os.environ["DJS_CREDENTIALS_MODE"])
        if os.environ.get("DJS_INSTALL_TIMEOUT"):
            kwargs["timeouts"] = TimeoutConfig(install=int(os.environ["DJS_INSTALL_TIMEOUT"]))

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "on")
