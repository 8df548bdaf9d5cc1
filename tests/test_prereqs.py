"""Unit tests for the prerequisite checker (django_scaffold.prereqs)."""

from __future__ import annotations

import sys

import pytest

from django_scaffold.prereqs import (
    CheckStatus,
    PrerequisiteChecker,
    ToolRequirement,
    default_requirements,
    parse_version,
    version_in_range,
)


def _python_requirement(**kwargs) -> ToolRequirement:
    base = dict(
        name="python",
        probe=[sys.executable, "--version"],
        version_command=[sys.executable, "--version"],
    )
    base.update(kwargs)
    return ToolRequirement(**base)


class TestVersionHelpers:
    @pytest.mark.unit
    def test_parse_version(self):
        assert parse_version("Python 3.12.4") == (3, 12, 4)
        assert parse_version("pip 24.0 from /usr/lib") == (24, 0)
        assert parse_version("no version here") is None

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "version, expected",
        [
            ((3, 11, 0), True),
            ((3, 13, 11), True),
            ((3, 10, 14), False),
            ((3, 14, 0), False),
        ],
    )
    def test_inclusive_range(self, version, expected):
        assert version_in_range(version, "3.11", "3.13") is expected

    @pytest.mark.unit
    def test_open_bounds(self):
        assert version_in_range((1, 0), None, None)
        assert version_in_range((9, 9), "1.0", None)


class TestDefaultRequirements:
    @pytest.mark.unit
    def test_order_and_hints(self):
        reqs = default_requirements("python3.12")
        assert [r.name for r in reqs] == ["python3.12", "pip", "venv"]
        assert reqs[0].min_version == "3.11"
        assert reqs[0].max_version == "3.13"
        assert "pyenv" in reqs[0].install_hint
        assert reqs[2].probe == ["python3.12", "-m", "venv", "--help"]
        assert "python3-venv" in reqs[2].install_hint


class TestChecker:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_satisfied(self):
        major, minor = sys.version_info[:2]
        req = _python_requirement(min_version=f"{major}.{minor}", max_version=f"{major}.{minor}")
        result = await PrerequisiteChecker().check(req)
        assert result.status is CheckStatus.SATISFIED
        assert result.ok
        assert result.version.startswith(f"{major}.{minor}")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_version_mismatch(self):
        req = _python_requirement(min_version="2.0", max_version="2.7")
        result = await PrerequisiteChecker().check(req)
        assert result.status is CheckStatus.VERSION_MISMATCH
        assert result.version is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_binary(self):
        req = ToolRequirement(name="ghost", probe=["ghost-tool-djs", "--version"], install_hint="get it")
        result = await PrerequisiteChecker().check(req)
        assert result.status is CheckStatus.MISSING

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nonzero_probe_is_missing(self):
        req = ToolRequirement(name="venv", probe=[sys.executable, "-c", "raise SystemExit(1)"])
        result = await PrerequisiteChecker().check(req)
        assert result.status is CheckStatus.MISSING

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unparseable_version_is_mismatch(self):
        req = _python_requirement(
            version_command=[sys.executable, "-c", "print('unknown')"], min_version="3.0"
        )
        result = await PrerequisiteChecker().check(req)
        assert result.status is CheckStatus.VERSION_MISMATCH

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_check_all_stops_at_first_missing(self):
        reqs = [
            ToolRequirement(name="ghost", probe=["ghost-tool-djs"]),
            _python_requirement(),
        ]
        results = await PrerequisiteChecker().check_all(reqs)
        assert len(results) == 1
        assert results[0].status is CheckStatus.MISSING
