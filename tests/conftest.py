"""
Pytest configuration and shared fixtures for distpack tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

import json
from pathlib import Path
import sys
from typing import Any

import pytest
import yaml

from distpack.appinfo import AppInfo
from distpack.logging import SilentLogger, set_global_logger


@pytest.fixture(autouse=True)
def reset_global_logger():
    """Keep the global logger silent between tests (the CLI replaces it)."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def sample_package() -> dict[str, Any]:
    """Provide a minimal package descriptor."""
    return {
        "name": "foo-app",
        "productName": "Foo App",
        "version": "1.2.3",
        "description": "Test application",
        "main": "index.js",
        "author": "Foo Corp",
    }


@pytest.fixture
def app_info() -> AppInfo:
    """Provide application metadata matching sample_package."""
    return AppInfo(
        name="foo-app",
        product_name="Foo App",
        version="1.2.3",
        build_version="1.2.3",
        company_name="Foo Corp",
    )


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("distpack.yml", {"key": "value"})
    """

    def _create(filename: str, data: Any) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture
def create_app_project(tmp_test_dir: Path, sample_package: dict[str, Any]):
    """
    Factory fixture for creating an application project on disk.

    The project gets a package descriptor, an entry file, any extra files
    given as ``{relative_path: content}``, and an optional distpack.yml.

    Usage:
        project = create_app_project(files={"lib/a.js": "x"}, config={"archive": False})
    """

    def _create(
        name: str = "project",
        *,
        package: dict[str, Any] | None = None,
        files: dict[str, str | bytes] | None = None,
        config: dict[str, Any] | None = None,
    ) -> Path:
        project = tmp_test_dir / name
        project.mkdir(parents=True, exist_ok=True)
        descriptor = {**sample_package, **(package or {})}
        (project / "package.json").write_text(json.dumps(descriptor), encoding="utf-8")
        (project / "index.js").write_text("console.log('hello')\n", encoding="utf-8")

        for relative, content in (files or {}).items():
            path = project / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")

        if config is not None:
            with (project / "distpack.yml").open("w", encoding="utf-8") as f:
                yaml.dump(config, f)
        return project

    return _create


@pytest.fixture
def create_fake_tool(tmp_test_dir: Path):
    """
    Factory fixture for creating an executable that prints fixed output.

    Usage:
        tool = create_fake_tool("icon-tool", stdout='{"icons": []}')
    """
    if sys.platform == "win32":
        pytest.skip("fake tools are POSIX shell scripts")

    def _create(name: str, stdout: str = "", exit_code: int = 0, stderr: str = "") -> Path:
        tools_dir = tmp_test_dir / "tools"
        tools_dir.mkdir(exist_ok=True)
        path = tools_dir / name
        script = "#!/bin/sh\n"
        if stdout:
            script += f"cat <<'EOF'\n{stdout}\nEOF\n"
        if stderr:
            script += f"echo '{stderr}' 1>&2\n"
        script += f"exit {exit_code}\n"
        path.write_text(script, encoding="utf-8")
        path.chmod(0o755)
        return path

    return _create
