"""
Tests for distpack.cli module.

Tests the command-line interface including:
- build, validate, list, verify and name commands
- Exit codes
- Error reporting
"""

from __future__ import annotations

import pytest

from distpack.cli import main

pytestmark = pytest.mark.unit


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestBuildCommand:
    """Tests for 'distpack build'."""

    def test_build_success(self, create_app_project, capsys):
        """Test a successful build and its summary."""
        project = create_app_project()

        code = _run(["build", str(project), "--platform", "linux"])

        out = capsys.readouterr().out
        assert code == 0
        assert "BUILD RESULTS" in out
        assert "[SUCCESS]" in out
        assert (project / "dist" / "linux-unpacked" / "resources" / "app.asar").is_file()

    def test_build_output_dir(self, create_app_project, tmp_test_dir):
        """Test that --output-dir relocates the output."""
        project = create_app_project()
        out_dir = tmp_test_dir / "out"

        code = _run(["build", str(project), "--platform", "linux", "--arch", "arm64", "--output-dir", str(out_dir)])

        assert code == 0
        assert (out_dir / "linux-arm64-unpacked" / "resources" / "app.asar").is_file()

    def test_missing_project(self, tmp_test_dir, capsys):
        """Test that a missing project directory is an error."""
        code = _run(["build", str(tmp_test_dir / "missing")])

        assert code == 1
        assert "Project directory not found" in capsys.readouterr().out

    def test_config_error(self, create_app_project, capsys):
        """Test that configuration errors exit with 1."""
        project = create_app_project(config={"archive": {"unpack_dir": "lib"}})

        code = _run(["build", str(project), "--platform", "linux"])

        assert code == 1
        assert "Error: archive.unpack_dir is deprecated" in capsys.readouterr().out


class TestArchiveCommands:
    """Tests for 'distpack list' and 'distpack verify'."""

    @pytest.fixture
    def built_archive(self, create_app_project):
        project = create_app_project(files={"lib/native.node": b"\x7fELF"})
        assert _run(["build", str(project), "--platform", "linux"]) == 0
        return project / "dist" / "linux-unpacked" / "resources" / "app.asar"

    def test_list(self, built_archive, capsys):
        """Test that archive paths are printed one per line."""
        capsys.readouterr()

        code = _run(["list", str(built_archive)])

        assert code == 0
        assert capsys.readouterr().out.splitlines() == ["index.js", "lib/native.node", "package.json"]

    def test_list_details(self, built_archive, capsys):
        """Test that --details marks unpacked files."""
        capsys.readouterr()

        _run(["list", str(built_archive), "--details"])

        lines = capsys.readouterr().out.splitlines()
        assert "lib/native.node  4 [unpacked]" in lines

    def test_verify(self, built_archive, capsys):
        """Test that a freshly built archive verifies."""
        capsys.readouterr()

        code = _run(["verify", str(built_archive)])

        assert code == 0
        assert "[SUCCESS]" in capsys.readouterr().out

    def test_verify_detects_modification(self, built_archive, capsys):
        """Test that modifying an unpacked file fails verification."""
        (built_archive.parent / "app.asar.unpacked" / "lib" / "native.node").write_bytes(b"XXXX")
        capsys.readouterr()

        code = _run(["verify", str(built_archive)])

        assert code == 1
        assert "[FAILED]" in capsys.readouterr().out

    def test_list_not_an_archive(self, tmp_test_dir, capsys):
        """Test that invalid files are reported as errors."""
        path = tmp_test_dir / "bogus.asar"
        path.write_bytes(b"not an archive at all")

        code = _run(["list", str(path)])

        assert code == 1
        assert capsys.readouterr().out.startswith("Error:")


class TestValidateCommand:
    """Tests for 'distpack validate'."""

    def test_valid(self, create_yaml_file, capsys):
        """Test a valid configuration."""
        path = create_yaml_file("distpack.yml", {"compression": "store"})

        code = _run(["validate", str(path)])

        assert code == 0
        assert "[SUCCESS] Configuration is valid!" in capsys.readouterr().out

    def test_invalid(self, create_yaml_file, capsys):
        """Test that errors are listed and the exit code is 1."""
        path = create_yaml_file("distpack.yml", {"compression": "ultra"})

        code = _run(["validate", str(path)])

        out = capsys.readouterr().out
        assert code == 1
        assert "[X] compression must be one of" in out
        assert "[FAILED]" in out


class TestNameCommand:
    """Tests for 'distpack name'."""

    def test_name_with_safe_variant(self, create_app_project, capsys):
        """Test that unsafe names are followed by the safe name."""
        project = create_app_project()

        code = _run(["name", "deb", "--project-dir", str(project), "--platform", "linux", "--arch", "arm64"])

        assert code == 0
        assert capsys.readouterr().out.splitlines() == [
            "Foo App-1.2.3-arm64.deb",
            "safe: foo-app-1.2.3-arm64.deb",
        ]

    def test_name_unknown_macro(self, create_app_project, capsys):
        """Test that unknown macros are reported as errors."""
        project = create_app_project()

        code = _run(["name", "zip", "--project-dir", str(project), "--pattern", "${build}.${ext}"])

        assert code == 1
        assert "Error:" in capsys.readouterr().out
