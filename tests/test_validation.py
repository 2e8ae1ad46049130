"""
Tests for distpack.validation module.

Tests configuration validation including:
- YAML syntax and structure
- Deprecated archive options
- File-list option shapes
- Compression levels, naming macros, targets and hooks
- Platform sections
- Unknown keys reported as warnings
"""

from __future__ import annotations

import pytest

from distpack.validation import validate_config

pytestmark = pytest.mark.unit


class TestValidateConfig:
    """Tests for validate_config() on the file level."""

    def test_valid_config(self, create_yaml_file):
        """Test that a well-formed configuration is valid."""
        path = create_yaml_file(
            "distpack.yml",
            {
                "product_name": "Foo App",
                "files": ["**/*", "!**/*.map"],
                "extra_resources": [{"from": "assets", "to": "assets", "filter": ["**/*"]}],
                "archive_unpack": ["**/*.node"],
                "artifact_name": "${productName}-${version}-${arch}.${ext}",
                "compression": "maximum",
                "targets": ["dir"],
                "after_pack": "hooks.py:after_pack",
                "linux": {"archive": {"smart_unpack": False}},
            },
        )

        result = validate_config(path)

        assert result.status == "valid"
        assert result.errors == []
        assert result.warnings == []
        assert result.config_path == str(path)

    def test_missing_file(self, tmp_test_dir):
        """Test that a missing file is reported, not raised."""
        result = validate_config(tmp_test_dir / "missing.yml")

        assert result.status == "invalid"
        assert "not found" in result.errors[0]

    def test_invalid_yaml(self, tmp_test_dir):
        """Test that YAML syntax errors are reported."""
        path = tmp_test_dir / "distpack.yml"
        path.write_text("files: [unclosed\n")

        result = validate_config(path)

        assert result.status == "invalid"
        assert "Invalid YAML syntax" in result.errors[0]

    def test_empty_file(self, tmp_test_dir):
        """Test that an empty file is invalid."""
        path = tmp_test_dir / "distpack.yml"
        path.write_text("")

        result = validate_config(path)

        assert result.errors == ["Configuration file is empty"]

    def test_non_mapping(self, tmp_test_dir):
        """Test that a YAML list is invalid."""
        path = tmp_test_dir / "distpack.yml"
        path.write_text("- a\n")

        result = validate_config(path)

        assert "mapping" in result.errors[0]

    def test_unknown_key_warns(self, create_yaml_file):
        """Test that unknown keys are warnings, not errors."""
        path = create_yaml_file("distpack.yml", {"prodcut_name": "typo"})

        result = validate_config(path)

        assert result.status == "valid"
        assert result.warnings == ["Unknown configuration key: prodcut_name"]


class TestOptionChecks:
    """Tests for individual option checks."""

    def test_deprecated_archive_keys(self, create_yaml_file):
        """Test that deprecated archive options are errors."""
        path = create_yaml_file(
            "distpack.yml",
            {"archive-unpack": "*.node", "archive": {"unpack_dir": "lib"}},
        )

        result = validate_config(path)

        assert result.status == "invalid"
        assert any("archive-unpack is deprecated" in e for e in result.errors)
        assert any("archive.unpack_dir is deprecated" in e for e in result.errors)

    def test_archive_wrong_type(self, create_yaml_file):
        """Test that archive must be a boolean or mapping."""
        path = create_yaml_file("distpack.yml", {"archive": "yes please"})

        result = validate_config(path)

        assert "archive must be a boolean or a mapping" in result.errors

    def test_archive_disabled_warns(self, create_yaml_file):
        """Test that disabling archiving is discouraged."""
        path = create_yaml_file("distpack.yml", {"archive": False})

        result = validate_config(path)

        assert result.status == "valid"
        assert any("archive is disabled" in w for w in result.warnings)

    def test_archive_unpack_mapping_rejected(self, create_yaml_file):
        """Test that archive_unpack takes patterns only."""
        path = create_yaml_file("distpack.yml", {"archive_unpack": [{"from": "lib"}]})

        result = validate_config(path)

        assert any("only glob patterns" in e for e in result.errors)

    def test_file_mapping_unknown_keys(self, create_yaml_file):
        """Test that mapping entries only accept from, to and filter."""
        path = create_yaml_file("distpack.yml", {"extra_files": [{"from": "a", "dest": "b"}]})

        result = validate_config(path)

        assert any("unknown keys in mapping entry: dest" in e for e in result.errors)

    def test_file_entry_wrong_type(self, create_yaml_file):
        """Test that file entries must be strings or mappings."""
        path = create_yaml_file("distpack.yml", {"files": [1]})

        result = validate_config(path)

        assert result.status == "invalid"

    def test_bad_compression(self, create_yaml_file):
        """Test that unknown compression levels are errors."""
        path = create_yaml_file("distpack.yml", {"compression": "ultra"})

        result = validate_config(path)

        assert any("compression must be one of" in e for e in result.errors)

    def test_unknown_artifact_macro(self, create_yaml_file):
        """Test that artifact names may only use known macros."""
        path = create_yaml_file("distpack.yml", {"artifact_name": "${productName}-${build}.${ext}"})

        result = validate_config(path)

        assert result.errors == ['artifact_name uses unknown macro "${build}"']

    def test_env_macro_allowed(self, create_yaml_file):
        """Test that ${env.NAME} is accepted in artifact names."""
        path = create_yaml_file("distpack.yml", {"artifact_name": "${name}-${env.BUILD_NUMBER}.${ext}"})

        assert validate_config(path).status == "valid"

    def test_unknown_target(self, create_yaml_file):
        """Test that unknown target names are errors."""
        path = create_yaml_file("distpack.yml", {"targets": ["dir", "msi"]})

        result = validate_config(path)

        assert result.errors == ["targets: unknown target 'msi'"]

    def test_hook_reference_format(self, create_yaml_file):
        """Test that hooks must be module:function references."""
        path = create_yaml_file("distpack.yml", {"after_sign": "notify"})

        result = validate_config(path)

        assert result.status == "invalid"
        assert "after_sign" in result.errors[0]

    def test_directories_must_be_mapping(self, create_yaml_file):
        """Test that directories must be a mapping."""
        path = create_yaml_file("distpack.yml", {"directories": "dist"})

        result = validate_config(path)

        assert "directories must be a mapping" in result.errors

    def test_platform_section_checked(self, create_yaml_file):
        """Test that platform sections get the same checks with a prefix."""
        path = create_yaml_file("distpack.yml", {"win": {"compression": "ultra"}, "mac": "oops"})

        result = validate_config(path)

        assert any(e.startswith("win.compression") for e in result.errors)
        assert "mac must be a mapping" in result.errors
