"""
Tests for distpack.macros and distpack.appinfo modules.

Tests macro expansion including:
- Application metadata macros
- Architecture placeholder removal
- Environment and author macros
- Unknown macros (strict and lenient)
- Product name sanitizing
"""

from __future__ import annotations

import pytest

from distpack.appinfo import AppInfo, load_app_metadata, sanitize_file_name
from distpack.exceptions import ConfigError, UnknownMacroError
from distpack.macros import expand_macro

pytestmark = pytest.mark.unit


class TestExpandMacro:
    """Tests for expand_macro()."""

    def test_expands_metadata_and_extra(self, app_info):
        """Test that metadata macros and extra values are substituted."""
        result = expand_macro(
            "${productName}-${version}-${arch}.${ext}", "x64", app_info, {"ext": "zip"}
        )

        assert result == "Foo App-1.2.3-x64.zip"

    def test_missing_arch_removes_separator(self, app_info):
        """Test that ${arch} and its leading separator vanish without an arch."""
        assert expand_macro("${name}-${arch}.${ext}", None, app_info, {"ext": "deb"}) == "foo-app.deb"
        assert expand_macro("${name}_${arch}", None, app_info) == "foo-app"
        assert expand_macro("out/${arch}/x", None, app_info) == "out/x"

    def test_author_macro(self, app_info):
        """Test that ${author} uses the company name."""
        assert expand_macro("${author}", None, app_info) == "Foo Corp"

    def test_author_missing_raises(self):
        """Test that ${author} without a company name is a config error."""
        info = AppInfo(name="foo", product_name="Foo", version="1.0.0")

        with pytest.raises(ConfigError, match="author is not specified"):
            expand_macro("${author}", None, info)

    def test_env_macro(self, app_info, monkeypatch):
        """Test that ${env.NAME} reads the environment."""
        monkeypatch.setenv("DISTPACK_TEST_CHANNEL", "beta")

        assert expand_macro("${env.DISTPACK_TEST_CHANNEL}", None, app_info) == "beta"

    def test_env_macro_undefined_raises(self, app_info, monkeypatch):
        """Test that an undefined environment variable is a config error."""
        monkeypatch.delenv("DISTPACK_UNDEFINED_VAR", raising=False)

        with pytest.raises(ConfigError, match="DISTPACK_UNDEFINED_VAR"):
            expand_macro("${env.DISTPACK_UNDEFINED_VAR}", None, app_info)

    def test_unknown_macro_raises(self, app_info):
        """Test that an unknown placeholder raises UnknownMacroError."""
        with pytest.raises(UnknownMacroError) as exc_info:
            expand_macro("${nope}-${version}", None, app_info)

        assert exc_info.value.macro == "nope"
        assert isinstance(exc_info.value, ConfigError)

    def test_unknown_macro_lenient_kept(self, app_info):
        """Test that lenient expansion keeps unknown placeholders."""
        assert expand_macro("${nope}/${version}", None, app_info, lenient=True) == "${nope}/1.2.3"

    def test_plain_braces_untouched(self, app_info):
        """Test that glob alternation without $ survives expansion."""
        assert expand_macro("dist{,/**/*}", None, app_info) == "dist{,/**/*}"

    def test_channel_defaults_to_latest(self, app_info):
        """Test that ${channel} falls back to latest."""
        assert expand_macro("${channel}", None, app_info) == "latest"

    def test_product_name_sanitized(self):
        """Test that ${productName} is made filesystem-safe by default."""
        info = AppInfo(name="foo", product_name='Foo: "App"', version="1.0.0")

        assert expand_macro("${productName}", None, info) == "Foo App"
        assert (
            expand_macro("${productName}", None, info, is_product_name_sanitized=False)
            == 'Foo: "App"'
        )


class TestAppInfo:
    """Tests for AppInfo construction."""

    def test_from_metadata(self, sample_package):
        """Test reading values from a package descriptor."""
        info = AppInfo.from_metadata(sample_package)

        assert info.name == "foo-app"
        assert info.product_name == "Foo App"
        assert info.version == "1.2.3"
        assert info.build_version == "1.2.3"
        assert info.company_name == "Foo Corp"
        assert info.main == "index.js"

    def test_config_overrides(self, sample_package):
        """Test that product_name and extra_metadata from config win."""
        config = {
            "product_name": "Bar",
            "build_version": "42",
            "extra_metadata": {"version": "2.0.0", "author": {"name": "Bar Inc"}},
        }

        info = AppInfo.from_metadata(sample_package, config)

        assert info.product_name == "Bar"
        assert info.version == "2.0.0"
        assert info.build_version == "42"
        assert info.company_name == "Bar Inc"

    def test_missing_version_raises(self):
        """Test that a descriptor without a version is rejected."""
        with pytest.raises(ConfigError, match="version"):
            AppInfo.from_metadata({"name": "foo"})

    def test_load_app_metadata_missing(self, tmp_test_dir):
        """Test that a missing package descriptor is a config error."""
        with pytest.raises(ConfigError, match="does not exist"):
            load_app_metadata(tmp_test_dir)

    def test_load_app_metadata_invalid_json(self, tmp_test_dir):
        """Test that a malformed package descriptor is a config error."""
        (tmp_test_dir / "package.json").write_text("{not json")

        with pytest.raises(ConfigError, match="Cannot parse"):
            load_app_metadata(tmp_test_dir)

    def test_sanitize_file_name(self):
        """Test removal of illegal characters and reserved names."""
        assert sanitize_file_name("a/b\\c?d") == "abcd"
        assert sanitize_file_name("name. ") == "name"
        assert sanitize_file_name("CON") == ""
