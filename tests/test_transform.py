"""
Tests for distpack.transform module.

Tests content transformers including:
- Application descriptor rewriting (extra metadata, dev fields)
- Dependency descriptor cleanup
- Transformer chain priority
"""

from __future__ import annotations

import json

import pytest

from distpack.exceptions import PackagingError
from distpack.transform import (
    FileTransformer,
    MetadataTransformer,
    TransformerChain,
    create_main_transformer,
    deep_assign,
)

pytestmark = pytest.mark.unit


def _encode(data: dict) -> bytes:
    return json.dumps(data).encode("utf-8")


class FixedTransformer(FileTransformer):
    def __init__(self, result: bytes | None) -> None:
        self.result = result
        self.calls = 0

    def transform(self, dest_relative: str, data: bytes) -> bytes | None:
        self.calls += 1
        return self.result


class TestMetadataTransformer:
    """Tests for MetadataTransformer."""

    def test_handles_only_descriptors(self):
        """Test that only package.json files are read."""
        transformer = MetadataTransformer()

        assert transformer.handles("package.json")
        assert transformer.handles("node_modules/a/package.json")
        assert not transformer.handles("index.js")

    def test_dev_fields_removed(self):
        """Test that development-only fields are stripped from the app descriptor."""
        data = _encode(
            {"name": "app", "version": "1.0.0", "devDependencies": {"x": "1"}, "scripts": {"t": "x"}}
        )

        result = json.loads(MetadataTransformer().transform("package.json", data))

        assert result == {"name": "app", "version": "1.0.0"}

    def test_extra_metadata_merged(self):
        """Test that extra_metadata is deep-merged into the app descriptor."""
        data = _encode({"name": "app", "version": "1.0.0", "config": {"a": 1, "b": 2}})
        transformer = MetadataTransformer({"version": "2.0.0", "config": {"b": 3}})

        result = json.loads(transformer.transform("package.json", data))

        assert result["version"] == "2.0.0"
        assert result["config"] == {"a": 1, "b": 3}

    def test_unchanged_descriptor_returns_none(self):
        """Test that a clean descriptor is copied as-is."""
        data = _encode({"name": "app", "version": "1.0.0"})

        assert MetadataTransformer().transform("package.json", data) is None

    def test_nested_app_descriptor_untouched(self):
        """Test that descriptors outside the root and dependencies are kept."""
        data = _encode({"name": "x", "scripts": {}})

        assert MetadataTransformer().transform("src/package.json", data) is None

    def test_module_descriptor_cleaned(self):
        """Test that install bookkeeping is removed from dependencies."""
        data = _encode({"name": "dep", "_resolved": "url", "_integrity": "sha", "gitHead": "abc"})

        result = json.loads(MetadataTransformer().transform("node_modules/dep/package.json", data))

        assert result == {"name": "dep"}

    def test_invalid_module_descriptor_copied(self):
        """Test that unreadable dependency descriptors are left alone."""
        assert MetadataTransformer().transform("node_modules/dep/package.json", b"{oops") is None

    def test_invalid_app_descriptor_raises(self):
        """Test that an unreadable app descriptor is an error."""
        with pytest.raises(PackagingError, match="Cannot parse"):
            MetadataTransformer({"a": 1}).transform("package.json", b"{oops")


class TestTransformerChain:
    """Tests for TransformerChain."""

    def test_first_non_none_wins(self):
        """Test that transformers are consulted in order."""
        first = FixedTransformer(None)
        second = FixedTransformer(b"second")
        third = FixedTransformer(b"third")

        chain = TransformerChain([first, None, second, third])

        assert chain.transform("a.txt", b"x") == b"second"
        assert (first.calls, second.calls, third.calls) == (1, 1, 0)

    def test_empty_chain(self):
        """Test that an empty chain is falsy and changes nothing."""
        chain = TransformerChain([None])

        assert not chain
        assert not chain.handles("a.txt")
        assert chain.transform("a.txt", b"x") is None

    def test_main_transformer_uses_extra_metadata(self):
        """Test the transformer chain created from configuration."""
        chain = create_main_transformer({"extra_metadata": {"main": "dist/main.js"}})

        result = json.loads(chain.transform("package.json", _encode({"name": "a", "version": "1"})))

        assert result["main"] == "dist/main.js"


def test_deep_assign():
    """Test recursive dict merging with replacement of other values."""
    target = {"a": {"b": 1, "c": [1, 2]}, "d": 1}

    deep_assign(target, {"a": {"c": [3]}, "d": {"x": 1}})

    assert target == {"a": {"b": 1, "c": [3]}, "d": {"x": 1}}
