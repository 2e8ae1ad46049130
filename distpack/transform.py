# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Content transformers applied while computing file sets.

A transformer receives a destination-relative path and the raw bytes of
the source file and returns replacement bytes, or None to copy the file
unchanged. Transformers are combined in a TransformerChain that consults
them in priority order; the first non-None result wins.

The main transformer rewrites package descriptors:
    - the application descriptor (``package.json`` at the app root) gets
      ``extra_metadata`` merged in and development-only fields removed
    - dependency descriptors (``node_modules/**/package.json``) have
      install-time bookkeeping fields removed
"""

from __future__ import annotations

from collections.abc import Sequence
import json
from pathlib import PurePosixPath
from typing import Any

from distpack.appinfo import PACKAGE_DESCRIPTOR
from distpack.exceptions import PackagingError

__all__ = [
    "FileTransformer",
    "MetadataTransformer",
    "TransformerChain",
    "create_main_transformer",
    "deep_assign",
]

# Fields only meaningful during development or installation.
_DEV_FIELDS = ("devDependencies", "scripts", "build", "directories")
_MODULE_FIELDS = ("scripts", "devDependencies", "files", "directories", "gitHead")


def deep_assign(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """Merge source into target recursively (dicts merged, others replaced)."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_assign(target[key], value)
        else:
            target[key] = value
    return target


class FileTransformer:
    """Base class for content transformers."""

    def handles(self, dest_relative: str) -> bool:
        """Return True if transform() needs the bytes of this file.

        Files not handled by any transformer are copied without being read.
        """
        return True

    def transform(self, dest_relative: str, data: bytes) -> bytes | None:
        """Return new content for the file, or None to keep it unchanged."""
        return None


class MetadataTransformer(FileTransformer):
    """Rewrite package descriptors in the application tree.

    Args:
        extra_metadata: Values merged into the application descriptor.
    """

    def __init__(self, extra_metadata: dict[str, Any] | None = None) -> None:
        self.extra_metadata = extra_metadata or {}

    def handles(self, dest_relative: str) -> bool:
        return PurePosixPath(dest_relative).name == PACKAGE_DESCRIPTOR

    def transform(self, dest_relative: str, data: bytes) -> bytes | None:
        path = PurePosixPath(dest_relative)
        if path.name != PACKAGE_DESCRIPTOR:
            return None

        if len(path.parts) == 1:
            return self._transform_app_descriptor(dest_relative, data)
        if "node_modules" in path.parts:
            return self._clean_module_descriptor(dest_relative, data)
        return None

    def _load(self, dest_relative: str, data: bytes) -> dict[str, Any]:
        try:
            descriptor = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise PackagingError(f"Cannot parse {dest_relative}: {err}") from err
        if not isinstance(descriptor, dict):
            raise PackagingError(f"{dest_relative} must contain a JSON object")
        return descriptor

    def _transform_app_descriptor(self, dest_relative: str, data: bytes) -> bytes | None:
        descriptor = self._load(dest_relative, data)
        has_dev_fields = any(field in descriptor for field in _DEV_FIELDS)
        if not self.extra_metadata and not has_dev_fields:
            return None

        deep_assign(descriptor, json.loads(json.dumps(self.extra_metadata)))
        for field in _DEV_FIELDS:
            descriptor.pop(field, None)
        return json.dumps(descriptor, indent=2).encode("utf-8")

    def _clean_module_descriptor(self, dest_relative: str, data: bytes) -> bytes | None:
        try:
            descriptor = self._load(dest_relative, data)
        except PackagingError:
            # third-party descriptors are copied as-is when unreadable
            return None

        removed = [
            key
            for key in list(descriptor)
            if key.startswith("_") or key in _MODULE_FIELDS
        ]
        if not removed:
            return None
        for key in removed:
            del descriptor[key]
        return json.dumps(descriptor, indent=2).encode("utf-8")


class TransformerChain(FileTransformer):
    """Transformers consulted in priority order; first non-None result wins."""

    def __init__(self, transformers: Sequence[FileTransformer | None] = ()) -> None:
        self.transformers = [t for t in transformers if t is not None]

    def __bool__(self) -> bool:
        return bool(self.transformers)

    def handles(self, dest_relative: str) -> bool:
        return any(t.handles(dest_relative) for t in self.transformers)

    def transform(self, dest_relative: str, data: bytes) -> bytes | None:
        for transformer in self.transformers:
            if not transformer.handles(dest_relative):
                continue
            result = transformer.transform(dest_relative, data)
            if result is not None:
                return result
        return None


def create_main_transformer(config: dict[str, Any]) -> TransformerChain:
    """Transformer chain applied to the main application file set."""
    return TransformerChain([MetadataTransformer(config.get("extra_metadata"))])
