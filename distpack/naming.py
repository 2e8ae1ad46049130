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

"""Artifact file naming.

Artifact names are expanded from a pattern (default
``${productName}-${version}-${arch}.${ext}``). Package formats disagree on
architecture names, so the arch is aliased per extension:

    +-------+----------------------+----------------------------+
    | arch  | extension            | rendered as                |
    +-------+----------------------+----------------------------+
    | x64   | AppImage, rpm        | x86_64                     |
    | x64   | deb, snap            | amd64                      |
    | ia32  | deb, AppImage, snap  | i386                       |
    | ia32  | pacman, rpm          | i686                       |
    +-------+----------------------+----------------------------+

On macOS the architecture never appears in artifact names. x64 is left
out by default since it is the common case.

Example:
    >>> expand_artifact_name_pattern(info, Platform.LINUX, "deb", Arch.x64,
    ...                              skip_arch_if_x64=False)
    'Foo App-1.2.3-amd64.deb'
"""

from __future__ import annotations

import re
from typing import Any

from distpack.appinfo import AppInfo
from distpack.arch import Arch, Platform
from distpack.macros import expand_macro

__all__ = [
    "DEFAULT_ARTIFACT_PATTERN",
    "DEFAULT_SAFE_PATTERN",
    "compute_artifact_name",
    "compute_safe_artifact_name",
    "expand_artifact_name_pattern",
    "generate_name",
    "get_arch_alias",
    "is_safe_github_name",
    "normalize_ext",
]

DEFAULT_ARTIFACT_PATTERN = "${productName}-${version}-${arch}.${ext}"
DEFAULT_SAFE_PATTERN = "${name}-${version}-${arch}.${ext}"

_SAFE_NAME = re.compile(r"^[0-9A-Za-z._-]+$")


def is_safe_github_name(name: str) -> bool:
    """Return True if name only uses characters release hosts accept."""
    return _SAFE_NAME.match(name) is not None


def normalize_ext(ext: str) -> str:
    """Remove a leading dot from an extension."""
    return ext[1:] if ext.startswith(".") else ext


def get_arch_alias(arch: Arch | None, ext: str) -> str | None:
    """Architecture name as used by the package format of ext."""
    if arch is None:
        return None
    if arch is Arch.x64:
        if ext in ("AppImage", "rpm"):
            return "x86_64"
        if ext in ("deb", "snap"):
            return "amd64"
    elif arch is Arch.ia32:
        if ext in ("deb", "AppImage", "snap"):
            return "i386"
        if ext in ("pacman", "rpm"):
            return "i686"
    return arch.value


def compute_artifact_name(
    pattern: str,
    ext: str,
    arch: Arch | None,
    app_info: AppInfo,
    platform: Platform,
    extra: dict[str, str] | None = None,
) -> str:
    """Expand pattern with the per-format arch alias."""
    arch_name = None if platform is Platform.MAC else get_arch_alias(arch, ext)
    return expand_macro(
        pattern,
        arch_name,
        app_info,
        {"os": platform.build_configuration_key, **(extra or {}), "ext": ext},
    )


def expand_artifact_name_pattern(
    app_info: AppInfo,
    platform: Platform,
    ext: str,
    arch: Arch | None = None,
    *,
    target_options: dict[str, Any] | None = None,
    platform_options: dict[str, Any] | None = None,
    config: dict[str, Any] | None = None,
    default_pattern: str | None = None,
    skip_arch_if_x64: bool = True,
) -> str:
    """Artifact name for a target.

    The pattern is taken from the first of: target options, platform
    options, top-level configuration (``artifact_name``), default_pattern,
    and the built-in default.
    """
    pattern = (target_options or {}).get("artifact_name")
    if pattern is None:
        pattern = (
            (platform_options or {}).get("artifact_name")
            or (config or {}).get("artifact_name")
            or default_pattern
            or DEFAULT_ARTIFACT_PATTERN
        )
    if skip_arch_if_x64 and arch is Arch.x64:
        arch = None
    return compute_artifact_name(pattern, ext, arch, app_info, platform)


def compute_safe_artifact_name(
    suggested_name: str | None,
    ext: str,
    app_info: AppInfo,
    platform: Platform,
    arch: Arch | None = None,
    *,
    skip_arch_if_x64: bool = True,
    safe_pattern: str = DEFAULT_SAFE_PATTERN,
) -> str | None:
    """Name restricted to safe characters, or None if suggested_name is safe.

    The safe name uses the package name (not the product name) so it never
    contains spaces.
    """
    if suggested_name is not None and is_safe_github_name(suggested_name):
        return None
    if skip_arch_if_x64 and arch is Arch.x64:
        arch = None
    return compute_artifact_name(safe_pattern, ext, arch, app_info, platform)


def generate_name(
    app_info: AppInfo,
    ext: str | None,
    classifier: str | None = None,
    deployment: bool = False,
) -> str:
    """Conventional ``name-version[-classifier].ext`` artifact name.

    Debian packages use ``_`` as separator. Deployment names use the
    package name instead of the product file name.
    """
    dot_ext = "" if ext is None else f".{ext}"
    separator = "_" if ext == "deb" else "-"
    base = app_info.name if deployment else app_info.product_filename
    suffix = "" if classifier is None else f"{separator}{classifier}"
    return f"{base}{separator}{app_info.version}{suffix}{dot_ext}"
