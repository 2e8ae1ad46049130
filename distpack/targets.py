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

"""Build targets.

A Target turns a packed application directory into one output format.
Targets are created once per build and invoked once per architecture.
Targets with ``concurrency_safe = True`` may run at the same time as
other targets; the others run one at a time after the concurrent batch.

Only the ``dir`` target ships with distpack. Other targets are referenced
in configuration by ``"module:ClassName"``.

Example:
    targets = create_targets(["dir", "mypkg.targets:TarballTarget"], out_dir, packager)
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from distpack.arch import Arch
from distpack.exceptions import ConfigError
from distpack.hooks import resolve_function
from distpack.logging import get_global_logger

__all__ = ["DirTarget", "Target", "create_targets", "TARGETS"]


class Target:
    """Base class for output format builders.

    Attributes:
        name: Target name as used in configuration.
        out_dir: Directory artifacts are written to.
        packager: PlatformPackager that owns the build.
        options: Target-specific options (the ``<name>`` config section).
        concurrency_safe: Class flag; True if build() may overlap with other
            targets.
    """

    name = "target"
    concurrency_safe = True

    def __init__(self, out_dir: Path, packager: Any = None, options: dict[str, Any] | None = None) -> None:
        self.out_dir = out_dir
        self.packager = packager
        self.options = options or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, out_dir={str(self.out_dir)!r})"

    async def build(self, app_out_dir: Path, arch: Arch) -> None:
        """Build the artifact for one architecture."""
        raise NotImplementedError

    async def finish_build(self) -> None:
        """Called once after all architectures are built."""


class DirTarget(Target):
    """Leaves the unpacked application directory as the output."""

    name = "dir"

    async def build(self, app_out_dir: Path, arch: Arch) -> None:
        get_global_logger().verbose("TARGET", f"dir: {app_out_dir} ({arch.value})")


TARGETS: dict[str, type[Target]] = {"dir": DirTarget}


def create_targets(
    names: Sequence[str],
    out_dir: Path,
    packager: Any = None,
    config: dict[str, Any] | None = None,
) -> list[Target]:
    """Instantiate targets by name, in declaration order.

    Args:
        names: Target names or ``"module:ClassName"`` references.
        out_dir: Artifact output directory.
        packager: Owning PlatformPackager.
        config: Build configuration; ``config[name]`` becomes the target
            options.

    Raises:
        ConfigError: If a name is unknown or does not refer to a Target.
    """
    config = config or {}
    targets: list[Target] = []
    for name in names:
        target_class = TARGETS.get(name)
        if target_class is None:
            if ":" not in name:
                supported = ", ".join(sorted(TARGETS))
                raise ConfigError(f"Unknown target: {name!r}. Supported: {supported}")
            target_class = resolve_function(name, getattr(packager, "project_dir", None))
            if not (isinstance(target_class, type) and issubclass(target_class, Target)):
                raise ConfigError(f'"{name}" is not a Target subclass')

        options = config.get(getattr(target_class, "name", name))
        targets.append(target_class(out_dir, packager, options if isinstance(options, dict) else None))
    return targets
