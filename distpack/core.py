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

"""Core orchestration for distpack.

This module provides the high-level functions the CLI and programmatic
callers use: building a project and previewing artifact names.

Build Flow:

1. Load the effective configuration (defaults, ``distpack.yml``, overrides).
2. Create the PlatformPackager and the requested targets.
3. Pack every architecture, one after the other. Each pack schedules its
   target builds on a shared task manager.
4. Wait for all target builds, then let every target finish.

Cancellation:

Pass a CancellationToken and call ``cancel()`` from another task (or a
signal handler) to stop the build at the next checkpoint. A cancelled
build returns a BuildResult with status "cancelled".

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from distpack.core import build_project

        result = build_project(Path("my-app"), platform="linux", archs=["x64"])
        for pack in result.packs:
            print(pack.arch, pack.app_out_dir)
        ```

"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
import sys
from typing import Any

from distpack.appinfo import AppInfo, load_app_metadata
from distpack.arch import DEFAULT_ARCH, Arch, Platform, parse_arch
from distpack.config import load_build_config
from distpack.hooks import Framework
from distpack.logging import get_global_logger
from distpack.naming import normalize_ext
from distpack.packager import PlatformPackager
from distpack.results import BuildResult, PackResult
from distpack.targets import create_targets
from distpack.tasks import AsyncTaskManager, CancellationToken

__all__ = ["build_project", "build_project_async", "current_platform", "preview_artifact_name"]


def current_platform() -> Platform:
    """Platform of the running interpreter."""
    return Platform.from_string(sys.platform if sys.platform != "cygwin" else "win32")


def _resolve_platform(platform: Platform | str | None) -> Platform:
    if platform is None:
        return current_platform()
    if isinstance(platform, Platform):
        return platform
    return Platform.from_string(platform)


def _resolve_archs(archs: Sequence[Arch | str] | None, config: dict[str, Any]) -> list[Arch]:
    if not archs:
        configured = config.get("arch")
        if configured is None:
            return [DEFAULT_ARCH]
        archs = configured if isinstance(configured, list) else [configured]
    resolved: list[Arch] = []
    for arch in archs:
        arch = arch if isinstance(arch, Arch) else parse_arch(str(arch))
        if arch not in resolved:
            resolved.append(arch)
    return resolved


def _resolve_target_names(
    targets: Sequence[str] | None, packager: PlatformPackager
) -> list[str]:
    if targets:
        return list(targets)
    configured = packager.platform_options.get("targets")
    if configured is None:
        configured = packager.config.get("targets")
    if configured is None:
        return ["dir"]
    return [configured] if isinstance(configured, str) else list(configured)


async def build_project_async(
    project_dir: Path,
    *,
    platform: Platform | str | None = None,
    archs: Sequence[Arch | str] | None = None,
    targets: Sequence[str] | None = None,
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    cancellation_token: CancellationToken | None = None,
    framework: Framework | None = None,
) -> BuildResult:
    """Build a project for one platform.

    Args:
        project_dir: Project root directory.
        platform: Platform to build for. Defaults to the running platform.
        archs: Architectures to pack. Defaults to ``arch`` from the
            configuration, or x64.
        targets: Target names. Defaults to ``targets`` from the platform
            section or the top level, or ``["dir"]``.
        config_path: Explicit configuration file.
        overrides: Configuration overrides applied last.
        cancellation_token: Token to stop the build early.
        framework: Stage preparer to use instead of the configured one.

    Returns:
        BuildResult with one PackResult per packed architecture and the
        artifacts reported by targets.

    Raises:
        ConfigError: On invalid configuration or a failed sanity check.
        PackagingError: On filesystem failures.
        ToolError: If an external tool fails.
    """
    logger = get_global_logger()
    token = cancellation_token or CancellationToken()

    logger.step(1, 4, "Loading configuration...")
    config = load_build_config(project_dir, config_path, overrides=overrides)
    resolved_platform = _resolve_platform(platform)
    out_dir = Path(config["directories"]["output"])

    logger.step(2, 4, "Preparing packager...")
    packager = PlatformPackager(config, resolved_platform, token, framework=framework)
    target_list = create_targets(
        _resolve_target_names(targets, packager), out_dir, packager, config
    )
    logger.verbose("BUILD", f"Platform: {resolved_platform.value}")
    logger.verbose("BUILD", f"Targets: {', '.join(t.name for t in target_list)}")

    logger.step(3, 4, "Packing application...")
    task_manager = AsyncTaskManager(token)
    packs: list[PackResult] = []
    try:
        for arch in _resolve_archs(archs, config):
            if token.cancelled:
                break
            packs.append(await packager.pack(out_dir, arch, target_list, task_manager))

        logger.step(4, 4, "Building targets...")
        await task_manager.await_tasks()
        if not token.cancelled:
            for target in target_list:
                await target.finish_build()
    except BaseException:
        await task_manager.cancel_tasks()
        raise

    status = "cancelled" if token.cancelled else "success"
    logger.verbose("BUILD", f"Build {status}: {len(packs)} architecture(s) packed")
    return BuildResult(
        project_dir=Path(config["project_dir"]),
        out_dir=out_dir,
        platform=resolved_platform.value,
        packs=packs,
        artifacts=list(packager.artifacts),
        status=status,
    )


def build_project(project_dir: Path, **kwargs: Any) -> BuildResult:
    """Synchronous wrapper of build_project_async()."""
    return asyncio.run(build_project_async(project_dir, **kwargs))


def preview_artifact_name(
    project_dir: Path,
    ext: str,
    *,
    platform: Platform | str | None = None,
    arch: Arch | str | None = None,
    pattern: str | None = None,
    config_path: Path | None = None,
) -> tuple[str, str | None]:
    """Expand the artifact name a target would use.

    Args:
        project_dir: Project root directory.
        ext: Artifact extension (leading dot optional).
        platform: Platform; defaults to the running platform.
        arch: Architecture, or None to leave it out.
        pattern: Pattern to use instead of the configured one.
        config_path: Explicit configuration file.

    Returns:
        A tuple (artifact name, safe artifact name or None if the name is
        already safe).
    """
    config = load_build_config(project_dir, config_path)
    resolved_platform = _resolve_platform(platform)
    resolved_arch = None if arch is None else (arch if isinstance(arch, Arch) else parse_arch(str(arch)))

    app_info = AppInfo.from_metadata(load_app_metadata(Path(config["directories"]["app"])), config)
    packager = PlatformPackager(config, resolved_platform, app_info=app_info)

    ext = normalize_ext(ext)
    target_options = None if pattern is None else {"artifact_name": pattern}
    name = packager.expand_artifact_name_pattern(target_options, ext, resolved_arch)
    return name, packager.compute_safe_artifact_name(name, ext, resolved_arch)
