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

"""
Per-platform packaging pipeline for distpack.

This module packs a staged application for one platform and one
architecture at a time. A PlatformPackager is created once per build and
its pack() method is called once per architecture.

Pipeline Stages
---------------
INIT -> STAGE_PREPARED -> EXCLUDE_PATTERNS_COMPUTED -> FILES_COPIED ->
EXTRA_FILES_COPIED -> POST_PACK_HOOK_RUN -> SANITY_CHECKED -> SIGNED ->
POST_SIGN_HOOK_RUN -> DONE

1. The framework prepares the stage directory (runtime template).
2. Extra resources and extra files matchers are computed and compiled
   into exclude sets for the main application copy.
3. The application files are copied in one of three ways:
     - the app directory already contains an archive: copied as-is
     - archiving disabled: direct copy through the transformer chain
       ``[extra files transformer, main transformer]``
     - archiving enabled: the main transformer runs, then the files are
       written into a single archive plus an unpacked mirror
4. Extra resources and extra files are copied directly (never archived).
5. after_pack hook, sanity check, signing, after_sign hook.

The cancellation token is checked after steps 3 and 4. A cancelled build
stops there without running hooks, the sanity check or signing.

Configuration
-------------
Platform sections (``mac``, ``win``, ``linux``) override top-level keys
for their platform: ``archive``, ``files``, ``extra_resources``,
``extra_files``, ``archive_unpack``, ``artifact_name``, ``compression``,
``icon``, ``sign``, ``force_code_signing``, ``file_associations``.

Example
-------
    >>> packager = PlatformPackager(config, Platform.LINUX, token)
    >>> manager = AsyncTaskManager(token)
    >>> result = await packager.pack(out_dir, Arch.x64, targets, manager)
    >>> await manager.await_tasks()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from enum import Enum
import os
from pathlib import Path, PurePosixPath
from typing import Any

from distpack import naming
from distpack.appinfo import PACKAGE_DESCRIPTOR, AppInfo, load_app_metadata
from distpack.arch import Arch, Platform, get_arch_suffix
from distpack.archive import (
    ARCHIVE_NAME,
    ArchiveOptions,
    ArchivePackager,
    check_file_in_archive,
)
from distpack.exceptions import ConfigError
from distpack.files import (
    ExcludeSet,
    FileMatcher,
    FileSet,
    compute_exclude_patterns,
    compute_file_sets,
    compute_node_module_file_sets,
    copy_file_sets,
    copy_files,
    get_file_matchers,
    get_main_file_matchers,
    get_node_module_file_matcher,
)
from distpack.hooks import (
    DirectoryFramework,
    Framework,
    PackContext,
    StageOptions,
    create_signer,
    resolve_function,
    run_hook,
)
from distpack.logging import get_global_logger
from distpack.macros import MacroExpander, expand_macro
from distpack.results import ArtifactCreated, PackResult
from distpack.targets import Target
from distpack.tasks import AsyncTaskManager, CancellationStop, CancellationToken
from distpack.tools import IconInfo, find_tool, resolve_icon
from distpack.transform import FileTransformer, TransformerChain, create_main_transformer

__all__ = ["PipelineStage", "PlatformPackager"]

_DEPRECATED_MESSAGE = (
    "{name} is deprecated and not supported, please use archive_unpack"
)


class PipelineStage(Enum):
    """Stages of one pack run, in order."""

    INIT = "init"
    STAGE_PREPARED = "stage_prepared"
    EXCLUDE_PATTERNS_COMPUTED = "exclude_patterns_computed"
    FILES_COPIED = "files_copied"
    EXTRA_FILES_COPIED = "extra_files_copied"
    POST_PACK_HOOK_RUN = "post_pack_hook_run"
    SANITY_CHECKED = "sanity_checked"
    SIGNED = "signed"
    POST_SIGN_HOOK_RUN = "post_sign_hook_run"
    DONE = "done"


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class PlatformPackager:
    """Packs an application for one platform.

    Args:
        config: Effective build configuration (see distpack.config).
        platform: Platform being packed.
        cancellation_token: Token shared by the whole build.
        framework: Stage preparer. Defaults to a DirectoryFramework using
            ``runtime_dir`` from the configuration.
        app_info: Application metadata. Read from the app directory when
            omitted.
        on_artifact_created: Called for every artifact reported by a target.

    Attributes:
        stage: Last stage reached by the current (or last) pack run.
        artifacts: Artifacts reported through dispatch_artifact_created().
    """

    def __init__(
        self,
        config: dict[str, Any],
        platform: Platform,
        cancellation_token: CancellationToken | None = None,
        *,
        framework: Framework | None = None,
        app_info: AppInfo | None = None,
        on_artifact_created: Callable[[ArtifactCreated], Any] | None = None,
    ) -> None:
        self.config = config
        self.platform = platform
        self.cancellation_token = cancellation_token or CancellationToken()

        directories = config.get("directories") or {}
        self.project_dir = Path(config.get("project_dir") or Path.cwd())
        self.app_dir = Path(directories.get("app") or self.project_dir)
        self.build_resources_dir = Path(
            directories.get("build_resources") or self.project_dir / "build"
        )

        if app_info is None:
            self.metadata = load_app_metadata(self.app_dir)
            app_info = AppInfo.from_metadata(self.metadata, config)
        else:
            self.metadata = app_info.metadata
        self.app_info = app_info

        self.framework = framework or DirectoryFramework(
            config.get("runtime_dir"), str(config.get("runtime_version") or "")
        )
        self.signer = create_signer(self._option("sign"), self.project_dir)
        self.after_pack = resolve_function(config.get("after_pack"), self.project_dir)
        self.after_sign = resolve_function(config.get("after_sign"), self.project_dir)
        self.on_artifact_created = on_artifact_created

        self.stage = PipelineStage.INIT
        self.artifacts: list[ArtifactCreated] = []
        self._resource_list: list[str] | None = None
        self._archived = False

    def __repr__(self) -> str:
        return f"PlatformPackager(platform={self.platform.value!r}, app_dir={str(self.app_dir)!r})"

    # -------------------------------
    # Options
    # -------------------------------

    @property
    def platform_options(self) -> dict[str, Any]:
        """The configuration section of this platform."""
        options = self.config.get(self.platform.build_configuration_key)
        return options if isinstance(options, dict) else {}

    def _option(self, name: str) -> Any:
        value = self.platform_options.get(name)
        return self.config.get(name) if value is None else value

    @property
    def compression(self) -> str:
        options = self.platform_options
        # explicit null in the platform section resets to the default
        if "compression" in options and options["compression"] is None:
            return "normal"
        return options.get("compression") or self.config.get("compression") or "normal"

    @property
    def force_code_signing(self) -> bool:
        return bool(self._option("force_code_signing"))

    @property
    def file_associations(self) -> list[dict[str, Any]]:
        return [
            *_as_list(self.config.get("file_associations")),
            *_as_list(self.platform_options.get("file_associations")),
        ]

    @property
    def is_prepacked_archive(self) -> bool:
        """True if the app directory already holds a packed archive."""
        return (self.app_dir / ARCHIVE_NAME).is_file()

    def compute_archive_options(self) -> ArchiveOptions | None:
        """Resolve the ``archive`` option.

        Returns:
            ArchiveOptions, or None when archiving is disabled.

        Raises:
            ConfigError: If a deprecated archive option is present.
        """
        for name in ("archive-unpack", "archive-unpack-dir"):
            if self.config.get(name) is not None:
                raise ConfigError(_DEPRECATED_MESSAGE.format(name=name))

        value = self._option("archive")
        if value is False:
            if not self.is_prepacked_archive:
                get_global_logger().warning(
                    "PACK",
                    "Archiving is disabled, which is strongly discouraged. "
                    "Enable archiving and list files that must stay external "
                    "in archive_unpack",
                )
            return None
        if value is None or value is True:
            return ArchiveOptions()
        if not isinstance(value, dict):
            raise ConfigError(f"archive must be a boolean or a mapping, got {value!r}")

        for name in ("unpack_dir", "unpack"):
            if value.get(name) is not None:
                raise ConfigError(_DEPRECATED_MESSAGE.format(name=f"archive.{name}"))
        return ArchiveOptions.from_config(value)

    # -------------------------------
    # Paths and resources
    # -------------------------------

    def compute_app_out_dir(self, out_dir: Path, arch: Arch) -> Path:
        """Unpacked output directory for an architecture."""
        prepackaged = self.config.get("prepackaged")
        if prepackaged is not None:
            return Path(prepackaged)
        suffix = "" if self.platform is Platform.MAC else "-unpacked"
        return out_dir / f"{self.platform.build_configuration_key}{get_arch_suffix(arch)}{suffix}"

    def get_resources_dir(self, app_out_dir: Path) -> Path:
        if self.platform is Platform.MAC:
            return app_out_dir / f"{self.app_info.product_filename}.app" / "Contents" / "Resources"
        return app_out_dir / "resources"

    @property
    def resource_list(self) -> list[str]:
        """Names of the files in the build resources directory."""
        if self._resource_list is None:
            try:
                self._resource_list = sorted(os.listdir(self.build_resources_dir))
            except FileNotFoundError:
                self._resource_list = []
        return self._resource_list

    def get_resource(self, custom: str | None, *names: str) -> Path | None:
        """Resolve a resource file.

        Args:
            custom: Configured resource. None searches ``names`` in the build
                resources directory; an empty string disables the resource.
            names: Default names, in priority order.

        Returns:
            The resource path, or None.

        Raises:
            ConfigError: If custom is set but exists neither relative to the
                build resources directory nor to the project directory.
        """
        if custom is None:
            for name in names:
                if name in self.resource_list:
                    return self.build_resources_dir / name
            return None
        if not custom.strip():
            return None

        if custom in self.resource_list:
            return self.build_resources_dir / custom
        path = (self.build_resources_dir / custom).resolve()
        if not path.exists():
            path = (self.project_dir / custom).resolve()
            if not path.exists():
                raise ConfigError(
                    f'Cannot find specified resource "{custom}", nor relative to '
                    f'"{self.build_resources_dir}", neither relative to project '
                    f'dir ("{self.project_dir}")'
                )
        return path

    async def get_or_convert_icon(self, output_format: str) -> Path | None:
        """Find the application icon, converting it if needed.

        Args:
            output_format: "icns", "ico" or "set".

        Returns:
            Path of the best icon, or None if the application has no icon.
        """
        source_names = [
            f"icon.{'png' if output_format == 'set' else output_format}",
            "icon.png",
            "icons",
        ]
        icon_path = self._option("icon")
        if icon_path is not None:
            source_names.insert(0, str(icon_path))
        if output_format == "ico":
            source_names.append("icon.icns")

        icons = await self.resolve_icon(source_names, output_format)
        if not icons:
            get_global_logger().warning("PACK", "Application icon is not set, the application has no icon")
            return None
        return icons[0].file

    async def resolve_icon(self, sources: Sequence[str], output_format: str) -> list[IconInfo]:
        """Convert or validate icon candidates with the icon tool."""
        tool_path = await asyncio.to_thread(find_tool, "icon", self.config.get("tools"))
        out_root = Path(
            (self.config.get("directories") or {}).get("output") or self.project_dir / "dist"
        )
        return await resolve_icon(
            tool_path,
            sources,
            output_format,
            [self.build_resources_dir, self.project_dir],
            out_root / f".icon-{output_format}",
        )

    # -------------------------------
    # Naming
    # -------------------------------

    def expand_macro(
        self,
        pattern: str,
        arch: str | None = None,
        extra: dict[str, str] | None = None,
        *,
        is_product_name_sanitized: bool = True,
        lenient: bool = False,
    ) -> str:
        return expand_macro(
            pattern,
            arch,
            self.app_info,
            {"os": self.platform.build_configuration_key, **(extra or {})},
            is_product_name_sanitized=is_product_name_sanitized,
            lenient=lenient,
        )

    def expand_artifact_name_pattern(
        self,
        target_options: dict[str, Any] | None,
        ext: str,
        arch: Arch | None = None,
        default_pattern: str | None = None,
        skip_arch_if_x64: bool = True,
    ) -> str:
        return naming.expand_artifact_name_pattern(
            self.app_info,
            self.platform,
            ext,
            arch,
            target_options=target_options,
            platform_options=self.platform_options,
            config=self.config,
            default_pattern=default_pattern,
            skip_arch_if_x64=skip_arch_if_x64,
        )

    def compute_safe_artifact_name(
        self,
        suggested_name: str | None,
        ext: str,
        arch: Arch | None = None,
        skip_arch_if_x64: bool = True,
    ) -> str | None:
        return naming.compute_safe_artifact_name(
            suggested_name, ext, self.app_info, self.platform, arch,
            skip_arch_if_x64=skip_arch_if_x64,
        )

    def generate_name(self, ext: str | None, classifier: str | None = None, deployment: bool = False) -> str:
        return naming.generate_name(self.app_info, ext, classifier, deployment)

    def dispatch_artifact_created(
        self,
        file: Path,
        target: Target | None = None,
        arch: Arch | None = None,
        safe_artifact_name: str | None = None,
    ) -> ArtifactCreated:
        """Record an artifact produced by a target and notify listeners."""
        event = ArtifactCreated(
            file=Path(file),
            target=None if target is None else target.name,
            arch=None if arch is None else arch.value,
            safe_artifact_name=safe_artifact_name,
        )
        self.artifacts.append(event)
        get_global_logger().verbose("PACK", f"Artifact created: {event.file}")
        if self.on_artifact_created is not None:
            self.on_artifact_created(event)
        return event

    # -------------------------------
    # Pipeline
    # -------------------------------

    async def pack(
        self,
        out_dir: Path,
        arch: Arch,
        targets: Sequence[Target],
        task_manager: AsyncTaskManager,
    ) -> PackResult:
        """Pack one architecture and schedule its target builds.

        Target builds are added to task_manager; the caller awaits them.
        """
        app_out_dir = self.compute_app_out_dir(out_dir, arch)
        context = await self.do_pack(out_dir, app_out_dir, arch, targets)
        self.package_in_distributable_format(app_out_dir, arch, targets, task_manager)
        return PackResult(
            platform=self.platform.build_configuration_key,
            arch=arch.value,
            app_out_dir=app_out_dir,
            archived=self._archived,
            stage=self.stage.value,
            integrity=None if context is None else context.archive_integrity,
        )

    def _enter(self, stage: PipelineStage) -> None:
        self.stage = stage
        get_global_logger().debug("PACK", f"Stage: {stage.value}")

    def create_transformer_for_extra_files(self, context: PackContext) -> FileTransformer | None:
        """Transformer consulted before the main transformer for direct copies.

        Platform packagers override this; the default has none.
        """
        return None

    def _get_extra_file_matchers(
        self,
        is_resources: bool,
        app_out_dir: Path,
        out_dir: Path,
        macro_expander: MacroExpander,
    ) -> list[FileMatcher] | None:
        if is_resources:
            base = self.get_resources_dir(app_out_dir)
        elif self.platform is Platform.MAC:
            base = app_out_dir / f"{self.app_info.product_filename}.app" / "Contents"
        else:
            base = app_out_dir
        return get_file_matchers(
            self.config,
            "extra_resources" if is_resources else "extra_files",
            self.project_dir,
            base,
            macro_expander=macro_expander,
            platform_options=self.platform_options,
            out_dir=out_dir,
        )

    async def do_pack(
        self,
        out_dir: Path,
        app_out_dir: Path,
        arch: Arch,
        targets: Sequence[Target],
    ) -> PackContext | None:
        """Run the pipeline stages for one architecture.

        Returns:
            The PackContext, or None when a prepackaged directory was
            supplied and nothing was done.

        Raises:
            ConfigError: If the configuration is invalid or the sanity
                check fails.
            PackagingError: If files cannot be read or written.
        """
        logger = get_global_logger()
        self.stage = PipelineStage.INIT
        self._archived = False

        if self.config.get("prepackaged") is not None:
            logger.verbose("PACK", f"Using prepackaged directory: {app_out_dir}")
            return None

        def macro_expander(pattern: str) -> str:
            return self.expand_macro(pattern, arch.value, {"/*": "{,/**/*}"}, lenient=True)

        logger.verbose(
            "PACK",
            f"Packaging platform={self.platform.node_name} arch={arch.value} "
            f"{self.framework.name}={self.framework.version or '-'} appOutDir={app_out_dir}",
        )

        await self.framework.prepare_application_stage_directory(
            StageOptions(
                packager=self,
                app_out_dir=app_out_dir,
                platform_name=self.platform.node_name,
                arch=arch,
                version=self.framework.version,
            )
        )
        self._enter(PipelineStage.STAGE_PREPARED)

        extra_resource_matchers = self._get_extra_file_matchers(True, app_out_dir, out_dir, macro_expander)
        extra_file_matchers = self._get_extra_file_matchers(False, app_out_dir, out_dir, macro_expander)
        resources_exclude = compute_exclude_patterns(extra_resource_matchers, self.project_dir)
        extra_files_exclude = compute_exclude_patterns(extra_file_matchers, self.project_dir)
        main_exclude = resources_exclude.merged(extra_files_exclude)
        self._enter(PipelineStage.EXCLUDE_PATTERNS_COMPUTED)

        context = PackContext(
            app_out_dir=app_out_dir,
            out_dir=out_dir,
            arch=arch,
            targets=targets,
            packager=self,
            platform_name=self.platform.node_name,
        )

        archive_options = self.compute_archive_options()
        is_archived = archive_options is not None or self.is_prepacked_archive
        self._archived = is_archived
        resources_dir = self.get_resources_dir(app_out_dir)

        try:
            task_manager = AsyncTaskManager(self.cancellation_token)
            task_manager.add_task(
                self._copy_app_files(
                    archive_options,
                    resources_dir,
                    resources_dir / "app",
                    context,
                    main_exclude,
                    macro_expander,
                    out_dir,
                )
            )
            await task_manager.await_tasks()
            self._enter(PipelineStage.FILES_COPIED)
            self.cancellation_token.checkpoint()

            extra_transformer = self.create_transformer_for_extra_files(context)
            await copy_files(extra_resource_matchers, extra_transformer)
            await copy_files(extra_file_matchers, extra_transformer, resources_exclude)
            self._enter(PipelineStage.EXTRA_FILES_COPIED)
            self.cancellation_token.checkpoint()
        except CancellationStop:
            logger.verbose("PACK", f"Cancelled after stage {self.stage.value}")
            return context

        await run_hook(self.after_pack, context)
        self._enter(PipelineStage.POST_PACK_HOOK_RUN)

        await self.sanity_check_package(app_out_dir, is_archived)
        self._enter(PipelineStage.SANITY_CHECKED)

        await self.signer.sign(context, is_archived)
        self._enter(PipelineStage.SIGNED)

        await run_hook(self.after_sign, context)
        self._enter(PipelineStage.POST_SIGN_HOOK_RUN)
        self._enter(PipelineStage.DONE)
        return context

    async def _compute_app_file_sets(
        self,
        matchers: Sequence[FileMatcher],
        transformer: FileTransformer | None,
        exclude_set: ExcludeSet | None,
        destination: Path,
        macro_expander: MacroExpander,
        *,
        is_archived: bool,
        with_dependencies: bool,
    ) -> list[FileSet]:
        file_sets = await compute_file_sets(
            matchers,
            transformer,
            exclude_set,
            is_archived=is_archived,
            skip_node_modules=with_dependencies,
        )
        if with_dependencies:
            module_matcher = get_node_module_file_matcher(
                self.app_dir,
                destination,
                self.config,
                macro_expander=macro_expander,
                platform_options=self.platform_options,
            )
            file_sets += await compute_node_module_file_sets(
                self.app_dir, module_matcher, exclude_set, transformer
            )
        return [file_set for file_set in file_sets if file_set.entries]

    async def _copy_app_files(
        self,
        archive_options: ArchiveOptions | None,
        resources_dir: Path,
        destination: Path,
        context: PackContext,
        exclude_set: ExcludeSet,
        macro_expander: MacroExpander,
        out_dir: Path,
    ) -> None:
        logger = get_global_logger()
        transformer = create_main_transformer(self.config)
        with_dependencies = not self.framework.node_modules_handled_externally

        if self.is_prepacked_archive:
            logger.verbose("PACK", f"Copying prepacked archive from {self.app_dir}")
            matcher = FileMatcher(self.app_dir, resources_dir, ["**/*"], macro_expander)
            file_sets = await compute_file_sets([matcher], None, exclude_set, is_archived=True)
            await copy_file_sets(file_sets)
            return

        main_matchers = get_main_file_matchers(
            self.app_dir,
            destination,
            self.config,
            project_dir=self.project_dir,
            build_resources_dir=self.build_resources_dir,
            out_dir=out_dir,
            macro_expander=macro_expander,
            platform_options=self.platform_options,
        )

        if archive_options is None:
            chain = TransformerChain(
                [self.create_transformer_for_extra_files(context), transformer]
            )
            file_sets = await self._compute_app_file_sets(
                main_matchers,
                None,
                exclude_set,
                destination,
                macro_expander,
                is_archived=False,
                with_dependencies=with_dependencies,
            )
            count = await copy_file_sets(file_sets, chain)
            logger.verbose("PACK", f"Copied {count} application file(s) to {destination}")
            return

        unpack_matchers = get_file_matchers(
            self.config,
            "archive_unpack",
            self.app_dir,
            destination,
            macro_expander=macro_expander,
            platform_options=self.platform_options,
            out_dir=out_dir,
        )
        unpack_filter = None if unpack_matchers is None else unpack_matchers[0].create_filter()

        file_sets = await self._compute_app_file_sets(
            main_matchers,
            transformer,
            exclude_set,
            destination,
            macro_expander,
            is_archived=True,
            with_dependencies=with_dependencies,
        )
        result = await ArchivePackager(
            destination,
            resources_dir / ARCHIVE_NAME,
            unpack_filter,
            archive_options,
        ).pack(file_sets)
        context.archive_integrity = result.integrity

    # -------------------------------
    # Sanity check
    # -------------------------------

    async def sanity_check_package(self, app_out_dir: Path, is_archived: bool) -> None:
        """Check that the packed application is complete.

        Raises:
            ConfigError: If the output directory, the entry file or the
                package descriptor is missing.
        """
        if not app_out_dir.exists():
            raise ConfigError(
                f'Output directory "{app_out_dir}" does not exist. Seems like a wrong configuration.'
            )
        if not app_out_dir.is_dir():
            raise ConfigError(
                f'Output directory "{app_out_dir}" is not a directory. Seems like a wrong configuration.'
            )

        resources_dir = self.get_resources_dir(app_out_dir)
        await asyncio.to_thread(
            self._check_file_in_package,
            resources_dir,
            self.app_info.main,
            "Application entry file",
            is_archived,
        )
        await asyncio.to_thread(
            self._check_file_in_package,
            resources_dir,
            PACKAGE_DESCRIPTOR,
            "Application",
            is_archived,
        )

    def _check_file_in_package(
        self, resources_dir: Path, file: str, message_prefix: str, is_archived: bool
    ) -> None:
        relative = PurePosixPath(
            os.path.relpath(self.app_dir / file, self.app_dir).replace("\\", "/")
        )
        if is_archived:
            check_file_in_archive(resources_dir / ARCHIVE_NAME, relative.as_posix(), message_prefix)
            return

        # the entry file may live inside an archive even when archiving is off
        parts = relative.parts
        for index, part in enumerate(parts[:-1]):
            if part.endswith(".asar"):
                archive = resources_dir / "app" / PurePosixPath(*parts[: index + 1])
                inner = PurePosixPath(*parts[index + 1 :]).as_posix()
                check_file_in_archive(archive, inner, message_prefix)
                return

        path = resources_dir / "app" / relative
        if not path.exists():
            raise ConfigError(
                f'{message_prefix} "{relative}" does not exist. Seems like a wrong configuration.'
            )
        if not path.is_file():
            raise ConfigError(
                f'{message_prefix} "{relative}" is not a file. Seems like a wrong configuration.'
            )

    # -------------------------------
    # Targets
    # -------------------------------

    def package_in_distributable_format(
        self,
        app_out_dir: Path,
        arch: Arch,
        targets: Sequence[Target],
        task_manager: AsyncTaskManager,
    ) -> None:
        """Schedule target builds on task_manager.

        When every target is concurrency-safe they are added directly.
        Otherwise one task runs the safe targets concurrently on a
        sub-manager and then the others one at a time, in declaration order.
        """
        if all(target.concurrency_safe for target in targets):
            for target in targets:
                task_manager.add_task(target.build(app_out_dir, arch))
            return

        async def _build_in_order() -> None:
            sub_manager = AsyncTaskManager(self.cancellation_token)
            for target in targets:
                if target.concurrency_safe:
                    sub_manager.add_task(target.build(app_out_dir, arch))
            try:
                await sub_manager.await_tasks()
            except BaseException:
                await sub_manager.cancel_tasks()
                raise

            for target in targets:
                if self.cancellation_token.cancelled:
                    return
                if not target.concurrency_safe:
                    await target.build(app_out_dir, arch)

        task_manager.add(_build_in_order)
