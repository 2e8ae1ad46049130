"""
Tests for distpack.packager module.

Tests the per-platform packaging pipeline including:
- Option resolution (archive, compression, platform sections)
- Output and resource paths
- Icon lookup through the icon tool
- Archived and direct application copies
- Cancellation, hooks, signing and the sanity check
- Target scheduling order
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from distpack.arch import Arch, Platform
from distpack.archive import ArchiveOptions, list_archive, read_archive_file
from distpack.config import load_build_config
from distpack.exceptions import ConfigError
from distpack.packager import PipelineStage, PlatformPackager
from distpack.targets import DirTarget, Target
from distpack.tasks import AsyncTaskManager, CancellationToken

pytestmark = pytest.mark.unit


@pytest.fixture
def make_packager(create_app_project):
    """
    Factory fixture creating a project and a packager for it.

    Usage:
        packager = make_packager({"archive": False}, platform=Platform.MAC)
    """

    def _create(
        overrides: dict[str, Any] | None = None,
        *,
        platform: Platform = Platform.LINUX,
        package: dict[str, Any] | None = None,
        files: dict[str, str | bytes] | None = None,
        packager_class: type[PlatformPackager] = PlatformPackager,
        **kwargs: Any,
    ) -> PlatformPackager:
        project = create_app_project(package=package, files=files)
        config = load_build_config(project, overrides=overrides)
        return packager_class(config, platform, CancellationToken(), **kwargs)

    return _create


async def _pack(packager: PlatformPackager, targets: list[Target] | None = None, arch: Arch = Arch.x64):
    out_dir = Path(packager.config["directories"]["output"])
    manager = AsyncTaskManager(packager.cancellation_token)
    result = await packager.pack(out_dir, arch, targets or [DirTarget(out_dir)], manager)
    await manager.await_tasks()
    return result


class RecordingTarget(Target):
    """Target appending start/end markers to a shared log."""

    def __init__(self, out_dir: Path, log: list[str], label: str, safe: bool) -> None:
        super().__init__(out_dir)
        self.log = log
        self.label = label
        self.concurrency_safe = safe

    async def build(self, app_out_dir: Path, arch: Arch) -> None:
        self.log.append(f"{self.label}:start")
        await asyncio.sleep(0)
        self.log.append(f"{self.label}:end")


class TestOptions:
    """Tests for option resolution."""

    def test_archive_enabled_by_default(self, make_packager):
        """Test that archiving is on with default options."""
        assert make_packager().compute_archive_options() == ArchiveOptions()

    def test_archive_disabled(self, make_packager):
        """Test that archive: false disables archiving."""
        assert make_packager({"archive": False}).compute_archive_options() is None

    def test_platform_archive_options(self, make_packager):
        """Test that the platform section overrides the top-level value."""
        packager = make_packager({"archive": True, "linux": {"archive": {"smart_unpack": False}}})

        assert packager.compute_archive_options() == ArchiveOptions(smart_unpack=False)

    @pytest.mark.parametrize(
        "overrides,name",
        [
            ({"archive-unpack": "*.node"}, "archive-unpack"),
            ({"archive-unpack-dir": "lib"}, "archive-unpack-dir"),
            ({"archive": {"unpack": "*.node"}}, "archive.unpack"),
            ({"archive": {"unpack_dir": "lib"}}, "archive.unpack_dir"),
        ],
    )
    def test_deprecated_archive_options(self, make_packager, overrides, name):
        """Test that deprecated archive options are rejected."""
        with pytest.raises(ConfigError, match=f"{name} is deprecated"):
            make_packager(overrides).compute_archive_options()

    def test_compression_default(self, make_packager):
        """Test the default compression level."""
        assert make_packager().compression == "normal"

    def test_compression_platform_override(self, make_packager):
        """Test that the platform section wins."""
        packager = make_packager({"compression": "store", "linux": {"compression": "maximum"}})

        assert packager.compression == "maximum"

    def test_compression_null_resets(self, make_packager):
        """Test that an explicit null in the platform section means normal."""
        packager = make_packager({"compression": "store", "linux": {"compression": None}})

        assert packager.compression == "normal"

    def test_file_associations_combined(self, make_packager):
        """Test that top-level and platform associations are concatenated."""
        packager = make_packager(
            {"file_associations": {"ext": "foo"}, "linux": {"file_associations": [{"ext": "bar"}]}}
        )

        assert packager.file_associations == [{"ext": "foo"}, {"ext": "bar"}]


class TestPaths:
    """Tests for output and resource paths."""

    @pytest.mark.parametrize(
        "platform,arch,expected",
        [
            (Platform.LINUX, Arch.x64, "linux-unpacked"),
            (Platform.LINUX, Arch.arm64, "linux-arm64-unpacked"),
            (Platform.WINDOWS, Arch.ia32, "win-ia32-unpacked"),
            (Platform.MAC, Arch.x64, "mac"),
            (Platform.MAC, Arch.arm64, "mac-arm64"),
        ],
    )
    def test_app_out_dir(self, make_packager, tmp_test_dir, platform, arch, expected):
        """Test the naming of unpacked output directories."""
        packager = make_packager(platform=platform)

        assert packager.compute_app_out_dir(tmp_test_dir, arch) == tmp_test_dir / expected

    def test_app_out_dir_prepackaged(self, make_packager, tmp_test_dir):
        """Test that a prepackaged directory is used as-is."""
        packager = make_packager({"prepackaged": "prebuilt"})

        assert packager.compute_app_out_dir(tmp_test_dir, Arch.x64) == (
            tmp_test_dir / "project" / "prebuilt"
        ).resolve()

    def test_resources_dir(self, make_packager, tmp_test_dir):
        """Test resources directory layout per platform."""
        out = tmp_test_dir / "out"

        assert make_packager().get_resources_dir(out) == out / "resources"
        assert make_packager(platform=Platform.MAC).get_resources_dir(out) == (
            out / "Foo App.app" / "Contents" / "Resources"
        )

    def test_get_resource_default_names(self, make_packager):
        """Test that default names are searched in priority order."""
        packager = make_packager(files={"build/background.png": "png"})

        assert packager.get_resource(None, "background.tiff", "background.png") == (
            packager.build_resources_dir / "background.png"
        )
        assert packager.get_resource(None, "missing.png") is None

    def test_get_resource_disabled(self, make_packager):
        """Test that an empty custom value disables the resource."""
        packager = make_packager(files={"build/background.png": "png"})

        assert packager.get_resource("", "background.png") is None

    def test_get_resource_relative_to_project(self, make_packager):
        """Test that custom resources may be relative to the project."""
        packager = make_packager(files={"assets/bg.png": "png"})

        assert packager.get_resource("assets/bg.png") == packager.project_dir / "assets" / "bg.png"

    def test_get_resource_missing(self, make_packager):
        """Test that a missing custom resource is a config error."""
        with pytest.raises(ConfigError, match="Cannot find specified resource"):
            make_packager().get_resource("nope.png")


@pytest.mark.asyncio
class TestIcons:
    """Tests for icon lookup."""

    async def test_icon_found(self, make_packager, create_fake_tool):
        """Test that the first icon reported by the tool is used."""
        tool = create_fake_tool(
            "icon-tool", stdout=json.dumps({"icons": [{"file": "/icons/icon.ico", "size": 256}]})
        )
        packager = make_packager({"tools": {"icon": {"path": str(tool)}}})

        assert await packager.get_or_convert_icon("ico") == Path("/icons/icon.ico")

    async def test_no_icon(self, make_packager, create_fake_tool):
        """Test that no icon yields None."""
        tool = create_fake_tool("icon-tool", stdout="{}")
        packager = make_packager({"tools": {"icon": {"path": str(tool)}}})

        assert await packager.get_or_convert_icon("icns") is None


class TestNaming:
    """Tests for artifact naming through the packager."""

    def test_expand_artifact_name(self, make_packager):
        """Test the configured pattern with per-format arch alias."""
        packager = make_packager({"artifact_name": "${productName}-${version}-${arch}.${ext}"})

        assert packager.expand_artifact_name_pattern(None, "deb", Arch.x64, skip_arch_if_x64=False) == (
            "Foo App-1.2.3-amd64.deb"
        )
        assert packager.expand_artifact_name_pattern(None, "deb", Arch.x64) == "Foo App-1.2.3.deb"

    def test_target_pattern_wins(self, make_packager):
        """Test that target options override the configured pattern."""
        packager = make_packager({"artifact_name": "ignored.${ext}"})

        assert packager.expand_artifact_name_pattern(
            {"artifact_name": "${name}-${os}.${ext}"}, "tar.gz"
        ) == "foo-app-linux.tar.gz"

    def test_safe_name(self, make_packager):
        """Test the safe name for names with spaces."""
        packager = make_packager()

        assert packager.compute_safe_artifact_name("Foo App-1.2.3.deb", "deb") == "foo-app-1.2.3.deb"
        assert packager.compute_safe_artifact_name("foo-app-1.2.3.deb", "deb") is None

    def test_dispatch_artifact_created(self, make_packager, tmp_test_dir):
        """Test that artifacts are recorded and listeners notified."""
        events = []
        packager = make_packager(on_artifact_created=events.append)

        event = packager.dispatch_artifact_created(
            tmp_test_dir / "foo.deb", DirTarget(tmp_test_dir), Arch.arm64
        )

        assert events == [event]
        assert packager.artifacts == [event]
        assert event.target == "dir"
        assert event.arch == "arm64"


@pytest.mark.asyncio
class TestPack:
    """Tests for running the pack pipeline."""

    async def test_archived_pack(self, make_packager):
        """Test a full archived pack run."""
        packager = make_packager()

        result = await _pack(packager)

        archive = result.app_out_dir / "resources" / "app.asar"
        assert result.stage == PipelineStage.DONE.value
        assert result.archived
        assert result.app_out_dir.name == "linux-unpacked"
        assert list_archive(archive) == ["index.js", "package.json"]
        assert read_archive_file(archive, "index.js") == b"console.log('hello')\n"
        assert set(result.integrity.checksums) == {"app.asar"}

    async def test_package_descriptor_cleaned(self, make_packager):
        """Test that development fields are dropped from the packaged descriptor."""
        packager = make_packager(package={"devDependencies": {"jest": "1"}, "scripts": {"test": "jest"}})

        result = await _pack(packager)

        descriptor = json.loads(
            read_archive_file(result.app_out_dir / "resources" / "app.asar", "package.json")
        )
        assert "devDependencies" not in descriptor
        assert "scripts" not in descriptor
        assert descriptor["name"] == "foo-app"

    async def test_direct_copy(self, make_packager):
        """Test that disabling archiving copies files directly."""
        packager = make_packager({"archive": False}, files={"lib/util.js": "x"})

        result = await _pack(packager)

        app_dir = result.app_out_dir / "resources" / "app"
        assert not result.archived
        assert result.integrity is None
        assert (app_dir / "index.js").is_file()
        assert (app_dir / "lib" / "util.js").read_text() == "x"
        assert not (result.app_out_dir / "resources" / "app.asar").exists()

    async def test_output_dir_not_copied(self, make_packager):
        """Test that the output and build resource directories are excluded."""
        packager = make_packager(
            {"archive": False}, files={"dist/old.txt": "old", "build/icon.png": "png"}
        )

        result = await _pack(packager)

        app_dir = result.app_out_dir / "resources" / "app"
        assert not (app_dir / "dist").exists()
        assert not (app_dir / "build").exists()

    async def test_hooks_and_signer_called(self, make_packager):
        """Test that hooks and the signer run in order with the context."""
        calls = []

        def after_pack(context):
            calls.append(("after_pack", context.arch.value))

        async def sign(context, is_archived):
            calls.append(("sign", is_archived))

        def after_sign(context):
            calls.append(("after_sign", context.archive_integrity is not None))

        packager = make_packager({"after_pack": after_pack, "sign": sign, "after_sign": after_sign})

        await _pack(packager)

        assert calls == [("after_pack", "x64"), ("sign", True), ("after_sign", True)]

    async def test_cancelled_after_copy(self, make_packager):
        """Test that cancellation stops before hooks and signing."""
        calls = []

        class CancellingPackager(PlatformPackager):
            async def _copy_app_files(self, *args):
                await super()._copy_app_files(*args)
                self.cancellation_token.cancel()

        packager = make_packager(
            {"after_pack": calls.append, "sign": lambda context, archived: calls.append("sign")},
            packager_class=CancellingPackager,
        )

        result = await _pack(packager)

        assert result.stage == PipelineStage.FILES_COPIED.value
        assert calls == []

    async def test_missing_entry_file(self, make_packager):
        """Test that a missing entry file fails the sanity check before signing."""
        signed = []
        packager = make_packager(
            {"sign": lambda context, archived: signed.append(archived)},
            package={"main": "missing.js"},
        )

        with pytest.raises(ConfigError, match="does not exist"):
            await _pack(packager)

        assert packager.stage is PipelineStage.POST_PACK_HOOK_RUN
        assert signed == []

    async def test_missing_entry_file_direct_copy(self, make_packager):
        """Test the sanity check for direct copies."""
        packager = make_packager({"archive": False}, package={"main": "lib/main.js"})

        with pytest.raises(ConfigError, match='Application entry file "lib/main.js" does not exist'):
            await _pack(packager)

    async def test_prepackaged_skips_pipeline(self, make_packager, tmp_test_dir):
        """Test that a prepackaged directory is used without packing."""
        prebuilt = tmp_test_dir / "prebuilt"
        prebuilt.mkdir()
        packager = make_packager({"prepackaged": str(prebuilt)})
        prebuilt = prebuilt.resolve()

        result = await _pack(packager)

        assert result.app_out_dir == prebuilt
        assert result.stage == PipelineStage.INIT.value


@pytest.mark.asyncio
class TestTargetScheduling:
    """Tests for package_in_distributable_format()."""

    async def test_all_safe_targets_added_directly(self, make_packager, tmp_test_dir):
        """Test that safe targets become one task each."""
        packager = make_packager()
        log: list[str] = []
        targets = [
            RecordingTarget(tmp_test_dir, log, "A", True),
            RecordingTarget(tmp_test_dir, log, "B", True),
        ]
        manager = AsyncTaskManager(packager.cancellation_token)

        packager.package_in_distributable_format(tmp_test_dir, Arch.x64, targets, manager)

        assert len(manager) == 2
        await manager.await_tasks()
        assert sorted(log) == ["A:end", "A:start", "B:end", "B:start"]

    async def test_unsafe_targets_run_after_safe_ones(self, make_packager, tmp_test_dir):
        """Test that unsafe targets run sequentially after the safe batch."""
        packager = make_packager()
        log: list[str] = []
        targets = [
            RecordingTarget(tmp_test_dir, log, "A", True),
            RecordingTarget(tmp_test_dir, log, "U1", False),
            RecordingTarget(tmp_test_dir, log, "B", True),
            RecordingTarget(tmp_test_dir, log, "U2", False),
        ]
        manager = AsyncTaskManager(packager.cancellation_token)

        packager.package_in_distributable_format(tmp_test_dir, Arch.x64, targets, manager)

        assert len(manager) == 1
        await manager.await_tasks()
        assert len(log) == 8
        assert sorted(log[:4]) == ["A:end", "A:start", "B:end", "B:start"]
        assert log[4:] == ["U1:start", "U1:end", "U2:start", "U2:end"]

    async def test_cancelled_schedules_nothing(self, make_packager, tmp_test_dir):
        """Test that nothing is scheduled after cancellation."""
        packager = make_packager()
        packager.cancellation_token.cancel()
        manager = AsyncTaskManager(packager.cancellation_token)

        packager.package_in_distributable_format(
            tmp_test_dir, Arch.x64, [RecordingTarget(tmp_test_dir, [], "A", True)], manager
        )

        assert len(manager) == 0
