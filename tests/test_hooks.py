"""
Tests for distpack.hooks and distpack.targets modules.

Tests pipeline collaborators including:
- Resolving hook references
- Running sync and async hooks
- Signer creation from configuration
- Runtime template stage preparation
- Target creation
"""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

from distpack.arch import Arch
from distpack.exceptions import ConfigError, PackagingError
from distpack.hooks import (
    CommandSigner,
    DirectoryFramework,
    FunctionSigner,
    NoOpSigner,
    PackContext,
    StageOptions,
    create_signer,
    resolve_function,
    run_hook,
)
from distpack.targets import DirTarget, Target, create_targets

pytestmark = pytest.mark.unit


def _context(tmp: Path) -> PackContext:
    return PackContext(
        app_out_dir=tmp / "linux-unpacked",
        out_dir=tmp,
        arch=Arch.x64,
        targets=[],
        packager=None,
        platform_name="linux",
    )


class TestResolveFunction:
    """Tests for resolve_function()."""

    def test_none_and_callable_passthrough(self):
        """Test that None and callables are returned unchanged."""
        assert resolve_function(None) is None
        assert resolve_function(len) is len

    def test_module_reference(self):
        """Test module:function references."""
        import os.path

        assert resolve_function("os.path:join") is os.path.join

    def test_file_reference(self, tmp_test_dir):
        """Test path/to/file.py:function relative to a base directory."""
        (tmp_test_dir / "scripts").mkdir()
        (tmp_test_dir / "scripts" / "hooks.py").write_text(
            "def after_pack(context):\n    return 'called'\n"
        )

        hook = resolve_function("scripts/hooks.py:after_pack", tmp_test_dir)

        assert hook(None) == "called"

    def test_malformed_reference(self):
        """Test that references without a function name are rejected."""
        with pytest.raises(ConfigError, match="Invalid hook reference"):
            resolve_function("just_a_module")

    def test_missing_module(self):
        """Test that an unimportable module is a config error."""
        with pytest.raises(ConfigError, match="Cannot import"):
            resolve_function("distpack_missing_module_xyz:hook")

    def test_missing_file(self, tmp_test_dir):
        """Test that a missing hook file is a config error."""
        with pytest.raises(ConfigError, match="does not exist"):
            resolve_function("hooks.py:after_pack", tmp_test_dir)

    def test_not_callable(self):
        """Test that attributes must be callable."""
        with pytest.raises(ConfigError, match="not a callable"):
            resolve_function("os:sep")

    def test_file_with_error(self, tmp_test_dir):
        """Test that a hook file raising on import is a config error."""
        (tmp_test_dir / "broken.py").write_text("raise RuntimeError('boom')\n")

        with pytest.raises(ConfigError, match="boom"):
            resolve_function("broken.py:hook", tmp_test_dir)


@pytest.mark.asyncio
class TestRunHook:
    """Tests for run_hook()."""

    async def test_sync_hook(self, tmp_test_dir):
        """Test that sync hooks receive the context."""
        seen = []

        await run_hook(seen.append, _context(tmp_test_dir))

        assert seen[0].arch is Arch.x64

    async def test_async_hook(self, tmp_test_dir):
        """Test that async hooks are awaited."""
        seen = []

        async def hook(context):
            seen.append(context.platform_name)

        await run_hook(hook, _context(tmp_test_dir))

        assert seen == ["linux"]

    async def test_no_hook(self, tmp_test_dir):
        """Test that a missing hook is a no-op."""
        await run_hook(None, _context(tmp_test_dir))


class TestCreateSigner:
    """Tests for create_signer()."""

    def test_default_noop(self):
        """Test that no configuration means no signing."""
        assert isinstance(create_signer(None), NoOpSigner)

    def test_callable(self):
        """Test that callables become function signers."""
        assert isinstance(create_signer(lambda context, archived: True), FunctionSigner)

    def test_command_list(self):
        """Test that a list becomes a command signer."""
        signer = create_signer(["signtool", "sign", "${appOutDir}"])

        assert isinstance(signer, CommandSigner)
        assert signer.command == ["signtool", "sign", "${appOutDir}"]

    def test_command_mapping(self):
        """Test the mapping form with env and timeout."""
        signer = create_signer({"command": "codesign --deep ${appOutDir}", "env": {"A": 1}, "timeout": 30})

        assert signer.command == ["codesign", "--deep", "${appOutDir}"]
        assert signer.env == {"A": "1"}
        assert signer.timeout == 30.0

    def test_unsupported_value(self):
        """Test that other shapes are config errors."""
        with pytest.raises(ConfigError, match="Unsupported sign configuration"):
            create_signer(5)

    def test_empty_command(self):
        """Test that an empty command is rejected."""
        with pytest.raises(ConfigError, match="must not be empty"):
            create_signer([])


@pytest.mark.asyncio
class TestSigners:
    """Tests for signer behavior."""

    async def test_noop_signer(self, tmp_test_dir):
        """Test that the default signer signs nothing."""
        assert await NoOpSigner().sign(_context(tmp_test_dir), True) is False

    async def test_function_signer_async(self, tmp_test_dir):
        """Test that async signing hooks are awaited with the archived flag."""
        calls = []

        async def sign(context, is_archived):
            calls.append(is_archived)

        assert await FunctionSigner(sign).sign(_context(tmp_test_dir), True) is True
        assert calls == [True]

    async def test_function_signer_false(self, tmp_test_dir):
        """Test that returning False reports nothing signed."""
        assert await FunctionSigner(lambda c, a: False).sign(_context(tmp_test_dir), False) is False

    @pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell script")
    async def test_command_signer_substitutes(self, tmp_test_dir):
        """Test that placeholders are substituted before running the command."""
        log = tmp_test_dir / "sign.log"
        tool = tmp_test_dir / "sign.sh"
        tool.write_text(f'#!/bin/sh\necho "$@" > {log}\n')
        tool.chmod(0o755)
        context = _context(tmp_test_dir)

        signer = CommandSigner([str(tool), "${appOutDir}", "${arch}", "${platform}", "${archived}"])
        assert await signer.sign(context, True) is True

        assert log.read_text().split() == [str(context.app_out_dir), "x64", "linux", "true"]


@pytest.mark.asyncio
class TestDirectoryFramework:
    """Tests for DirectoryFramework."""

    async def test_empty_stage(self, tmp_test_dir):
        """Test that no runtime template creates an empty stage."""
        app_out_dir = tmp_test_dir / "out" / "linux-unpacked"

        await DirectoryFramework().prepare_application_stage_directory(
            StageOptions(packager=None, app_out_dir=app_out_dir, platform_name="linux", arch=Arch.x64)
        )

        assert app_out_dir.is_dir()
        assert list(app_out_dir.iterdir()) == []

    async def test_template_copied(self, tmp_test_dir):
        """Test that the runtime template is copied into the stage."""
        runtime = tmp_test_dir / "runtime"
        (runtime / "locales").mkdir(parents=True)
        (runtime / "app-launcher").write_text("bin")
        (runtime / "locales" / "en.pak").write_text("pak")
        app_out_dir = tmp_test_dir / "out" / "linux-unpacked"

        await DirectoryFramework(runtime, "1.0").prepare_application_stage_directory(
            StageOptions(packager=None, app_out_dir=app_out_dir, platform_name="linux", arch=Arch.x64)
        )

        assert (app_out_dir / "app-launcher").read_text() == "bin"
        assert (app_out_dir / "locales" / "en.pak").read_text() == "pak"

    async def test_missing_template_raises(self, tmp_test_dir):
        """Test that a missing runtime directory is a packaging error."""
        framework = DirectoryFramework(tmp_test_dir / "missing")

        with pytest.raises(PackagingError, match="Runtime directory not found"):
            await framework.prepare_application_stage_directory(
                StageOptions(
                    packager=None,
                    app_out_dir=tmp_test_dir / "out",
                    platform_name="linux",
                    arch=Arch.x64,
                )
            )


class TestCreateTargets:
    """Tests for create_targets()."""

    def test_builtin_dir_target(self, tmp_test_dir):
        """Test that dir is always available."""
        targets = create_targets(["dir"], tmp_test_dir)

        assert len(targets) == 1
        assert isinstance(targets[0], DirTarget)
        assert targets[0].concurrency_safe

    def test_unknown_target(self, tmp_test_dir):
        """Test that unknown names are config errors."""
        with pytest.raises(ConfigError, match="Unknown target"):
            create_targets(["msi"], tmp_test_dir)

    def test_custom_target_from_file(self, tmp_test_dir):
        """Test module:Class references with per-target options."""
        (tmp_test_dir / "custom_targets.py").write_text(
            "from distpack.targets import Target\n"
            "\n"
            "class TarTarget(Target):\n"
            "    name = 'tar'\n"
            "    concurrency_safe = False\n"
            "\n"
            "    async def build(self, app_out_dir, arch):\n"
            "        pass\n"
        )

        class FakePackager:
            project_dir = tmp_test_dir

        targets = create_targets(
            ["custom_targets.py:TarTarget"],
            tmp_test_dir / "dist",
            FakePackager(),
            {"tar": {"compression": "xz"}},
        )

        assert isinstance(targets[0], Target)
        assert targets[0].name == "tar"
        assert targets[0].options == {"compression": "xz"}
        assert not targets[0].concurrency_safe

    def test_reference_must_be_target(self):
        """Test that references to non-targets are rejected."""
        with pytest.raises(ConfigError, match="not a Target subclass"):
            create_targets(["os.path:join"], Path("dist"))
