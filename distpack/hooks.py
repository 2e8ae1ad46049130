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

"""Collaborators invoked by the packaging pipeline.

This module holds the narrow interfaces the pipeline calls out to:

- Framework: prepares the stage directory before files are copied.
  DirectoryFramework copies a prebuilt runtime template.
- Signer: signs the packed application. NoOpSigner is the default,
  CommandSigner runs an external command, FunctionSigner calls a hook.
- Hooks: ``after_pack`` / ``after_sign`` callables receiving a
  PackContext. Configuration refers to them as ``"module:function"`` or
  ``"path/to/file.py:function"``; sync and async callables both work.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
import importlib
import importlib.util
import inspect
from pathlib import Path
import shutil
from typing import Any

from distpack.arch import Arch
from distpack.exceptions import ConfigError, PackagingError
from distpack.logging import get_global_logger
from distpack.results import IntegrityRecord
from distpack.tools import execute_tool

__all__ = [
    "CommandSigner",
    "DirectoryFramework",
    "Framework",
    "FunctionSigner",
    "Hook",
    "NoOpSigner",
    "PackContext",
    "Signer",
    "StageOptions",
    "create_signer",
    "resolve_function",
    "run_hook",
]


@dataclass
class PackContext:
    """Build context passed to hooks and signers.

    Attributes:
        app_out_dir: Unpacked application output directory.
        out_dir: Build output directory.
        arch: Architecture being packed.
        targets: Targets requested for this architecture.
        packager: The PlatformPackager running the pipeline.
        platform_name: Runtime platform name (darwin, win32, linux).
        archive_integrity: Integrity record of the archive, when archived.
    """

    app_out_dir: Path
    out_dir: Path
    arch: Arch
    targets: Sequence[Any]
    packager: Any
    platform_name: str
    archive_integrity: IntegrityRecord | None = None


Hook = Callable[[PackContext], Any]


@dataclass(frozen=True)
class StageOptions:
    """Arguments of Framework.prepare_application_stage_directory."""

    packager: Any
    app_out_dir: Path
    platform_name: str
    arch: Arch
    version: str = ""


def _load_module_from_file(path: Path) -> Any:
    spec = importlib.util.spec_from_file_location(f"distpack_hook_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"Cannot load hook file {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as err:
        raise ConfigError(f"Cannot load hook file {path}: {err}") from err
    return module


def resolve_function(reference: Any, base_dir: Path | None = None) -> Callable[..., Any] | None:
    """Resolve a hook reference to a callable.

    Args:
        reference: A callable, None, or a string ``"module:function"`` or
            ``"path/to/file.py:function"``. File paths are resolved against
            base_dir.
        base_dir: Directory for relative file references.

    Returns:
        The callable, or None if reference is None.

    Raises:
        ConfigError: If the reference is malformed or cannot be resolved.
    """
    if reference is None or callable(reference):
        return reference
    if not isinstance(reference, str):
        raise ConfigError(f"Hook must be a string reference, got {reference!r}")

    target, sep, attribute = reference.rpartition(":")
    if not sep or not target or not attribute:
        raise ConfigError(
            f'Invalid hook reference "{reference}". '
            'Use "module:function" or "path/to/file.py:function"'
        )

    if target.endswith(".py"):
        path = Path(target)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        if not path.is_file():
            raise ConfigError(f'Hook file "{path}" does not exist')
        module = _load_module_from_file(path)
    else:
        try:
            module = importlib.import_module(target)
        except ImportError as err:
            raise ConfigError(f'Cannot import hook module "{target}": {err}') from err

    function = getattr(module, attribute, None)
    if not callable(function):
        raise ConfigError(f'"{attribute}" in "{target}" is not a callable')
    return function


async def run_hook(hook: Hook | None, context: PackContext) -> None:
    """Invoke a hook, awaiting it if it is async."""
    if hook is None:
        return
    result = hook(context)
    if inspect.isawaitable(result):
        await result


class Framework:
    """Prepares the stage directory for an architecture.

    Attributes:
        name: Framework name used in log output.
        version: Runtime version, if known.
        node_modules_handled_externally: True if the framework bundles
            dependencies itself, so no dependency pass is run.
    """

    name = "none"
    version = ""
    node_modules_handled_externally = False

    async def prepare_application_stage_directory(self, options: StageOptions) -> None:
        options.app_out_dir.mkdir(parents=True, exist_ok=True)


class DirectoryFramework(Framework):
    """Copies a prebuilt runtime template into the stage directory.

    Args:
        runtime_dir: Template directory, or None for an empty stage.
        version: Runtime version for log output.
    """

    name = "directory"

    def __init__(self, runtime_dir: Path | None = None, version: str = "") -> None:
        self.runtime_dir = runtime_dir
        self.version = version

    def _copy_template(self, app_out_dir: Path) -> None:
        logger = get_global_logger()
        if self.runtime_dir is None:
            return
        if not self.runtime_dir.is_dir():
            raise PackagingError(f"Runtime directory not found: {self.runtime_dir}")

        logger.verbose("PACK", f"Copying runtime template: {self.runtime_dir}")
        for item in sorted(self.runtime_dir.iterdir()):
            dest = app_out_dir / item.name
            if item.is_dir():
                shutil.copytree(item, dest, symlinks=True, dirs_exist_ok=True)
                logger.debug("PACK", f"  Copied directory: {item.name}/")
            else:
                shutil.copy2(item, dest)
                logger.debug("PACK", f"  Copied file: {item.name}")

    async def prepare_application_stage_directory(self, options: StageOptions) -> None:
        await super().prepare_application_stage_directory(options)
        try:
            await asyncio.to_thread(self._copy_template, options.app_out_dir)
        except OSError as err:
            raise PackagingError(
                f"Cannot prepare stage directory {options.app_out_dir}: {err}"
            ) from err


class Signer:
    """Signs a packed application."""

    async def sign(self, context: PackContext, is_archived: bool) -> bool:
        """Sign the application in context.app_out_dir.

        Returns:
            True if anything was signed.
        """
        raise NotImplementedError


class NoOpSigner(Signer):
    """Default signer: succeeds without signing."""

    async def sign(self, context: PackContext, is_archived: bool) -> bool:
        get_global_logger().debug("SIGN", "No signer configured, skipping signing")
        return False


class CommandSigner(Signer):
    """Runs an external signing command.

    Arguments may contain ``${appOutDir}``, ``${arch}``, ``${platform}`` and
    ``${archived}``, substituted per pack.

    Args:
        command: Executable followed by its arguments.
        env: Extra environment variables.
        timeout: Seconds before the command is killed.
    """

    def __init__(
        self,
        command: Sequence[str],
        env: dict[str, str] | None = None,
        timeout: float = 600,
    ) -> None:
        if not command:
            raise ConfigError("Signing command must not be empty")
        self.command = list(command)
        self.env = env or {}
        self.timeout = timeout

    def _substitute(self, arg: str, context: PackContext, is_archived: bool) -> str:
        values = {
            "${appOutDir}": str(context.app_out_dir),
            "${arch}": context.arch.value,
            "${platform}": context.platform_name,
            "${archived}": "true" if is_archived else "false",
        }
        for placeholder, value in values.items():
            arg = arg.replace(placeholder, value)
        return arg

    async def sign(self, context: PackContext, is_archived: bool) -> bool:
        tool, *args = [self._substitute(a, context, is_archived) for a in self.command]
        tool_path = Path(shutil.which(tool) or tool)
        get_global_logger().verbose("SIGN", f"Signing {context.app_out_dir} with {tool_path.name}")
        await execute_tool(tool_path, args, env=self.env, timeout=self.timeout)
        return True


class FunctionSigner(Signer):
    """Calls a signing hook ``(context, is_archived)``, sync or async."""

    def __init__(self, function: Callable[..., Any]) -> None:
        self.function = function

    async def sign(self, context: PackContext, is_archived: bool) -> bool:
        result = self.function(context, is_archived)
        if inspect.isawaitable(result):
            result = await result
        return result is not False


def create_signer(value: Any, base_dir: Path | None = None) -> Signer:
    """Create a signer from the ``sign`` configuration value.

    Accepted values:
        - None: NoOpSigner
        - a Signer instance or a callable
        - a function reference string (``"module:function"``)
        - a command list (``["signtool", "sign", "${appOutDir}"]``)
        - a mapping ``{command: [...], env: {...}, timeout: 600}``

    Raises:
        ConfigError: If the value has an unsupported shape.
    """
    if value is None:
        return NoOpSigner()
    if isinstance(value, Signer):
        return value
    if isinstance(value, str) or callable(value):
        return FunctionSigner(resolve_function(value, base_dir))
    if isinstance(value, list):
        return CommandSigner([str(v) for v in value])
    if isinstance(value, dict) and "command" in value:
        command = value["command"]
        if isinstance(command, str):
            command = command.split()
        return CommandSigner(
            [str(v) for v in command],
            env={str(k): str(v) for k, v in (value.get("env") or {}).items()},
            timeout=float(value.get("timeout", 600)),
        )
    raise ConfigError(f"Unsupported sign configuration: {value!r}")
