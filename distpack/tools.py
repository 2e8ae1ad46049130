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

"""External helper tools.

distpack delegates icon conversion (and optionally signing) to external
executables. A tool is located in this order:

1. ``tools.<name>.path`` in the build configuration
2. The ``DISTPACK_<NAME>_TOOL`` environment variable
3. The tool cache (``tools.cache_dir``, ``DISTPACK_CACHE_DIR`` or
   ``~/.cache/distpack/tools``)
4. The executable name on PATH
5. A download from ``tools.<name>.url`` into the tool cache

Tools run as asyncio subprocesses. JSON-speaking tools print a single JSON
object on stdout; an ``error`` key is a user-fixable configuration problem,
anything unparseable is a tool failure.

Example:
    from distpack.tools import find_tool, execute_tool_json

    tool = find_tool("icon", config.get("tools"))
    result = await execute_tool_json(tool, ["icon", "--format", "ico", ...])
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
import json
import os
from pathlib import Path
import shutil
from typing import Any

from distpack.exceptions import ConfigError, ToolError
from distpack.io import download_file
from distpack.logging import get_global_logger

__all__ = [
    "IconInfo",
    "execute_tool",
    "execute_tool_json",
    "find_tool",
    "get_tool_cache_dir",
    "resolve_icon",
]

DEFAULT_TOOL_NAMES = {"icon": "distpack-icon", "sign": "distpack-sign"}
DEFAULT_TIMEOUT = 300


@dataclass(frozen=True)
class IconInfo:
    """An icon produced or validated by the icon tool.

    Attributes:
        file: Path to the icon file.
        size: Edge length in pixels.
    """

    file: Path
    size: int


def get_tool_cache_dir(tools_config: dict[str, Any] | None = None) -> Path:
    """Return the directory where downloaded tools are cached."""
    tools_config = tools_config or {}
    if tools_config.get("cache_dir"):
        return Path(tools_config["cache_dir"]).expanduser()
    env = os.environ.get("DISTPACK_CACHE_DIR")
    if env:
        return Path(env).expanduser() / "tools"
    return Path.home() / ".cache" / "distpack" / "tools"


def find_tool(name: str, tools_config: dict[str, Any] | None = None) -> Path:
    """Locate (or download) an external tool.

    Args:
        name: Tool key ("icon", "sign").
        tools_config: The ``tools`` configuration mapping.

    Returns:
        Path to the executable.

    Raises:
        ConfigError: If a configured path does not exist.
        ToolError: If the tool cannot be found and no URL is configured.
        NetworkError: If downloading the tool fails.
    """
    logger = get_global_logger()
    tools_config = tools_config or {}
    tool_config = tools_config.get(name) or {}
    executable = tool_config.get("name") or DEFAULT_TOOL_NAMES.get(name, name)

    configured = tool_config.get("path")
    if configured:
        path = Path(configured).expanduser()
        if not path.is_file():
            raise ConfigError(f'Configured {name} tool "{path}" does not exist')
        return path

    env_path = os.environ.get(f"DISTPACK_{name.upper()}_TOOL")
    if env_path:
        return Path(env_path)

    cache_dir = get_tool_cache_dir(tools_config)
    cached = cache_dir / executable
    if cached.is_file():
        logger.verbose("TOOL", f"Using cached {name} tool: {cached}")
        return cached

    found = shutil.which(executable)
    if found:
        return Path(found)

    url = tool_config.get("url")
    if not url:
        raise ToolError(
            f'{name} tool "{executable}" not found. Install it on PATH, or set '
            f"tools.{name}.path or tools.{name}.url in the configuration"
        )

    logger.verbose("TOOL", f"Downloading {name} tool from {url}...")
    path, _ = download_file(
        url,
        cache_dir,
        filename=executable,
        expected_sha256=tool_config.get("sha256"),
    )
    path.chmod(0o755)
    logger.verbose("TOOL", f"[OK] {name} tool cached: {path}")
    return path


async def execute_tool(
    tool_path: Path,
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Run a tool and return its stdout.

    Raises:
        ToolError: If the tool cannot be started, times out, or exits
            non-zero.
    """
    logger = get_global_logger()
    cmd = [str(tool_path), *args]
    logger.verbose("TOOL", f"Running: {' '.join(cmd)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env={**os.environ, **env} if env else None,
        )
    except OSError as err:
        raise ToolError(f"Cannot run {tool_path}: {err}") from err

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError as err:
        process.kill()
        await process.wait()
        raise ToolError(f"{tool_path.name} timed out after {timeout}s") from err

    if process.returncode != 0:
        message = f"{tool_path.name} failed (exit code {process.returncode})"
        if stderr:
            message += f"\n{stderr.decode('utf-8', errors='replace').strip()}"
        raise ToolError(message)

    for line in stderr.decode("utf-8", errors="replace").splitlines():
        logger.debug("TOOL", f"  {line}")
    return stdout.decode("utf-8", errors="replace")


async def execute_tool_json(tool_path: Path, args: Sequence[str], **kwargs: Any) -> dict[str, Any]:
    """Run a JSON-speaking tool.

    Raises:
        ConfigError: If the result carries an ``error``.
        ToolError: If the output is not a JSON object.
    """
    raw = await execute_tool(tool_path, args, **kwargs)
    try:
        result = json.loads(raw)
    except json.JSONDecodeError as err:
        raise ToolError(f"Cannot parse result: {err}: {raw}") from err
    if not isinstance(result, dict):
        raise ToolError(f"Cannot parse result: expected a JSON object: {raw}")

    error = result.get("error")
    if error:
        code = result.get("errorCode")
        raise ConfigError(f"{error} (code: {code})" if code else str(error))
    return result


async def resolve_icon(
    tool_path: Path,
    sources: Sequence[str],
    output_format: str,
    roots: Sequence[Path],
    out_dir: Path,
) -> list[IconInfo]:
    """Convert or validate icon candidates with the icon tool.

    The tool is called even when a source already has the target format,
    because it also validates icon sizes.

    Args:
        tool_path: Icon tool executable.
        sources: Candidate sources, in priority order (files or dirs).
        output_format: "icns", "ico" or "set".
        roots: Directories the sources are resolved against.
        out_dir: Directory for converted icons.

    Returns:
        Icons reported by the tool, best first. Empty if no source exists.
    """
    args = ["icon", "--format", output_format]
    for root in roots:
        args += ["--root", str(root)]
    args += ["--out", str(out_dir)]
    for source in sources:
        args += ["--input", source]

    result = await execute_tool_json(tool_path, args)
    icons = []
    for icon in result.get("icons") or []:
        try:
            icons.append(IconInfo(file=Path(icon["file"]), size=int(icon.get("size", 0))))
        except (KeyError, TypeError, ValueError) as err:
            raise ToolError(f"Cannot parse icon entry {icon!r}: {err}") from err
    return icons
