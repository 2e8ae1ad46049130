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

"""File set computation and copying.

A FileSet groups the files resolved by one matcher (or one dependency
package) under a common destination root. Each FileSetEntry records the
source file, its destination relative to that root, and optionally
transformed content that replaces the source bytes.

Directory walks and plain copies run in worker threads; transformed
content is read and written with aiofiles. Copies run with bounded
concurrency, and when two entries target the same path the later entry
wins.

Example:
    file_sets = await compute_file_sets(matchers, transformer, exclude_set)
    await copy_file_sets(file_sets)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
import json
import os
from pathlib import Path, PurePosixPath
import shutil
import stat

import aiofiles

from distpack.appinfo import PACKAGE_DESCRIPTOR, load_app_metadata
from distpack.exceptions import PackagingError
from distpack.files.matcher import ExcludeSet, FileMatcher
from distpack.logging import get_global_logger
from distpack.transform import FileTransformer

__all__ = [
    "FileSet",
    "FileSetEntry",
    "collect_dependency_dirs",
    "compute_file_sets",
    "compute_node_module_file_sets",
    "copy_file_sets",
    "copy_files",
    "transform_files",
]

DEFAULT_COPY_CONCURRENCY = 8


@dataclass(frozen=True)
class FileSetEntry:
    """One resolved file.

    Attributes:
        source: Absolute source path.
        destination: POSIX path relative to the owning FileSet destination.
        content: Replacement bytes, or None to copy the source unchanged.
        mode: Permission bits of the source file.
        size: Size of the source file in bytes.
        link: Relative symlink target to recreate instead of copying.
    """

    source: Path
    destination: str
    content: bytes | None = None
    mode: int = 0o644
    size: int = 0
    link: str | None = None

    @property
    def is_executable(self) -> bool:
        return bool(self.mode & 0o111)

    @property
    def data_size(self) -> int:
        """Size of the bytes that end up at the destination."""
        return len(self.content) if self.content is not None else self.size


@dataclass
class FileSet:
    """Ordered entries sharing a destination root.

    Attributes:
        src: Source root the entries were resolved from.
        destination: Destination root.
        entries: Entries in match order.
    """

    src: Path
    destination: Path
    entries: list[FileSetEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def target_path(self, entry: FileSetEntry) -> Path:
        return self.destination / entry.destination


def _build_file_set(
    matcher: FileMatcher,
    matches: list[tuple[Path, Path]],
    src: Path,
    is_archived: bool,
) -> FileSet:
    file_set = FileSet(src=src, destination=matcher.to_dir)
    if matcher.from_dir.is_file():
        file_set.destination = matcher.to_dir.parent

    real_root = matcher.from_dir.resolve()
    for source, dest in matches:
        relative = dest.relative_to(file_set.destination).as_posix()
        try:
            info = source.stat()
        except OSError as err:
            raise PackagingError(f"Cannot read {source}: {err}") from err

        link = None
        if not is_archived and source.is_symlink():
            target = source.resolve()
            if real_root in target.parents:
                link = os.path.relpath(target, source.parent)

        file_set.entries.append(
            FileSetEntry(
                source=source,
                destination=relative,
                mode=stat.S_IMODE(info.st_mode),
                size=info.st_size,
                link=link,
            )
        )
    return file_set


async def _read_bytes(path: Path) -> bytes:
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except OSError as err:
        raise PackagingError(f"Cannot read {path}: {err}") from err


async def transform_files(
    transformer: FileTransformer | None, file_set: FileSet
) -> None:
    """Apply transformer to the entries of file_set in place.

    Entries that already carry content, links, and entries the transformer
    does not handle are left untouched.
    """
    if transformer is None:
        return

    for index, entry in enumerate(file_set.entries):
        if entry.content is not None or entry.link is not None:
            continue
        if not transformer.handles(entry.destination):
            continue
        data = await _read_bytes(entry.source)
        result = transformer.transform(entry.destination, data)
        if result is not None:
            file_set.entries[index] = replace(entry, content=result)


async def compute_file_sets(
    matchers: Sequence[FileMatcher],
    transformer: FileTransformer | None = None,
    exclude_set: ExcludeSet | None = None,
    *,
    is_archived: bool = False,
    skip_node_modules: bool = False,
) -> list[FileSet]:
    """Resolve matchers into file sets.

    Args:
        matchers: Matchers in priority order.
        transformer: Applied to every entry it handles.
        exclude_set: Patterns of sibling matchers to leave out.
        is_archived: The sets feed an archive. Symlinks are always followed
            for archives; otherwise links inside the source root are kept
            as relative links.
        skip_node_modules: Leave out ``node_modules`` at the root of each
            matcher (dependencies are collected by a second pass).

    Returns:
        One FileSet per matcher that matched at least one file, in matcher
        order.
    """
    logger = get_global_logger()
    prune = (lambda rel: rel == "node_modules") if skip_node_modules else None

    file_sets: list[FileSet] = []
    for matcher in matchers:
        matches = await asyncio.to_thread(matcher.match, exclude_set, prune=prune)
        file_set = await asyncio.to_thread(
            _build_file_set, matcher, matches, matcher.from_dir, is_archived
        )
        await transform_files(transformer, file_set)
        if file_set.entries:
            file_sets.append(file_set)
        logger.debug("FILES", f"{len(file_set)} file(s) from {matcher.from_dir}")
    return file_sets


def _resolve_module(package_dir: Path, name: str, app_dir: Path) -> Path | None:
    current = package_dir
    while True:
        candidate = current / "node_modules" / name
        if candidate.is_dir():
            return candidate
        if current == app_dir or app_dir not in current.parents:
            return None
        current = current.parent


def _read_descriptor(package_dir: Path) -> dict:
    descriptor = package_dir / PACKAGE_DESCRIPTOR
    try:
        data = json.loads(descriptor.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as err:
        get_global_logger().debug("FILES", f"Cannot read {descriptor}: {err}")
        return {}
    return data if isinstance(data, dict) else {}


def collect_dependency_dirs(app_dir: Path) -> list[Path]:
    """Collect production dependency directories of an application.

    Follows ``dependencies`` and ``optionalDependencies`` transitively,
    resolving each name the way the runtime module loader does (nearest
    ``node_modules`` walking up to app_dir). Missing optional dependencies
    are skipped silently, missing required ones with a warning.

    Returns:
        Dependency directories sorted by path.
    """
    logger = get_global_logger()
    app_dir = app_dir.absolute()
    queue: list[tuple[Path, dict]] = [(app_dir, load_app_metadata(app_dir))]
    found: set[Path] = set()

    while queue:
        package_dir, descriptor = queue.pop(0)
        required = descriptor.get("dependencies") or {}
        optional = descriptor.get("optionalDependencies") or {}
        for name in sorted({*required, *optional}):
            dep_dir = _resolve_module(package_dir, name, app_dir)
            if dep_dir is None:
                if name not in optional:
                    logger.warning(
                        "FILES",
                        f'Dependency "{name}" of {package_dir} is not installed, '
                        "run your package manager install first",
                    )
                continue
            if dep_dir in found:
                continue
            found.add(dep_dir)
            queue.append((dep_dir, _read_descriptor(dep_dir)))

    return sorted(found, key=lambda p: p.relative_to(app_dir).as_posix())


async def compute_node_module_file_sets(
    app_dir: Path,
    matcher: FileMatcher,
    exclude_set: ExcludeSet | None = None,
    transformer: FileTransformer | None = None,
) -> list[FileSet]:
    """Resolve production dependencies into one FileSet per package.

    Entries are relative to the application destination root
    (``node_modules/<name>/...``). Nested ``node_modules`` directories are
    not walked; nested dependencies get their own FileSet.
    """
    dep_dirs = await asyncio.to_thread(collect_dependency_dirs, app_dir)

    def _prune(relative: str) -> bool:
        return PurePosixPath(relative).name == "node_modules"

    file_sets: list[FileSet] = []
    for dep_dir in dep_dirs:
        matches = await asyncio.to_thread(
            matcher.match, exclude_set, root=dep_dir, prune=_prune
        )
        file_set = await asyncio.to_thread(
            _build_file_set, matcher, matches, dep_dir, True
        )
        await transform_files(transformer, file_set)
        if file_set.entries:
            file_sets.append(file_set)

    get_global_logger().debug(
        "FILES", f"{len(file_sets)} dependency package(s) in {app_dir}"
    )
    return file_sets


def _prepare_target(target: Path, is_link: bool) -> None:
    """Create the parent directory and remove a stale link at the target.

    An existing symlink is always removed so writes never go through it.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.is_symlink() or (is_link and target.exists()):
        target.unlink()


async def _copy_entry(target: Path, entry: FileSetEntry) -> None:
    try:
        await asyncio.to_thread(_prepare_target, target, entry.link is not None)
        if entry.link is not None:
            await asyncio.to_thread(os.symlink, entry.link, target)
        elif entry.content is not None:
            async with aiofiles.open(target, "wb") as f:
                await f.write(entry.content)
            await asyncio.to_thread(os.chmod, target, entry.mode)
        else:
            await asyncio.to_thread(shutil.copy2, entry.source, target)
    except OSError as err:
        raise PackagingError(f"Cannot copy {entry.source} to {target}: {err}") from err


async def copy_file_sets(
    file_sets: Sequence[FileSet],
    transformer: FileTransformer | None = None,
    concurrency: int = DEFAULT_COPY_CONCURRENCY,
) -> int:
    """Copy file sets to their destinations.

    Args:
        file_sets: Sets in priority order; a later entry at the same target
            path replaces an earlier one.
        transformer: Applied to entries without content before copying.
        concurrency: Maximum number of files copied at once.

    Returns:
        Number of files written.
    """
    for file_set in file_sets:
        await transform_files(transformer, file_set)

    targets: dict[Path, FileSetEntry] = {}
    for file_set in file_sets:
        for entry in file_set.entries:
            target = file_set.target_path(entry)
            targets.pop(target, None)
            targets[target] = entry

    semaphore = asyncio.Semaphore(concurrency)

    async def _bounded(target: Path, entry: FileSetEntry) -> None:
        async with semaphore:
            await _copy_entry(target, entry)

    await asyncio.gather(*(_bounded(t, e) for t, e in targets.items()))
    get_global_logger().debug("FILES", f"Copied {len(targets)} file(s)")
    return len(targets)


async def copy_files(
    matchers: Sequence[FileMatcher] | None,
    transformer: FileTransformer | None = None,
    exclude_set: ExcludeSet | None = None,
) -> int:
    """Resolve matchers and copy their files directly."""
    if not matchers:
        return 0
    file_sets = await compute_file_sets(matchers, None, exclude_set)
    return await copy_file_sets(file_sets, transformer)
