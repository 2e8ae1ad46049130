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

"""Archive assembly from file sets.

ArchivePackager turns the file sets of one application into a single
archive file plus a mirror directory of unpacked files:

1. Entries are keyed by archive-relative path; a later entry at the same
   path replaces an earlier one.
2. Entries accepted by the unpack filter (and native ``.node`` modules when
   smart unpacking is on) are unpacked.
3. Body entries get offsets equal to the running sum of prior body sizes.
4. The header is written, then the body, to ``<archive>.part`` which is
   renamed into place once complete.
5. Unpacked entries are copied to ``<archive>.unpacked/<path>``.
6. The integrity record is computed over the finished archive.

Design Principles:
    - Identical inputs produce byte-identical archives
    - Exempt paths carry no per-file integrity (external_allowed mode)
    - Archiving never modifies the source tree

Example:
    from pathlib import Path
    from distpack.archive import ArchivePackager

    packager = ArchivePackager(
        root_dir=Path("dist/linux-unpacked/resources/app"),
        archive_path=Path("dist/linux-unpacked/resources/app.asar"),
        unpack_filter=lambda path: path.endswith(".node"),
    )
    result = await packager.pack(file_sets)
    print(result.body_size)
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Sequence
from dataclasses import dataclass
import os
from pathlib import Path, PurePosixPath
import shutil
from typing import Any

import aiofiles

from distpack.archive.format import encode_header, file_integrity
from distpack.archive.integrity import compute_integrity
from distpack.archive.reader import unpacked_dir_for
from distpack.exceptions import PackagingError
from distpack.files.fileset import FileSet, FileSetEntry
from distpack.files.matcher import GlobPattern, UnpackFilter
from distpack.logging import get_global_logger
from distpack.results import ArchiveResult

__all__ = ["ArchiveOptions", "ArchivePackager"]

_NATIVE_LIBRARY_SUFFIXES = (".dll", ".exe", ".dylib", ".so")


@dataclass(frozen=True)
class ArchiveOptions:
    """Options of the ``archive`` configuration mapping.

    Attributes:
        smart_unpack: Unpack native modules automatically.
        external_allowed: Files outside the archive may be modified after
            archiving; exempt paths get no per-file integrity.
        exempt: Glob patterns of exempt paths. When empty in
            external_allowed mode, every unpacked path is exempt.
    """

    smart_unpack: bool = True
    external_allowed: bool = False
    exempt: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, value: dict[str, Any]) -> ArchiveOptions:
        exempt = value.get("exempt") or ()
        if isinstance(exempt, str):
            exempt = (exempt,)
        return cls(
            smart_unpack=bool(value.get("smart_unpack", True)),
            external_allowed=bool(value.get("external_allowed", False)),
            exempt=tuple(exempt),
        )


def _is_native_module(path: str) -> bool:
    posix = PurePosixPath(path)
    if posix.suffix == ".node":
        return True
    return "node_modules" in posix.parts and posix.suffix in _NATIVE_LIBRARY_SUFFIXES


class ArchivePackager:
    """Writes file sets into a single archive.

    Args:
        root_dir: Destination directory the archive stands in for. Entry
            paths in the archive are relative to it.
        archive_path: Archive file to write.
        unpack_filter: Predicate over archive-relative paths selecting
            files stored beside the archive.
        options: Archive options.
        exempt_paths: Explicit set of exempt archive-relative paths. Takes
            precedence over ``options.exempt``.
    """

    def __init__(
        self,
        root_dir: Path,
        archive_path: Path,
        unpack_filter: UnpackFilter | None = None,
        options: ArchiveOptions | None = None,
        exempt_paths: Collection[str] | None = None,
    ) -> None:
        self.root_dir = root_dir
        self.archive_path = archive_path
        self.unpack_filter = unpack_filter
        self.options = options or ArchiveOptions()
        self.exempt_paths = exempt_paths

    @property
    def unpacked_dir(self) -> Path:
        return unpacked_dir_for(self.archive_path)

    def _collect(self, file_sets: Sequence[FileSet]) -> dict[str, FileSetEntry]:
        entries: dict[str, FileSetEntry] = {}
        for file_set in file_sets:
            for entry in file_set.entries:
                target = file_set.target_path(entry)
                try:
                    relative = target.relative_to(self.root_dir).as_posix()
                except ValueError:
                    raise PackagingError(
                        f"{target} is outside the archive root {self.root_dir}"
                    ) from None
                # last write wins; re-insert so body order follows the survivor
                entries.pop(relative, None)
                entries[relative] = entry
        return entries

    def _is_unpacked(self, relative: str) -> bool:
        if self.unpack_filter is not None and self.unpack_filter(relative):
            return True
        return self.options.smart_unpack and _is_native_module(relative)

    def _resolve_exempt(self, unpacked: set[str], paths: Collection[str]) -> set[str]:
        if not self.options.external_allowed:
            return set()
        if self.exempt_paths is not None:
            return set(self.exempt_paths)
        if self.options.exempt:
            patterns = [GlobPattern.compile(p) for p in self.options.exempt]
            return {p for p in paths if any(g.matches(p) for g in patterns)}
        return set(unpacked)

    def _build_header(
        self,
        entries: dict[str, FileSetEntry],
        unpacked: set[str],
        exempt: set[str],
    ) -> tuple[dict[str, Any], list[bytes], dict[str, bytes], int]:
        # bytes are kept so the written files match the header integrity
        tree: dict[str, Any] = {"files": {}}
        body: list[bytes] = []
        unpacked_data: dict[str, bytes] = {}
        offset = 0

        for relative, entry in entries.items():
            parts = PurePosixPath(relative).parts
            node = tree
            for part in parts[:-1]:
                child = node["files"].setdefault(part, {"files": {}})
                if "files" not in child:
                    raise PackagingError(
                        f'Cannot archive "{relative}": "{part}" is already a file'
                    )
                node = child
            if "files" in node["files"].get(parts[-1], {}):
                raise PackagingError(f'Cannot archive "{relative}": it is a directory')

            data = entry.content
            if data is None:
                try:
                    data = entry.source.read_bytes()
                except OSError as err:
                    raise PackagingError(f"Cannot read {entry.source}: {err}") from err

            leaf: dict[str, Any] = {"size": len(data)}
            if entry.is_executable:
                leaf["executable"] = True
            if relative in unpacked:
                leaf["unpacked"] = True
                unpacked_data[relative] = data
            else:
                leaf["offset"] = str(offset)
                offset += len(data)
                body.append(data)
            if relative not in exempt:
                leaf["integrity"] = file_integrity(data)

            node["files"][parts[-1]] = leaf

        return tree, body, unpacked_data, offset

    async def _write_archive(self, header: bytes, body: list[bytes]) -> None:
        part = self.archive_path.with_name(self.archive_path.name + ".part")
        try:
            await asyncio.to_thread(self.archive_path.parent.mkdir, parents=True, exist_ok=True)
            async with aiofiles.open(part, "wb") as out:
                await out.write(header)
                for data in body:
                    await out.write(data)
            os.replace(part, self.archive_path)
        except OSError as err:
            raise PackagingError(f"Cannot write archive {self.archive_path}: {err}") from err

    async def _write_unpacked(self, relative: str, entry: FileSetEntry, data: bytes) -> None:
        target = self.unpacked_dir / relative
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
            await asyncio.to_thread(os.chmod, target, entry.mode)
        except OSError as err:
            raise PackagingError(f"Cannot copy {entry.source} to {target}: {err}") from err

    async def pack(self, file_sets: Sequence[FileSet]) -> ArchiveResult:
        """Write the archive and its unpacked mirror.

        Returns:
            ArchiveResult with counts and the integrity record.

        Raises:
            PackagingError: If a source cannot be read, the archive cannot be
                written, or two entries conflict as file and directory.
        """
        logger = get_global_logger()

        entries = self._collect(file_sets)
        unpacked = {relative for relative in entries if self._is_unpacked(relative)}
        exempt = self._resolve_exempt(unpacked, list(entries))

        tree, body, unpacked_data, body_size = await asyncio.to_thread(
            self._build_header, entries, unpacked, exempt
        )
        await self._write_archive(encode_header(tree), body)

        if self.unpacked_dir.exists():
            await asyncio.to_thread(shutil.rmtree, self.unpacked_dir)
        for relative in sorted(unpacked):
            await self._write_unpacked(relative, entries[relative], unpacked_data[relative])

        integrity = await asyncio.to_thread(
            compute_integrity,
            self.archive_path.parent,
            external_allowed=self.options.external_allowed,
            exempt_paths=exempt,
        )

        logger.verbose(
            "ARCHIVE",
            f"Wrote {self.archive_path.name}: {len(entries)} file(s), "
            f"{len(unpacked)} unpacked, {body_size} body bytes",
        )
        return ArchiveResult(
            archive_path=self.archive_path,
            unpacked_dir=self.unpacked_dir,
            file_count=len(entries),
            unpacked_count=len(unpacked),
            body_size=body_size,
            integrity=integrity,
        )
