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

"""Reading archives written by ArchivePackager.

Example:
    from pathlib import Path
    from distpack.archive import extract_archive, list_archive

    for path in list_archive(Path("dist/linux-unpacked/resources/app.asar")):
        print(path)
    extract_archive(Path("dist/linux-unpacked/resources/app.asar"), Path("out"))
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from distpack.archive.format import UNPACKED_SUFFIX, decode_header, iter_files
from distpack.exceptions import ConfigError, PackagingError
from distpack.logging import get_global_logger

__all__ = [
    "ArchiveHeader",
    "check_file_in_archive",
    "extract_archive",
    "list_archive",
    "read_archive_file",
    "read_archive_header",
    "read_leaf",
    "unpacked_dir_for",
]


def unpacked_dir_for(archive_path: Path) -> Path:
    """Directory mirroring the unpacked files of an archive."""
    return archive_path.with_name(archive_path.name + UNPACKED_SUFFIX)


@dataclass(frozen=True)
class ArchiveHeader:
    """Decoded archive header.

    Attributes:
        archive_path: Archive the header was read from.
        tree: Header directory tree.
        body_offset: Absolute file offset of the body.
    """

    archive_path: Path
    tree: dict[str, Any]
    body_offset: int

    def get_node(self, path: str) -> dict[str, Any] | None:
        """Return the header node for an archive-relative path, or None."""
        node = self.tree
        for part in PurePosixPath(path).parts:
            children = node.get("files")
            if not isinstance(children, dict) or part not in children:
                return None
            node = children[part]
        return node

    def files(self) -> list[tuple[str, dict[str, Any]]]:
        return list(iter_files(self.tree))


def read_archive_header(archive_path: Path) -> ArchiveHeader:
    """Read and decode the header of an archive.

    Raises:
        PackagingError: If the file cannot be read or is not an archive.
    """
    try:
        with archive_path.open("rb") as f:
            tree, body_offset = decode_header(f)
    except OSError as err:
        raise PackagingError(f"Cannot read archive {archive_path}: {err}") from err
    return ArchiveHeader(archive_path, tree, body_offset)


def list_archive(archive_path: Path) -> list[str]:
    """List the file paths recorded in an archive, sorted."""
    return [path for path, _ in iter_files(read_archive_header(archive_path).tree)]


def read_leaf(header: ArchiveHeader, path: str, leaf: dict[str, Any]) -> bytes:
    """Return the bytes of a header leaf from the body or the unpacked mirror."""
    size = int(leaf.get("size", 0))
    if leaf.get("unpacked"):
        mirrored = unpacked_dir_for(header.archive_path) / path
        try:
            return mirrored.read_bytes()
        except OSError as err:
            raise PackagingError(
                f'Unpacked file "{path}" is missing beside {header.archive_path}: {err}'
            ) from err

    try:
        offset = int(leaf["offset"])
    except (KeyError, ValueError) as err:
        raise PackagingError(f'Archive entry "{path}" has no valid offset') from err

    with header.archive_path.open("rb") as f:
        f.seek(header.body_offset + offset)
        data = f.read(size)
    if len(data) != size:
        raise PackagingError(f'Archive entry "{path}" is truncated')
    return data


def read_archive_file(archive_path: Path, path: str, header: ArchiveHeader | None = None) -> bytes:
    """Read one file from an archive (body or unpacked mirror).

    Raises:
        PackagingError: If the path is not a file in the archive or its
            bytes cannot be read.
    """
    header = header or read_archive_header(archive_path)
    leaf = header.get_node(path)
    if leaf is None or "files" in leaf:
        raise PackagingError(f'"{path}" is not a file in {archive_path}')
    return read_leaf(header, path, leaf)


def extract_archive(archive_path: Path, dest_dir: Path) -> list[Path]:
    """Reconstruct the archived directory tree under dest_dir.

    Returns:
        Extracted file paths in sorted archive order.
    """
    header = read_archive_header(archive_path)
    extracted = []
    for path, leaf in header.files():
        target = dest_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(read_leaf(header, path, leaf))
        if leaf.get("executable"):
            target.chmod(0o755)
        extracted.append(target)

    get_global_logger().verbose(
        "ARCHIVE", f"Extracted {len(extracted)} file(s) to {dest_dir}"
    )
    return extracted


def check_file_in_archive(archive_path: Path, relative_file: str, message_prefix: str) -> None:
    """Check that a file exists in an archive and is not empty.

    Raises:
        ConfigError: If the archive is missing or corrupt, or the file is
            absent, a directory, or zero bytes.
    """

    def _error(text: str) -> ConfigError:
        return ConfigError(f'{message_prefix} "{relative_file}" in the "{archive_path}" {text}')

    if not archive_path.is_file():
        raise _error("does not exist. Seems like a wrong configuration.")

    try:
        header = read_archive_header(archive_path)
    except PackagingError as err:
        raise _error(f"is corrupted: {err}") from err

    leaf = header.get_node(relative_file)
    if leaf is None:
        raise _error("does not exist. Seems like a wrong configuration.")
    if "files" in leaf:
        raise _error("is not a file. Seems like a wrong configuration.")
    if int(leaf.get("size", 0)) == 0:
        raise _error("is corrupted: size 0")
