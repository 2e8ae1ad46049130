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

"""Archive integrity computation and verification.

Two levels of integrity exist:

- Archive level: an IntegrityRecord holds the SHA-512 digest of every
  archive file in a resources directory. It is computed once, right after
  the archive is written, and before signing touches anything.
- File level: each header leaf carries a SHA-256 hash of the file plus
  per-block hashes (see distpack.archive.format). Leaves of exempt paths
  carry none, so modifying those files after archiving (signing unpacked
  binaries) invalidates nothing.
"""

from __future__ import annotations

import base64
from collections.abc import Collection
import hashlib
from pathlib import Path

from distpack.archive.format import ARCHIVE_NAME, BLOCK_SIZE, file_integrity
from distpack.archive.reader import read_archive_header, read_leaf
from distpack.exceptions import PackagingError
from distpack.logging import get_global_logger
from distpack.results import IntegrityRecord, VerifyResult

__all__ = ["compute_integrity", "hash_archive", "verify_archive_integrity"]

_ARCHIVE_SUFFIX = "." + ARCHIVE_NAME.rsplit(".", 1)[-1]


def hash_archive(archive_path: Path) -> str:
    """Return the base64 SHA-512 digest of an archive file."""
    digest = hashlib.sha512()
    try:
        with archive_path.open("rb") as f:
            for chunk in iter(lambda: f.read(BLOCK_SIZE), b""):
                digest.update(chunk)
    except OSError as err:
        raise PackagingError(f"Cannot read archive {archive_path}: {err}") from err
    return base64.b64encode(digest.digest()).decode("ascii")


def compute_integrity(
    resources_dir: Path,
    *,
    external_allowed: bool = False,
    exempt_paths: Collection[str] = (),
) -> IntegrityRecord:
    """Compute the integrity record of the archives in resources_dir.

    Args:
        resources_dir: Directory holding one or more archive files.
        external_allowed: Record that files outside the archives may be
            modified after archiving.
        exempt_paths: Archive-relative paths written without per-file
            integrity. Ignored unless external_allowed is set.
    """
    checksums = {
        path.name: hash_archive(path)
        for path in sorted(resources_dir.glob(f"*{_ARCHIVE_SUFFIX}"))
        if path.is_file()
    }
    exempt = frozenset(exempt_paths) if external_allowed else frozenset()

    get_global_logger().debug(
        "ARCHIVE", f"Integrity computed for {len(checksums)} archive(s) in {resources_dir}"
    )
    return IntegrityRecord(
        checksums=checksums, external_allowed=external_allowed, exempt_paths=exempt
    )


def verify_archive_integrity(archive_path: Path) -> VerifyResult:
    """Verify per-file integrity and body layout of an archive.

    Every leaf with integrity is re-hashed (whole file and blocks). Body
    entries must lie inside the body and must not overlap.

    Raises:
        PackagingError: If the archive cannot be read at all.
    """
    header = read_archive_header(archive_path)
    body_size = archive_path.stat().st_size - header.body_offset

    errors: list[str] = []
    checked = 0
    skipped = 0
    spans: list[tuple[int, int, str]] = []

    for path, leaf in header.files():
        size = int(leaf.get("size", 0))
        if not leaf.get("unpacked"):
            offset = int(leaf.get("offset", 0))
            if offset + size > body_size:
                errors.append(f"{path}: extends past the end of the archive body")
                continue
            spans.append((offset, size, path))

        integrity = leaf.get("integrity")
        if integrity is None:
            skipped += 1
            continue

        try:
            data = read_leaf(header, path, leaf)
        except PackagingError as err:
            errors.append(str(err))
            continue

        expected = file_integrity(data)
        if integrity.get("hash") != expected["hash"]:
            errors.append(f"{path}: content hash mismatch")
        elif integrity.get("blocks") != expected["blocks"]:
            errors.append(f"{path}: block hash mismatch")
        else:
            checked += 1

    spans.sort()
    for (offset, size, path), (next_offset, _, next_path) in zip(spans, spans[1:]):
        if size and offset + size > next_offset:
            errors.append(f"{path}: overlaps {next_path}")

    status = "invalid" if errors else "valid"
    get_global_logger().verbose(
        "ARCHIVE",
        f"Verified {archive_path.name}: {checked} ok, {skipped} exempt, {len(errors)} error(s)",
    )
    return VerifyResult(
        archive_path=archive_path,
        files_checked=checked,
        files_skipped=skipped,
        status=status,
        errors=errors,
    )
