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

"""Single-file application archive.

Public API:

ArchivePackager : class
    Write file sets into an archive plus an unpacked mirror directory.
ArchiveOptions : class
    Options of the ``archive`` configuration mapping.
read_archive_header, list_archive, read_archive_file, extract_archive : functions
    Read archives back.
check_file_in_archive : function
    Sanity check used after packing.
compute_integrity, verify_archive_integrity : functions
    Archive-level digests and per-file verification.

Example:
    from pathlib import Path
    from distpack.archive import verify_archive_integrity

    result = verify_archive_integrity(Path("dist/linux-unpacked/resources/app.asar"))
    print(result.status)

"""

from .format import ARCHIVE_NAME
from .integrity import compute_integrity, hash_archive, verify_archive_integrity
from .packager import ArchiveOptions, ArchivePackager
from .reader import (
    ArchiveHeader,
    check_file_in_archive,
    extract_archive,
    list_archive,
    read_archive_file,
    read_archive_header,
    unpacked_dir_for,
)

__all__ = [
    "ARCHIVE_NAME",
    "ArchiveHeader",
    "ArchiveOptions",
    "ArchivePackager",
    "check_file_in_archive",
    "compute_integrity",
    "extract_archive",
    "hash_archive",
    "list_archive",
    "read_archive_file",
    "read_archive_header",
    "unpacked_dir_for",
    "verify_archive_integrity",
]
