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

"""Public API return types for distpack.

This module defines dataclasses for return values from public API functions.
These types represent the results of operations like packing, archiving,
building, verifying, and validation.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from pathlib import Path
        from distpack.core import build_project
        from distpack.results import BuildResult

        result: BuildResult = build_project(Path("my-app"), platform="linux")
        for pack in result.packs:
            print(pack.arch, pack.app_out_dir)
        ```

Note:
    Only public API return types belong in this module. Domain types
    (like FileSet or FileMatcher) and internal types (like PackContext)
    remain co-located with their related logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class IntegrityRecord:
    """Digests of the archives in a resources directory.

    Attributes:
        checksums: Archive file name to base64 SHA-512 digest of the file.
        external_allowed: Files outside the archives may be modified after
            archiving (e.g. by signing).
        exempt_paths: Archive-relative paths that carry no per-file
            integrity because they are modified after archiving.
    """

    checksums: dict[str, str]
    external_allowed: bool = False
    exempt_paths: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "checksums": dict(self.checksums),
            "externalAllowed": self.external_allowed,
            "exemptPaths": sorted(self.exempt_paths),
        }


@dataclass(frozen=True)
class ArchiveResult:
    """Result from writing an archive.

    Attributes:
        archive_path: Path to the written archive file.
        unpacked_dir: Directory holding unpacked files (may not exist when
            nothing was unpacked).
        file_count: Number of files recorded in the header.
        unpacked_count: Number of files stored outside the archive body.
        body_size: Size of the archive body in bytes.
        integrity: Integrity record computed after writing.
    """

    archive_path: Path
    unpacked_dir: Path
    file_count: int
    unpacked_count: int
    body_size: int
    integrity: IntegrityRecord


@dataclass(frozen=True)
class PackResult:
    """Result from packing one architecture.

    Attributes:
        platform: Platform configuration key ("mac", "win", "linux").
        arch: Architecture name.
        app_out_dir: Unpacked application output directory.
        archived: True if the application was written to an archive.
        stage: Last pipeline stage reached.
        integrity: Archive integrity record, when archived.
    """

    platform: str
    arch: str
    app_out_dir: Path
    archived: bool
    stage: str
    integrity: IntegrityRecord | None = None


@dataclass(frozen=True)
class ArtifactCreated:
    """Notification that a target produced an artifact file.

    Attributes:
        file: Path to the artifact.
        target: Name of the target that produced it, if any.
        arch: Architecture name, if architecture-specific.
        safe_artifact_name: Name restricted to safe characters, or None if
            the file name is already safe.
    """

    file: Path
    target: str | None = None
    arch: str | None = None
    safe_artifact_name: str | None = None


@dataclass(frozen=True)
class BuildResult:
    """Result from building a project.

    Attributes:
        project_dir: Project root directory.
        out_dir: Output directory.
        platform: Platform configuration key.
        packs: One PackResult per packed architecture.
        artifacts: Artifacts reported by targets.
        status: "success" or "cancelled".
    """

    project_dir: Path
    out_dir: Path
    platform: str
    packs: list[PackResult] = field(default_factory=list)
    artifacts: list[ArtifactCreated] = field(default_factory=list)
    status: str = "success"


@dataclass(frozen=True)
class VerifyResult:
    """Result from verifying an archive.

    Attributes:
        archive_path: Verified archive.
        files_checked: Number of files whose integrity matched.
        files_skipped: Files without per-file integrity (exempt).
        status: "valid" or "invalid".
        errors: Mismatch descriptions (empty if valid).
    """

    archive_path: Path
    files_checked: int
    files_skipped: int
    status: str
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a build configuration.

    Attributes:
        status: Validation status ("valid" or "invalid").
        errors: List of error messages (empty if valid).
        warnings: List of warning messages.
        config_path: String path to the validated configuration file.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    config_path: str
