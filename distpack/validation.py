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

"""Build configuration validation module.

This module checks a ``distpack.yml`` without building anything, which
gives quick feedback while editing a configuration and in CI pipelines.

Validation Checks:

- YAML syntax is valid and the document is a mapping
- Deprecated archive options are absent
- ``archive`` is a boolean or a mapping
- File-list options (``files``, ``extra_files``, ...) are well-formed
- Targets are known or ``module:Class`` references
- Hooks are ``module:function`` references
- Naming patterns only use known macros
- ``compression`` is one of store, normal, maximum

Unknown top-level keys are reported as warnings.

Example:
    Validate a configuration and handle results:
        ```python
        from pathlib import Path
        from distpack.validation import validate_config

        result = validate_config(Path("distpack.yml"))
        if result.status == "valid":
            print("Configuration is valid")
        else:
            for error in result.errors:
                print(f"Error: {error}")
        ```

"""

from __future__ import annotations

from pathlib import Path
import re
from typing import Any

import yaml

from distpack.logging import get_global_logger
from distpack.results import ValidationResult
from distpack.targets import TARGETS

__all__ = ["validate_config"]

KNOWN_KEYS = {
    "product_name",
    "app_id",
    "directories",
    "files",
    "extra_resources",
    "extra_files",
    "archive",
    "archive_unpack",
    "extra_metadata",
    "artifact_name",
    "compression",
    "icon",
    "after_pack",
    "after_sign",
    "sign",
    "force_code_signing",
    "file_associations",
    "prepackaged",
    "runtime_dir",
    "runtime_version",
    "tools",
    "targets",
    "arch",
    "build_version",
    "channel",
}
PLATFORM_KEYS = ("mac", "win", "linux")
FILE_LIST_KEYS = ("files", "extra_resources", "extra_files", "archive_unpack")
COMPRESSION_LEVELS = ("store", "normal", "maximum")
KNOWN_MACROS = {
    "productName",
    "productFilename",
    "name",
    "version",
    "buildVersion",
    "description",
    "arch",
    "ext",
    "os",
    "platform",
    "author",
    "channel",
}

_MACRO = re.compile(r"\$\{([_a-zA-Z./*]+)\}")


def _check_file_list(key: str, value: Any, errors: list[str]) -> None:
    if value is None or isinstance(value, str):
        return
    entries = value if isinstance(value, list) else [value]
    for entry in entries:
        if isinstance(entry, str):
            continue
        if isinstance(entry, dict):
            if key == "archive_unpack":
                errors.append(f"{key}: only glob patterns are supported, got {entry!r}")
                continue
            unknown = set(entry) - {"from", "to", "filter"}
            if unknown:
                errors.append(f"{key}: unknown keys in mapping entry: {', '.join(sorted(unknown))}")
            continue
        errors.append(f"{key}: entries must be patterns or {{from, to, filter}} mappings, got {entry!r}")


def _check_section(section: dict[str, Any], where: str, errors: list[str], warnings: list[str]) -> None:
    prefix = f"{where}." if where else ""

    for name in ("archive-unpack", "archive-unpack-dir"):
        if name in section:
            errors.append(f"{prefix}{name} is deprecated and not supported, please use archive_unpack")

    archive = section.get("archive")
    if archive is not None:
        if isinstance(archive, dict):
            for name in ("unpack", "unpack_dir"):
                if name in archive:
                    errors.append(
                        f"{prefix}archive.{name} is deprecated and not supported, "
                        "please use archive_unpack"
                    )
        elif not isinstance(archive, bool):
            errors.append(f"{prefix}archive must be a boolean or a mapping")
        elif archive is False:
            warnings.append(
                f"{prefix}archive is disabled, which is strongly discouraged"
            )

    for key in FILE_LIST_KEYS:
        _check_file_list(f"{prefix}{key}", section.get(key), errors)

    compression = section.get("compression")
    if compression is not None and compression not in COMPRESSION_LEVELS:
        errors.append(
            f"{prefix}compression must be one of {', '.join(COMPRESSION_LEVELS)}, got {compression!r}"
        )

    artifact_name = section.get("artifact_name")
    if artifact_name is not None:
        if not isinstance(artifact_name, str):
            errors.append(f"{prefix}artifact_name must be a string")
        else:
            for macro in _MACRO.findall(artifact_name):
                if macro not in KNOWN_MACROS and not macro.startswith("env."):
                    errors.append(f'{prefix}artifact_name uses unknown macro "${{{macro}}}"')

    targets = section.get("targets")
    if targets is not None:
        names = [targets] if isinstance(targets, str) else targets
        if not isinstance(names, list):
            errors.append(f"{prefix}targets must be a list of target names")
        else:
            for name in names:
                if not isinstance(name, str) or (name not in TARGETS and ":" not in name):
                    errors.append(f"{prefix}targets: unknown target {name!r}")


def validate_config(config_path: Path) -> ValidationResult:
    """Validate a build configuration file without building.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        ValidationResult with status "valid" or "invalid", error and
        warning messages, and the path that was validated.

    """
    logger = get_global_logger()
    errors: list[str] = []
    warnings: list[str] = []

    def _result() -> ValidationResult:
        return ValidationResult(
            status="invalid" if errors else "valid",
            errors=errors,
            warnings=warnings,
            config_path=str(config_path),
        )

    logger.verbose("VALIDATION", f"Validating configuration: {config_path}")

    if not config_path.exists():
        errors.append(f"Configuration file not found: {config_path}")
        return _result()

    try:
        with open(config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as err:
        errors.append(f"Invalid YAML syntax: {err}")
        return _result()
    except OSError as err:
        errors.append(f"Failed to read configuration file: {err}")
        return _result()

    logger.verbose("VALIDATION", "[OK] YAML syntax is valid")

    if config is None:
        errors.append("Configuration file is empty")
        return _result()
    if not isinstance(config, dict):
        errors.append("Configuration must be a YAML dictionary/mapping")
        return _result()

    for key in config:
        if key not in KNOWN_KEYS and key not in PLATFORM_KEYS and key not in (
            "archive-unpack",
            "archive-unpack-dir",
        ):
            warnings.append(f"Unknown configuration key: {key}")

    directories = config.get("directories")
    if directories is not None and not isinstance(directories, dict):
        errors.append("directories must be a mapping")

    for hook in ("after_pack", "after_sign"):
        value = config.get(hook)
        if value is not None and (not isinstance(value, str) or ":" not in value):
            errors.append(f'{hook} must be a "module:function" or "file.py:function" reference')

    _check_section(config, "", errors, warnings)
    for platform_key in PLATFORM_KEYS:
        section = config.get(platform_key)
        if section is None:
            continue
        if not isinstance(section, dict):
            errors.append(f"{platform_key} must be a mapping")
            continue
        _check_section(section, platform_key, errors, warnings)

    if errors:
        logger.verbose("VALIDATION", f"Found {len(errors)} error(s)")
    else:
        logger.verbose("VALIDATION", "[OK] Configuration is valid")
    return _result()
