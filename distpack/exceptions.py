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

"""Exception hierarchy for distpack.

This module defines a custom exception hierarchy that allows library users
to distinguish between different types of errors:

- ConfigError: User-fixable configuration problems (unresolvable resources,
  deprecated options, unknown macros, missing entry file after packaging)
- PackagingError: Filesystem and archive errors (read/write failures,
  missing directories, corrupt archives, integrity mismatches)
- ToolError: External tools returning unparseable or failing results
- NetworkError: Tool download failures

All exceptions inherit from DistPackError, allowing users to catch all
distpack errors with a single except clause if needed.

Cancellation is not part of this hierarchy. A cancelled build
stops with distpack.tasks.CancellationStop, which the pipeline treats as a
normal early exit.

Example:
    Catching specific error types:
        ```python
        from distpack.core import build_project
        from distpack.exceptions import ConfigError, PackagingError

        try:
            result = build_project(Path("my-app"), platform="linux")
        except ConfigError as e:
            print(f"Configuration error: {e}")
        except PackagingError as e:
            print(f"Packaging error: {e}")
        ```

    Catching all distpack errors:
        ```python
        from distpack.exceptions import DistPackError

        try:
            result = build_project(Path("my-app"), platform="linux")
        except DistPackError as e:
            print(f"distpack error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "DistPackError",
    "ConfigError",
    "UnknownMacroError",
    "PackagingError",
    "ToolError",
    "NetworkError",
]


class DistPackError(Exception):
    """Base exception for all distpack errors.

    All distpack-specific exceptions inherit from this class, allowing users
    to catch all distpack errors with a single except clause if needed.
    """

    pass


class ConfigError(DistPackError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, invalid structure)
    - Deprecated options still present in the configuration
    - Resources that cannot be resolved against the build resources or
      project directory
    - Unknown targets or architectures
    - Missing application entry file or package descriptor after packaging

    Example:
        Catching configuration errors:
            ```python
            from distpack.exceptions import ConfigError

            try:
                config = load_build_config(Path("my-app"))
            except ConfigError as e:
                print(f"Config error: {e}")
            ```
    """

    pass


class UnknownMacroError(ConfigError):
    """Raised when a ${...} placeholder cannot be expanded.

    Attributes:
        macro: Name of the placeholder that is not defined.
        pattern: The pattern that was being expanded.
    """

    def __init__(self, macro: str, pattern: str) -> None:
        super().__init__(
            f'cannot expand pattern "{pattern}": macro {macro} is not defined'
        )
        self.macro = macro
        self.pattern = pattern


class PackagingError(DistPackError):
    """Raised for packaging/filesystem-related errors.

    This exception is raised when there are problems with:

    - File copy or write failures
    - Missing staged or output directories
    - Corrupt or truncated archives
    - Archive integrity mismatches
    """

    pass


class ToolError(DistPackError):
    """Raised when an external tool fails or returns an unusable result.

    Example:
        Catching tool errors:
            ```python
            from distpack.exceptions import ToolError

            try:
                icons = await packager.resolve_icon(["icon.png"], "ico")
            except ToolError as e:
                print(f"Icon tool failed: {e}")
            ```
    """

    pass


class NetworkError(DistPackError):
    """Raised for network/download-related errors.

    This exception is raised when downloading an external helper tool into
    the tool cache fails (HTTP errors, connection timeouts, checksum
    mismatches).
    """

    pass
