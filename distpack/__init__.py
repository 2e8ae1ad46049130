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

"""distpack - application packaging pipeline

A Python library and CLI that packages a prepared application directory
into distributable output for macOS, Windows and Linux.

distpack provides:

- YAML-based build configuration with per-platform sections
- Glob-based file selection with macro-expanded paths
- Single-file application archives with selective unpacking and
  integrity records
- Concurrent, cancellable target builds
- after_pack / after_sign hooks and pluggable signing
- Artifact naming with per-format architecture aliases

Quick Start:
Build the project in the current directory:

    $ distpack build .

Validate a configuration:

    $ distpack validate distpack.yml

For full CLI documentation:

    $ distpack --help

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "distpack - package prepared applications into distributable artifacts"

# Re-export commonly used functions for convenience
from distpack.config import load_build_config
from distpack.core import build_project, build_project_async
from distpack.exceptions import (
    ConfigError,
    DistPackError,
    NetworkError,
    PackagingError,
    ToolError,
    UnknownMacroError,
)
from distpack.packager import PipelineStage, PlatformPackager
from distpack.results import (
    ArtifactCreated,
    BuildResult,
    PackResult,
    ValidationResult,
    VerifyResult,
)
from distpack.tasks import AsyncTaskManager, CancellationStop, CancellationToken
from distpack.validation import validate_config

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "ArtifactCreated",
    "AsyncTaskManager",
    "BuildResult",
    "CancellationStop",
    "CancellationToken",
    "PackResult",
    "PipelineStage",
    "PlatformPackager",
    "ValidationResult",
    "VerifyResult",
    "build_project",
    "build_project_async",
    "load_build_config",
    "validate_config",
    "DistPackError",
    "ConfigError",
    "NetworkError",
    "PackagingError",
    "ToolError",
    "UnknownMacroError",
]
