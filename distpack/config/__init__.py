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

"""Build configuration loading for distpack.

Configuration is YAML (``distpack.yml`` at the project root) layered on
built-in defaults:

  - Built-in defaults (output ``dist/``, build resources ``build/``)
  - Project configuration (``distpack.yml``)
  - Overrides from the CLI or programmatic callers

The loader performs deep merging where dicts are merged recursively and
lists/scalars are replaced (last wins). Relative directories are resolved
against the project directory.

Public API:

- load_build_config: Load and merge configuration for a project

Example:
    Basic usage:

        from pathlib import Path
        from distpack.config import load_build_config

        config = load_build_config(Path("my-app"))
        print(config["directories"]["output"])

"""

from .loader import find_config_file, load_build_config

__all__ = ["find_config_file", "load_build_config"]
