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

"""
Build configuration loader for distpack.

Configuration Layers
--------------------
1. **Built-in defaults** (DEFAULT_CONFIG)
   - Output to ``dist/``, build resources in ``build/``, archiving on,
     ``dir`` target

2. **Project configuration** (``distpack.yml`` or ``distpack.yaml`` at the
   project root, or an explicit path)
   - Optional; a project without one builds with the defaults

3. **Overrides** (CLI flags, programmatic callers)
   - Applied last

Merge Behavior
--------------
Deep merging with "last wins" semantics:
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten (strings, numbers, booleans)

Platform sections (``mac``, ``win``, ``linux``) are kept as-is here; the
packager lets them override top-level keys for its platform.

Path Resolution
---------------
``directories.output``, ``directories.app``, ``directories.build_resources``
and ``runtime_dir`` are resolved against the PROJECT directory. When
``directories.app`` is not set, ``<project>/app`` is used if it contains a
package descriptor, otherwise the project directory itself.

Functions
---------
load_build_config : function
    Load and merge configuration for a project (main public API).
find_config_file : function
    Locate the configuration file of a project.

Private Helpers
---------------
_load_yaml_file : Load YAML with error handling
_deep_merge_dicts : Recursive dict merging
_resolve_known_paths : Resolve relative paths to absolute

Error Handling
--------------
- ConfigError: missing explicit file, YAML parse errors, non-mapping YAML
- All errors are chained with "from err"

Examples
--------
    >>> from pathlib import Path
    >>> from distpack.config import load_build_config
    >>> cfg = load_build_config(Path("my-app"))
    >>> cfg["directories"]["output"]
    PosixPath('/abs/my-app/dist')
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from distpack.appinfo import PACKAGE_DESCRIPTOR
from distpack.exceptions import ConfigError
from distpack.logging import get_global_logger

CONFIG_FILE_NAMES = ("distpack.yml", "distpack.yaml")

DEFAULT_CONFIG: dict[str, Any] = {
    "directories": {
        "output": "dist",
        "build_resources": "build",
    },
    "archive": True,
    "compression": "normal",
    "targets": ["dir"],
}


# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """
    Load a YAML file and return the parsed Python object.

    Raises:
      ConfigError - when the file does not exist, cannot be parsed, or is
                    empty
    """
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    except OSError as err:
        raise ConfigError(f"Cannot read configuration file {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base (not concatenated)
      - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Path resolution
# -------------------------------


def _resolve_known_paths(cfg: dict[str, Any], project_dir: Path) -> None:
    """Resolve directory settings against the project directory, in place."""
    directories = cfg.get("directories")
    if directories is None:
        # an empty YAML key (`directories:`) keeps the defaults
        directories = copy.deepcopy(DEFAULT_CONFIG["directories"])
    elif not isinstance(directories, dict):
        raise ConfigError(f"directories must be a mapping, got {type(directories).__name__}")
    cfg["directories"] = directories
    for key in ("output", "build_resources"):
        value = directories.get(key)
        if value is not None:
            directories[key] = (project_dir / Path(value).expanduser()).resolve()

    app = directories.get("app")
    if app is not None:
        directories["app"] = (project_dir / Path(app).expanduser()).resolve()
    elif (project_dir / "app" / PACKAGE_DESCRIPTOR).is_file():
        directories["app"] = project_dir / "app"
    else:
        directories["app"] = project_dir

    for key in ("runtime_dir", "prepackaged"):
        value = cfg.get(key)
        if value is not None:
            cfg[key] = (project_dir / Path(value).expanduser()).resolve()


# -------------------------------
# Public API
# -------------------------------


def find_config_file(project_dir: Path) -> Path | None:
    """Return the configuration file of a project, or None."""
    for name in CONFIG_FILE_NAMES:
        candidate = project_dir / name
        if candidate.is_file():
            return candidate
    return None


def load_build_config(
    project_dir: Path,
    config_path: Path | None = None,
    *,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Load and merge the effective build configuration of a project.

    Steps
      1) Start from DEFAULT_CONFIG.
      2) Read the project configuration (explicit path or discovered).
      3) Merge: defaults -> project file -> overrides.
      4) Resolve known relative paths against the project directory.

    Returns
      A merged configuration dict. ``project_dir`` is stored under the
      ``project_dir`` key.

    Raises
      ConfigError on missing explicit files, YAML parse errors, or a
      top-level value that is not a mapping.
    """
    logger = get_global_logger()
    project_dir = project_dir.resolve()

    merged = copy.deepcopy(DEFAULT_CONFIG)
    layers_merged = 1

    if config_path is None:
        config_path = find_config_file(project_dir)
    elif not config_path.is_absolute():
        config_path = (project_dir / config_path).resolve()

    if config_path is not None:
        logger.verbose("CONFIG", f"Loading: {config_path}")
        project_obj = _load_yaml_file(config_path)
        if not isinstance(project_obj, dict):
            raise ConfigError(
                f"Top-level YAML must be a mapping (dict): {config_path}"
            )
        merged = _deep_merge_dicts(merged, project_obj)
        layers_merged += 1
    else:
        logger.verbose("CONFIG", f"No configuration file in {project_dir}, using defaults")

    if overrides:
        merged = _deep_merge_dicts(merged, overrides)
        layers_merged += 1

    logger.verbose("CONFIG", f"Deep merging {layers_merged} layer(s)")
    logger.debug("CONFIG", f"Top-level keys: {', '.join(merged)}")

    _resolve_known_paths(merged, project_dir)
    merged["project_dir"] = project_dir
    merged["config_path"] = config_path
    return merged
