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

"""Application metadata for distpack.

The application directory carries a package descriptor (``package.json``)
with the package name, version, and entry file. Configuration may
override the human-facing product name. AppInfo combines both and is the
source of the values substituted by the macro expander.

Example:
    from pathlib import Path
    from distpack.appinfo import AppInfo, load_app_metadata

    metadata = load_app_metadata(Path("my-app/app"))
    info = AppInfo.from_metadata(metadata, {"product_name": "Foo App"})
    print(info.product_filename)  # Foo App
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
import re
from typing import Any

from distpack.exceptions import ConfigError

PACKAGE_DESCRIPTOR = "package.json"
DEFAULT_ENTRY_FILE = "index.js"

# Characters rejected by at least one supported filesystem.
_ILLEGAL_FILENAME_CHARS = re.compile(r'[/\\?<>:*|"\x00-\x1f\x80-\x9f]')
_RESERVED_NAMES = re.compile(r"^(con|prn|aux|nul|com\d|lpt\d)(\..*)?$", re.IGNORECASE)


def sanitize_file_name(name: str) -> str:
    """Make a product name safe for use as a file or directory name.

    Removes characters illegal on Windows, macOS or Linux, strips trailing
    dots and spaces, and rejects reserved device names.

    Example:
        >>> sanitize_file_name('Foo: "App"')
        'Foo App'
    """
    result = _ILLEGAL_FILENAME_CHARS.sub("", name)
    result = result.rstrip(". ")
    if result in (".", "..") or _RESERVED_NAMES.match(result):
        return ""
    return result


def load_app_metadata(app_dir: Path) -> dict[str, Any]:
    """Read the package descriptor from an application directory.

    Raises:
        ConfigError: If the descriptor is missing or is not valid JSON.
    """
    descriptor = app_dir / PACKAGE_DESCRIPTOR
    if not descriptor.is_file():
        raise ConfigError(
            f'Application "{PACKAGE_DESCRIPTOR}" does not exist in {app_dir}. '
            "Seems like a wrong configuration."
        )
    try:
        data = json.loads(descriptor.read_text(encoding="utf-8"))
    except json.JSONDecodeError as err:
        raise ConfigError(f"Cannot parse {descriptor}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"{descriptor} must contain a JSON object")
    return data


@dataclass(frozen=True)
class AppInfo:
    """Resolved application metadata.

    Attributes:
        name: Package name (``name`` in the package descriptor).
        product_name: Human-facing product name, may contain any characters.
        version: Application version.
        build_version: Build number, defaults to the version.
        description: Short description.
        company_name: Author or company, used by the ``${author}`` macro.
        main: Entry file relative to the application directory.
        channel: Update channel, used by the ``${channel}`` macro.
        metadata: The raw package descriptor.
    """

    name: str
    product_name: str
    version: str
    build_version: str = ""
    description: str = ""
    company_name: str | None = None
    main: str = DEFAULT_ENTRY_FILE
    channel: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def product_filename(self) -> str:
        """Filesystem-safe product name."""
        return sanitize_file_name(self.product_name)

    @classmethod
    def from_metadata(
        cls, metadata: dict[str, Any], config: dict[str, Any] | None = None
    ) -> AppInfo:
        """Build AppInfo from a package descriptor and build configuration.

        Values from ``config["extra_metadata"]`` override the descriptor, and
        ``config["product_name"]`` overrides everything else.

        Raises:
            ConfigError: If the name or version is missing.
        """
        config = config or {}
        merged = {**metadata, **(config.get("extra_metadata") or {})}

        name = merged.get("name")
        if not name:
            raise ConfigError(f'"name" is missing in the {PACKAGE_DESCRIPTOR}')
        version = merged.get("version")
        if not version:
            raise ConfigError(f'"version" is missing in the {PACKAGE_DESCRIPTOR}')

        product_name = config.get("product_name") or merged.get("productName") or name

        author = merged.get("author")
        if isinstance(author, dict):
            author = author.get("name")

        return cls(
            name=str(name),
            product_name=str(product_name),
            version=str(version),
            build_version=str(config.get("build_version") or version),
            description=str(merged.get("description") or ""),
            company_name=author,
            main=str(merged.get("main") or DEFAULT_ENTRY_FILE),
            channel=config.get("channel"),
            metadata=metadata,
        )

    def as_macro_values(self) -> dict[str, str]:
        """Values exposed to the macro expander by name."""
        return {
            "name": self.name,
            "version": self.version,
            "buildVersion": self.build_version,
            "description": self.description,
            "productFilename": self.product_filename,
        }
