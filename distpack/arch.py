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

"""Architecture and platform identifiers.

Arch values are the names used in output directory suffixes and artifact
names (before per-format aliasing, see distpack.naming). Platform carries
the configuration key used for platform-specific option sections and the
runtime platform name passed to stage preparers.
"""

from __future__ import annotations

from enum import Enum

from distpack.exceptions import ConfigError

__all__ = ["Arch", "Platform", "DEFAULT_ARCH", "get_arch_suffix", "parse_arch"]


class Arch(Enum):
    """CPU architecture of a packaged application."""

    ia32 = "ia32"
    x64 = "x64"
    armv7l = "armv7l"
    arm64 = "arm64"
    universal = "universal"


DEFAULT_ARCH = Arch.x64


class Platform(Enum):
    """Target operating system.

    The value is the configuration key (``mac``, ``win``, ``linux``).
    """

    MAC = "mac"
    WINDOWS = "win"
    LINUX = "linux"

    @property
    def build_configuration_key(self) -> str:
        return self.value

    @property
    def node_name(self) -> str:
        """Runtime platform name (darwin, win32, linux)."""
        return {"mac": "darwin", "win": "win32", "linux": "linux"}[self.value]

    @classmethod
    def from_string(cls, name: str) -> Platform:
        """Parse a platform from a CLI/config name.

        Accepts configuration keys and common aliases (darwin, macos,
        windows, win32).

        Raises:
            ConfigError: If the name is not a known platform.
        """
        aliases = {
            "mac": cls.MAC,
            "darwin": cls.MAC,
            "macos": cls.MAC,
            "osx": cls.MAC,
            "win": cls.WINDOWS,
            "win32": cls.WINDOWS,
            "windows": cls.WINDOWS,
            "linux": cls.LINUX,
        }
        try:
            return aliases[name.lower()]
        except KeyError:
            raise ConfigError(
                f"Unknown platform: {name!r}. Supported: mac, win, linux"
            ) from None


def parse_arch(name: str) -> Arch:
    """Parse an architecture name.

    Raises:
        ConfigError: If the name is not a known architecture.
    """
    aliases = {"x86_64": Arch.x64, "amd64": Arch.x64, "aarch64": Arch.arm64}
    if name in aliases:
        return aliases[name]
    try:
        return Arch(name)
    except ValueError:
        supported = ", ".join(a.value for a in Arch)
        raise ConfigError(
            f"Unknown architecture: {name!r}. Supported: {supported}"
        ) from None


def get_arch_suffix(arch: Arch) -> str:
    """Return the directory suffix for an architecture (empty for x64)."""
    return "" if arch is DEFAULT_ARCH else f"-{arch.value}"
