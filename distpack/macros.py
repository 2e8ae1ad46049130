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

"""Macro expansion for path and naming patterns.

Patterns reference values with ``${name}`` placeholders, for example
``${productName}-${version}-${arch}.${ext}``. Braces without a leading
``$`` are left alone, so glob alternation such as ``{,/**/*}`` survives
expansion untouched.

Recognized Macros:
    - productName: Product name (filesystem-sanitized unless disabled)
    - name, version, buildVersion, description, productFilename
    - arch: Architecture name; removed with its separator when no arch
    - author: Company name from the package descriptor
    - platform: Host platform (linux, darwin, win32)
    - channel: Update channel (default "latest")
    - env.NAME: Environment variable NAME
    - Any key supplied in ``extra`` (ext, os, or "/*" for file patterns)

Unknown macros raise UnknownMacroError unless expansion is lenient, in
which case the placeholder is kept literally.

Example:
    >>> expand_macro("${productName}-${version}.${ext}", "x64", info, {"ext": "deb"})
    'Foo App-1.2.3.deb'
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import os
import re
import sys

from distpack.appinfo import AppInfo
from distpack.exceptions import ConfigError, UnknownMacroError

__all__ = ["MacroExpander", "expand_macro"]

MacroExpander = Callable[[str], str]

_MACRO_PATTERN = re.compile(r"\$\{([_a-zA-Z./*]+)\}")
_ARCH_FRAGMENTS = ("-${arch}", " ${arch}", "_${arch}", "/${arch}")


def expand_macro(
    pattern: str,
    arch: str | None,
    app_info: AppInfo,
    extra: Mapping[str, str] | None = None,
    *,
    is_product_name_sanitized: bool = True,
    lenient: bool = False,
) -> str:
    """Substitute ``${name}`` placeholders in a pattern.

    Args:
        pattern: Pattern to expand.
        arch: Architecture name to substitute for ``${arch}``. When None,
            the placeholder and its leading separator are removed.
        app_info: Application metadata.
        extra: Additional macro values (take effect after app metadata).
        is_product_name_sanitized: Substitute the filesystem-safe product
            name for ``${productName}``. Disable for contexts that need the
            raw name, e.g. literal file search names.
        lenient: Keep unknown placeholders instead of raising.

    Returns:
        The expanded string.

    Raises:
        UnknownMacroError: If a placeholder is not defined and not lenient.
        ConfigError: If ``${author}`` or ``${env.NAME}`` has no value.
    """
    extra = extra or {}
    app_values = app_info.as_macro_values()

    if arch is None:
        for fragment in _ARCH_FRAGMENTS:
            pattern = pattern.replace(fragment, "")

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)

        if name == "productName":
            if is_product_name_sanitized:
                return app_info.product_filename
            return app_info.product_name
        if name == "arch":
            return "" if arch is None else arch
        if name == "author":
            if not app_info.company_name:
                raise ConfigError(
                    f'cannot expand pattern "{pattern}": author is not specified'
                )
            return app_info.company_name
        if name == "platform":
            return sys.platform
        if name == "channel":
            return app_info.channel or "latest"
        if name in app_values:
            return app_values[name]
        if name.startswith("env."):
            env_name = name[len("env.") :]
            value = os.environ.get(env_name)
            if value is None:
                if lenient:
                    return match.group(0)
                raise ConfigError(
                    f'cannot expand pattern "{pattern}": env {env_name} is not defined'
                )
            return value

        value = extra.get(name)
        if value is None:
            if lenient:
                return match.group(0)
            raise UnknownMacroError(name, pattern)
        return str(value)

    return _MACRO_PATTERN.sub(_replace, pattern)
