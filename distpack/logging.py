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

"""Progress and diagnostic output of the packaging pipeline.

Pipeline code never prints directly. It asks get_global_logger() for the
process-wide logger, which the CLI installs before running a command.
Library users who call build_project() themselves get no output at all
unless they install a logger of their own.

Message kinds:
    step: Numbered phase of a build ("[2/4] Preparing packager..."),
        shown at every verbosity.
    warning: Something the user should fix, such as a missing icon or an
        uninstalled dependency. Shown at every verbosity, on stderr.
    verbose: Per-stage detail, tagged with the component that produced it
        ("PACK", "ARCHIVE", "CONFIG").
    debug: Per-file and per-task detail ("MATCH", "TASK"). Enabling debug
        also enables verbose.

Example:
    from distpack.logging import get_global_logger, get_logger, set_global_logger

    set_global_logger(get_logger(verbose=True))

    log = get_global_logger()
    log.step(3, 4, "Packing application...")
    log.verbose("ARCHIVE", "Wrote app.asar: 42 file(s), 1 unpacked")
    log.warning("PACK", "Application icon is not set")
"""

from __future__ import annotations

import sys
from typing import Protocol, TextIO


class Logger(Protocol):
    """What pipeline code may call on a logger.

    Every method but step() takes a component tag printed in brackets
    before the message.
    """

    def step(self, step: int, total: int, message: str) -> None: ...

    def warning(self, prefix: str, message: str) -> None: ...

    def verbose(self, prefix: str, message: str) -> None: ...

    def debug(self, prefix: str, message: str) -> None: ...


class DefaultLogger:
    """Console logger used by the CLI.

    Steps, verbose and debug lines go to stdout; warnings go to stderr so
    they survive redirecting the build summary.

    Args:
        verbose: Show per-stage detail.
        debug: Show per-file and per-task detail. Implies verbose.
    """

    def __init__(self, verbose: bool = False, debug: bool = False) -> None:
        self._verbose = verbose or debug
        self._debug = debug

    @staticmethod
    def _emit(line: str, stream: TextIO | None = None) -> None:
        # streams are looked up per call so redirected sys.stdout is honored
        print(line, file=stream or sys.stdout)

    def step(self, step: int, total: int, message: str) -> None:
        self._emit(f"[{step}/{total}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        self._emit(f"[WARNING] [{prefix}] {message}", sys.stderr)

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            self._emit(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            self._emit(f"[{prefix}] {message}")


class SilentLogger:
    """Discards everything, warnings included. The default global logger."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Return a console logger for the given verbosity."""
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Return the logger pipeline code should write to."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Install the process-wide logger.

    Concurrent build tasks of one run share it, so lines from different
    targets may interleave; the component tag tells them apart.

    Args:
        logger: Any object implementing Logger.
    """
    global _global_logger
    _global_logger = logger
