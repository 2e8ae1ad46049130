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

"""Command-line interface for distpack.

This module provides the main CLI entry point for the distpack tool,
offering commands for building, validating configurations, and inspecting
archives.

Commands:

    build: Package a project for a platform
    validate: Validate a configuration file (no build)
    list: List the files of an archive
    verify: Verify the integrity of an archive
    name: Preview an artifact file name

Example:
    Build the project in the current directory:
        ```bash
        $ distpack build .
        ```

    Build for Linux, two architectures:
        ```bash
        $ distpack build my-app --platform linux --arch x64 --arch arm64
        ```

    Validate a configuration:
        ```bash
        $ distpack validate my-app/distpack.yml
        ```

    Inspect an archive:
        ```bash
        $ distpack list dist/linux-unpacked/resources/app.asar
        $ distpack verify dist/linux-unpacked/resources/app.asar
        ```

Exit Codes:

- 0: Success
- 1: Error (configuration, packaging, tool, or validation failure)
- 130: Build cancelled

Note:
    Each command has its own handler function (cmd_<command>).
    Verbose mode shows full tracebacks on errors for debugging.
    Debug mode implies verbose mode.

"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import signal
import sys
import traceback

from distpack import __version__
from distpack.archive import list_archive, read_archive_header, verify_archive_integrity
from distpack.core import build_project_async, preview_artifact_name
from distpack.exceptions import DistPackError
from distpack.logging import get_logger, set_global_logger
from distpack.results import BuildResult
from distpack.tasks import CancellationToken
from distpack.validation import validate_config


def _print_error(err: BaseException, args: argparse.Namespace) -> None:
    print(f"Error: {err}")
    if getattr(args, "verbose", False) or getattr(args, "debug", False):
        traceback.print_exc()


def _package_version() -> str:
    try:
        return version("distpack")
    except PackageNotFoundError:
        return __version__


async def _run_build(args: argparse.Namespace, token: CancellationToken) -> BuildResult:
    loop = asyncio.get_running_loop()
    # signal handlers are not available on every platform
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    return await build_project_async(
        Path(args.project_dir).resolve(),
        platform=args.platform,
        archs=args.arch,
        targets=args.target,
        config_path=Path(args.config) if args.config else None,
        overrides={"directories": {"output": args.output_dir}} if args.output_dir else None,
        cancellation_token=token,
    )


def cmd_build(args: argparse.Namespace) -> int:
    """Handler for 'distpack build' command.

    Loads the project configuration, packs every requested architecture,
    and runs the requested targets.

    Args:
        args: Parsed command-line arguments containing the project
            directory, platform, architectures, targets, and flags.

    Returns:
        Exit code (0 for success, 1 for failure, 130 when cancelled).

    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    project_dir = Path(args.project_dir).resolve()
    if not project_dir.is_dir():
        print(f"Error: Project directory not found: {project_dir}")
        return 1

    print(f"Building project: {project_dir}")
    print()

    token = CancellationToken()
    try:
        result = asyncio.run(_run_build(args, token))
    except DistPackError as err:
        _print_error(err, args)
        return 1

    print("=" * 70)
    print("BUILD RESULTS")
    print("=" * 70)
    print(f"Project:         {result.project_dir}")
    print(f"Output:          {result.out_dir}")
    print(f"Platform:        {result.platform}")
    for pack in result.packs:
        mode = "archive" if pack.archived else "directory"
        print(f"  {pack.arch:<14} {pack.app_out_dir} ({mode}, {pack.stage})")
    for artifact in result.artifacts:
        print(f"Artifact:        {artifact.file}")
    print(f"Status:          {result.status}")
    print("=" * 70)
    print()

    if result.status == "cancelled":
        print("[CANCELLED] Build was cancelled.")
        return 130
    print("[SUCCESS] Build completed successfully!")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'distpack validate' command.

    Validates configuration syntax and option values without building.

    Args:
        args: Parsed command-line arguments containing the configuration
            path and verbose flag.

    Returns:
        Exit code (0 for a valid configuration, 1 for invalid).

    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    config_path = Path(args.config).resolve()

    print(f"Validating configuration: {config_path}")
    print()

    result = validate_config(config_path)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Config:      {result.config_path}")
    print(f"Status:      {result.status.upper()}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Configuration is valid!")
        return 0
    print()
    print(f"[FAILED] Validation failed with {len(result.errors)} error(s).")
    return 1


def cmd_list(args: argparse.Namespace) -> int:
    """Handler for 'distpack list' command.

    Prints the files stored in an archive, one per line. Unpacked files
    are marked with ``[unpacked]`` when --details is given.
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    archive_path = Path(args.archive).resolve()
    try:
        if args.details:
            header = read_archive_header(archive_path)
            for path, leaf in header.files():
                flags = " [unpacked]" if leaf.get("unpacked") else ""
                print(f"{path}  {leaf.get('size', 0)}{flags}")
        else:
            for path in list_archive(archive_path):
                print(path)
    except DistPackError as err:
        _print_error(err, args)
        return 1
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Handler for 'distpack verify' command.

    Checks every per-file integrity record of an archive against its
    content.

    Returns:
        Exit code (0 if the archive is intact, 1 otherwise).

    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    archive_path = Path(args.archive).resolve()
    try:
        result = verify_archive_integrity(archive_path)
    except DistPackError as err:
        _print_error(err, args)
        return 1

    print("=" * 70)
    print("VERIFY RESULTS")
    print("=" * 70)
    print(f"Archive:         {result.archive_path}")
    print(f"Files Checked:   {result.files_checked}")
    print(f"Files Skipped:   {result.files_skipped}")
    print(f"Status:          {result.status.upper()}")
    for error in result.errors:
        print(f"  [X] {error}")
    print("=" * 70)
    print()

    if result.status == "valid":
        print("[SUCCESS] Archive integrity verified!")
        return 0
    print(f"[FAILED] Archive integrity check failed with {len(result.errors)} error(s).")
    return 1


def cmd_name(args: argparse.Namespace) -> int:
    """Handler for 'distpack name' command.

    Prints the artifact name a target would produce, and the safe name when
    the artifact name contains characters release hosts reject.
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    try:
        name, safe_name = preview_artifact_name(
            Path(args.project_dir).resolve(),
            args.ext,
            platform=args.platform,
            arch=args.arch,
            pattern=args.pattern,
            config_path=Path(args.config) if args.config else None,
        )
    except DistPackError as err:
        _print_error(err, args)
        return 1

    print(name)
    if safe_name is not None:
        print(f"safe: {safe_name}")
    return 0


def _add_output_flags(parser: argparse.ArgumentParser, *, with_debug: bool = True) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    if with_debug:
        parser.add_argument(
            "-d",
            "--debug",
            action="store_true",
            help="Show detailed debugging output (implies --verbose)",
        )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser of the distpack CLI."""
    parser = argparse.ArgumentParser(
        prog="distpack",
        description="distpack - package a prepared application into distributable artifacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"distpack {_package_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'build' command
    parser_build = subparsers.add_parser(
        "build",
        help="Package a project for a platform",
        description="Pack the application of a project and build the configured targets.",
    )
    parser_build.add_argument(
        "project_dir",
        nargs="?",
        default=".",
        help="Project directory (default: current directory)",
    )
    parser_build.add_argument(
        "--platform",
        default=None,
        help="Platform to build for: mac, win, linux (default: current platform)",
    )
    parser_build.add_argument(
        "--arch",
        action="append",
        default=None,
        help="Architecture to pack; repeat for several (default: from config or x64)",
    )
    parser_build.add_argument(
        "--target",
        action="append",
        default=None,
        help="Target to build; repeat for several (default: from config or dir)",
    )
    parser_build.add_argument(
        "--config",
        default=None,
        help="Configuration file (default: distpack.yml in the project directory)",
    )
    parser_build.add_argument(
        "--output-dir",
        default=None,
        help="Output directory (default: from config or ./dist)",
    )
    _add_output_flags(parser_build)
    parser_build.set_defaults(func=cmd_build)

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate a configuration file (no build)",
        description="Check a configuration for syntax errors and invalid options without building.",
    )
    parser_validate.add_argument(
        "config",
        help="Path to the configuration YAML file",
    )
    _add_output_flags(parser_validate, with_debug=False)
    parser_validate.set_defaults(func=cmd_validate)

    # 'list' command
    parser_list = subparsers.add_parser(
        "list",
        help="List the files of an archive",
        description="Print the paths stored in an application archive.",
    )
    parser_list.add_argument("archive", help="Path to the archive file")
    parser_list.add_argument(
        "--details",
        action="store_true",
        help="Show sizes and unpacked flags",
    )
    _add_output_flags(parser_list, with_debug=False)
    parser_list.set_defaults(func=cmd_list)

    # 'verify' command
    parser_verify = subparsers.add_parser(
        "verify",
        help="Verify the integrity of an archive",
        description="Check the per-file integrity records of an application archive.",
    )
    parser_verify.add_argument("archive", help="Path to the archive file")
    _add_output_flags(parser_verify, with_debug=False)
    parser_verify.set_defaults(func=cmd_verify)

    # 'name' command
    parser_name = subparsers.add_parser(
        "name",
        help="Preview an artifact file name",
        description="Expand the artifact name pattern for an extension and architecture.",
    )
    parser_name.add_argument("ext", help="Artifact extension, e.g. deb, AppImage, zip")
    parser_name.add_argument(
        "--project-dir",
        default=".",
        help="Project directory (default: current directory)",
    )
    parser_name.add_argument("--platform", default=None, help="Platform: mac, win, linux")
    parser_name.add_argument("--arch", default=None, help="Architecture (default: none)")
    parser_name.add_argument("--pattern", default=None, help="Pattern to use instead of the configured one")
    parser_name.add_argument("--config", default=None, help="Configuration file")
    _add_output_flags(parser_name, with_debug=False)
    parser_name.set_defaults(func=cmd_name)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the distpack CLI.

    This function is registered as the 'distpack' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
