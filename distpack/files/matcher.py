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

"""Glob-based file matching for distpack.

A FileMatcher maps files below a source root (``from_dir``) to a
destination root (``to_dir``) using an ordered list of glob patterns.
Patterns are evaluated in order and the last pattern that matches a path
decides whether it is included, so a later ``!pattern`` excludes what an
earlier pattern included.

Pattern Syntax:
    - ``*`` and ``?`` match within one path segment (dot-files included)
    - ``**`` matches any number of path segments
    - ``[abc]`` / ``[!abc]`` character classes
    - ``{a,b}`` alternation (``{,/**/*}`` means "itself or anything below")
    - leading ``!`` negates
    - a pattern without glob characters and without a dot also matches
      everything below it (``lib`` behaves like ``lib`` + ``lib/**/*``)

Two-Phase Exclusion:
    Patterns of sibling matchers (extra files, extra resources) are compiled
    into an ExcludeSet with compute_exclude_patterns() and passed explicitly
    to match(). A file is excluded when any matcher of the set would have
    included it, so no file is claimed by two matchers.

Private Helpers:
    - _expand_braces: Expand ``{a,b}`` alternation into plain patterns
    - _glob_to_regex: Translate one brace-free glob into a regex
    - _evaluate: Ordered include/exclude decision for one path
    - _walk: Sorted depth-first traversal with directory pruning

Example:
    from pathlib import Path
    from distpack.files.matcher import FileMatcher

    matcher = FileMatcher(Path("src"), Path("app"), ["**/*.js"])
    for source, dest in matcher.match():
        print(source, "->", dest)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
import os
from pathlib import Path, PurePosixPath
import re
from typing import Any

from distpack.exceptions import ConfigError
from distpack.logging import get_global_logger
from distpack.macros import MacroExpander

__all__ = [
    "GlobPattern",
    "ExcludeSet",
    "FileMatcher",
    "UnpackFilter",
    "compute_exclude_patterns",
    "get_file_matchers",
    "get_main_file_matchers",
    "get_node_module_file_matcher",
    "has_glob_chars",
]

UnpackFilter = Callable[[str], bool]

EXCLUDED_NAMES = (
    ".git,.hg,.svn,CVS,RCS,SCCS,__pycache__,.DS_Store,thumbs.db,.gitignore,"
    ".gitkeep,.gitattributes,.npmignore,.idea,.vs,.flowconfig,.jshintrc,"
    ".eslintrc,.circleci,.yarn-integrity,.yarn-metadata.json,yarn-error.log,"
    "yarn.lock,package-lock.json,npm-debug.log,appveyor.yml,.travis.yml,"
    "circle.yml,.nyc_output"
)
EXCLUDED_EXTS = "iml,hprof,orig,pyc,pyo,rbc,swp,csproj,sln,suo,xproj,cc,d.ts,pdb"

NODE_MODULES_EXCLUDES = (
    "!**/node_modules/*/{CHANGELOG.md,ChangeLog,changelog.md,README.md,README,readme.md,readme}",
    "!**/node_modules/*/{test,__tests__,tests,powered-test,example,examples}",
    "!**/node_modules/*.d.ts",
    "!**/node_modules/.bin",
)


def has_glob_chars(pattern: str) -> bool:
    return any(c in pattern for c in "*?[]{")


def _expand_braces(pattern: str) -> list[str]:
    """Expand the first top-level ``{a,b}`` group, recursively.

    Groups without a comma and unbalanced braces are kept literally.
    """
    start = pattern.find("{")
    while start != -1:
        depth = 0
        commas: list[int] = []
        end = -1
        for i in range(start, len(pattern)):
            c = pattern[i]
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
            elif c == "," and depth == 1:
                commas.append(i)
        if end == -1:
            return [pattern]
        if not commas:
            start = pattern.find("{", start + 1)
            continue

        prefix, suffix = pattern[:start], pattern[end + 1 :]
        bounds = [start, *commas, end]
        result: list[str] = []
        for left, right in zip(bounds, bounds[1:]):
            for expanded in _expand_braces(prefix + pattern[left + 1 : right] + suffix):
                if expanded not in result:
                    result.append(expanded)
        return result
    return [pattern]


def _translate_segment(segment: str) -> str:
    out = []
    i = 0
    while i < len(segment):
        c = segment[i]
        if c == "*":
            # collapse runs of "*" inside a segment
            while i + 1 < len(segment) and segment[i + 1] == "*":
                i += 1
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            close = segment.find("]", i + 1)
            if close == -1:
                out.append(re.escape(c))
            else:
                body = segment[i + 1 : close]
                if body.startswith(("!", "^")):
                    body = "^" + body[1:]
                out.append(f"[{body.replace(chr(92), chr(92) * 2)}]")
                i = close
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


def _glob_to_regex(pattern: str) -> str:
    segments = pattern.split("/")
    count = len(segments)
    out = ""
    after_globstar = False
    for i, segment in enumerate(segments):
        if segment == "**":
            if count == 1:
                out = ".*"
            elif i == 0:
                out += "(?:.*/)?"
            elif i == count - 1:
                out += "(?:/.*)?"
            else:
                out += "/(?:.*/)?"
            after_globstar = True
            continue
        if i > 0 and not after_globstar:
            out += "/"
        out += _translate_segment(segment)
        after_globstar = False
    return out


def _normalize_pattern(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    if pattern.endswith("/"):
        pattern += "**/*"
    return pattern


@dataclass(frozen=True)
class GlobPattern:
    """One compiled glob pattern.

    Attributes:
        source: The pattern as written (after macro expansion).
        negate: True for ``!`` patterns.
        regex: Compiled alternation of all brace expansions.
    """

    source: str
    negate: bool
    regex: re.Pattern[str]

    @classmethod
    def compile(cls, pattern: str) -> GlobPattern:
        negate = pattern.startswith("!")
        body = _normalize_pattern(pattern[1:] if negate else pattern)

        variants = _expand_braces(body)
        if "." not in body and not has_glob_chars(body):
            variants.append(f"{body}/**/*")

        regex = re.compile("|".join(f"(?:{_glob_to_regex(v)})" for v in variants))
        return cls(source=pattern, negate=negate, regex=regex)

    def matches(self, relative_path: str) -> bool:
        return self.regex.fullmatch(relative_path) is not None


def _evaluate(patterns: Sequence[GlobPattern], relative_path: str) -> bool | None:
    """Return the decision of the last matching pattern, or None if none match."""
    decision: bool | None = None
    for pattern in patterns:
        if pattern.matches(relative_path):
            decision = not pattern.negate
    return decision


@dataclass(frozen=True)
class ExcludeSet:
    """Patterns of other matchers, relative to a shared base directory.

    Each group holds the ordered patterns of one matcher, so negations
    inside that matcher keep their meaning.
    """

    base_dir: Path
    groups: tuple[tuple[GlobPattern, ...], ...] = ()

    def __bool__(self) -> bool:
        return bool(self.groups)

    def excludes(self, path: Path) -> bool:
        try:
            relative = path.relative_to(self.base_dir).as_posix()
        except ValueError:
            return False
        return any(_evaluate(group, relative) for group in self.groups)

    def merged(self, other: ExcludeSet) -> ExcludeSet:
        if self.base_dir != other.base_dir:
            raise ValueError("cannot merge exclude sets with different base dirs")
        return ExcludeSet(self.base_dir, self.groups + other.groups)


class FileMatcher:
    """Ordered include/exclude glob patterns from a source to a destination.

    Attributes:
        from_dir: Source root (or a single source file).
        to_dir: Destination root (or destination file for a file mapping).
        patterns: Raw patterns in declaration order.
    """

    def __init__(
        self,
        from_dir: Path | str,
        to_dir: Path | str,
        patterns: Sequence[str] | str | None = None,
        macro_expander: MacroExpander | None = None,
    ) -> None:
        self.macro_expander: MacroExpander = macro_expander or (lambda it: it)
        self.from_dir = Path(self.macro_expander(str(from_dir)))
        self.to_dir = Path(self.macro_expander(str(to_dir)))
        self.patterns: list[str] = []
        self.is_specified_as_empty_array = isinstance(patterns, list) and not patterns

        if isinstance(patterns, str):
            patterns = [patterns]
        for pattern in patterns or ():
            self.add_pattern(pattern)

    def __repr__(self) -> str:
        return (
            f"FileMatcher(from_dir={str(self.from_dir)!r}, "
            f"to_dir={str(self.to_dir)!r}, patterns={self.patterns!r})"
        )

    def add_pattern(self, pattern: str) -> None:
        if pattern.strip():
            self.patterns.append(pattern)

    def prepend_pattern(self, pattern: str) -> None:
        self.patterns.insert(0, pattern)

    def is_empty(self) -> bool:
        return not self.patterns

    def contains_only_ignore(self) -> bool:
        return bool(self.patterns) and all(p.startswith("!") for p in self.patterns)

    def compile(self) -> list[GlobPattern]:
        """Macro-expand and compile the patterns, in declaration order."""
        return [GlobPattern.compile(self.macro_expander(p)) for p in self.patterns]

    def compile_relative_to(self, base_dir: Path) -> tuple[GlobPattern, ...]:
        """Compile the patterns re-rooted at base_dir.

        A file mapping (from_dir is a file) compiles to the file itself.
        """
        try:
            prefix = self.from_dir.relative_to(base_dir).as_posix()
        except ValueError:
            get_global_logger().debug(
                "MATCH", f"{self.from_dir} is outside {base_dir}, not excluded"
            )
            return ()
        if prefix == ".":
            prefix = ""

        if self.from_dir.is_file():
            return (GlobPattern.compile(prefix),)

        compiled: list[GlobPattern] = []
        for raw in self.patterns:
            pattern = self.macro_expander(raw)
            negate = pattern.startswith("!")
            body = _normalize_pattern(pattern[1:] if negate else pattern)
            joined = f"{prefix}/{body}" if prefix else body
            compiled.append(GlobPattern.compile(("!" if negate else "") + joined))
        return tuple(compiled)

    def match(
        self,
        exclude_set: ExcludeSet | None = None,
        *,
        root: Path | None = None,
        prune: Callable[[str], bool] | None = None,
    ) -> list[tuple[Path, Path]]:
        """Resolve the matcher against the filesystem.

        Args:
            exclude_set: Patterns of sibling matchers to exclude.
            root: Directory to walk. Defaults to from_dir. Relative paths
                (for pattern matching and destinations) are always taken
                relative to from_dir.
            prune: Extra predicate over from_dir-relative directory paths;
                True skips the directory.

        Returns:
            A list of (absolute source, destination) tuples in pattern
            declaration order, then sorted traversal order. Empty when no
            positive pattern exists.
        """
        logger = get_global_logger()

        if self.from_dir.is_file():
            if exclude_set and exclude_set.excludes(self.from_dir.absolute()):
                return []
            return [(self.from_dir.absolute(), self.to_dir)]

        if not self.from_dir.is_dir():
            logger.debug("MATCH", f"Source directory does not exist: {self.from_dir}")
            return []

        compiled = self.compile()
        positives = [p for p in compiled if not p.negate]
        if not positives:
            logger.debug("MATCH", f"No include patterns, nothing matched: {self!r}")
            return []

        base = self.from_dir.absolute()
        start = (root or self.from_dir).absolute()
        files = list(_walk(start, base, compiled, exclude_set, prune))

        result: list[tuple[Path, Path]] = []
        seen: set[str] = set()
        for positive in positives:
            for relative in files:
                if relative in seen or not positive.matches(relative):
                    continue
                if _evaluate(compiled, relative):
                    seen.add(relative)
                    result.append((base / relative, self.to_dir / relative))

        logger.debug(
            "MATCH", f"{len(result)} file(s) matched in {self.from_dir} -> {self.to_dir}"
        )
        return result

    def create_filter(self) -> UnpackFilter:
        """Return a predicate over destination-relative paths."""
        compiled = self.compile()

        def _filter(relative_path: str) -> bool:
            return bool(_evaluate(compiled, PurePosixPath(relative_path).as_posix()))

        return _filter


def _walk(
    start: Path,
    base: Path,
    patterns: Sequence[GlobPattern],
    exclude_set: ExcludeSet | None,
    prune: Callable[[str], bool] | None,
) -> Iterator[str]:
    """Yield base-relative POSIX paths of files below start, sorted depth-first.

    Directories are pruned when the last pattern matching them is a
    negation, when the exclude set claims them, or when ``prune`` says so.
    Symlinked directories resolving outside base are not followed.
    """
    logger = get_global_logger()
    real_base = base.resolve()
    visited: set[Path] = set()

    def _recurse(directory: Path) -> Iterator[str]:
        real = directory.resolve()
        if real in visited:
            return
        visited.add(real)

        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as err:
            logger.debug("MATCH", f"Cannot list {directory}: {err}")
            return

        for entry in entries:
            path = Path(entry.path)
            relative = path.relative_to(base).as_posix()

            if entry.is_dir(follow_symlinks=True):
                if entry.is_symlink():
                    target = path.resolve()
                    if target != real_base and real_base not in target.parents:
                        logger.debug(
                            "MATCH", f"Not following symlink outside root: {relative}"
                        )
                        continue
                if _evaluate(patterns, relative) is False:
                    continue
                if exclude_set and exclude_set.excludes(path):
                    continue
                if prune is not None and prune(relative):
                    continue
                yield from _recurse(path)
            elif entry.is_file(follow_symlinks=True):
                if exclude_set and exclude_set.excludes(path):
                    continue
                yield relative

    yield from _recurse(start)


def compute_exclude_patterns(
    matchers: Sequence[FileMatcher] | None, base_dir: Path
) -> ExcludeSet:
    """Compile matchers into an ExcludeSet rooted at base_dir.

    This is the first phase of exclusion propagation. The result is passed
    to FileMatcher.match() of other matchers.
    """
    base_dir = base_dir.absolute()
    groups = []
    for matcher in matchers or ():
        group = matcher.compile_relative_to(base_dir)
        if any(not p.negate for p in group):
            groups.append(group)
    return ExcludeSet(base_dir, tuple(groups))


def get_file_matchers(
    config: dict[str, Any],
    name: str,
    default_src: Path,
    default_dest: Path,
    *,
    macro_expander: MacroExpander | None = None,
    platform_options: dict[str, Any] | None = None,
    out_dir: Path | None = None,
) -> list[FileMatcher] | None:
    """Build matchers for a file-list option (files, extra_files, ...).

    String entries are added to a default matcher from default_src to
    default_dest. Mapping entries ``{from, to, filter}`` become their own
    matchers, resolved against the defaults. Top-level and platform
    entries are combined; for ``files`` only the platform entries are read
    here (top-level ``files`` is handled by the caller).

    Returns:
        The matchers (default matcher first), or None if nothing is
        configured.

    Raises:
        ConfigError: If a mapping entry is used for ``archive_unpack``.
    """
    platform_options = platform_options or {}
    default_matcher = FileMatcher(default_src, default_dest, None, macro_expander)
    matchers: list[FileMatcher] = []

    def _add(patterns: Any) -> None:
        if patterns is None:
            return
        if isinstance(patterns, (str, dict)):
            patterns = [patterns]
        for pattern in patterns:
            if isinstance(pattern, str):
                default_matcher.add_pattern(pattern)
                continue
            if name == "archive_unpack":
                raise ConfigError(f'Advanced file copying not supported for "{name}"')
            src = default_src if pattern.get("from") is None else default_src / pattern["from"]
            dest = default_dest if pattern.get("to") is None else default_dest / pattern["to"]
            file_filter = pattern.get("filter")
            if file_filter is None:
                file_filter = ["**/*"]
            matchers.append(FileMatcher(src, dest, file_filter, macro_expander))

    if name != "files":
        _add(config.get(name))
    _add(platform_options.get(name))

    if not default_matcher.is_empty():
        matchers.insert(0, default_matcher)

    if out_dir is not None:
        relative_out = os.path.relpath(out_dir, default_src).replace("\\", "/")
        if not relative_out.startswith("."):
            default_matcher.add_pattern(f"!{relative_out}/*-unpacked{{,/**/*}}")

    return matchers or None


def get_main_file_matchers(
    app_dir: Path,
    destination: Path,
    config: dict[str, Any],
    *,
    project_dir: Path,
    build_resources_dir: Path,
    out_dir: Path,
    macro_expander: MacroExpander | None = None,
    platform_options: dict[str, Any] | None = None,
) -> list[FileMatcher]:
    """Matchers for the main application copy, with default exclusions.

    The first matcher gets ``package.json`` (or ``**/*`` when it has no
    include patterns), and excludes for the build resources directory, the
    output directory, VCS and editor files, and build-only file types.
    """
    platform_options = platform_options or {}
    files_config = {"files": [*_as_list(config.get("files")), *_as_list(platform_options.get("files"))]}
    matchers = get_file_matchers(
        files_config,
        "files",
        app_dir,
        destination,
        macro_expander=macro_expander,
        platform_options=files_config,
        out_dir=out_dir,
    )
    if matchers is None:
        matchers = [FileMatcher(app_dir, destination, None, macro_expander)]

    matcher = matchers[0]
    if matcher.from_dir != Path(app_dir):
        return matchers

    patterns = matcher.patterns
    custom_first: list[str] = []
    if not matcher.is_specified_as_empty_array and (
        matcher.is_empty() or matcher.contains_only_ignore()
    ):
        custom_first.append("**/*")
    elif "package.json" not in patterns:
        patterns.append("package.json")

    relative_resources = os.path.relpath(build_resources_dir, matcher.from_dir).replace("\\", "/")
    if relative_resources != "." and not relative_resources.startswith("."):
        custom_first.append(f"!{relative_resources}{{,/**/*}}")

    relative_out = os.path.relpath(out_dir, project_dir).replace("\\", "/")
    if not relative_out.startswith("."):
        custom_first.append(f"!{relative_out}{{,/**/*}}")

    # defaults go after the last permissive user pattern
    insert_index = 0
    for i in range(len(patterns) - 1, -1, -1):
        if patterns[i].startswith("**/"):
            insert_index = i + 1
            break
    patterns[insert_index:insert_index] = custom_first

    patterns.append(f"!**/*.{{{EXCLUDED_EXTS}}}")
    patterns.append("!**/._*")
    patterns.append("!**/distpack.{yaml,yml}")
    patterns.append(f"!**/{{{EXCLUDED_NAMES}}}")
    patterns.append("!.editorconfig")

    get_global_logger().debug("MATCH", f"Main matcher: {matcher!r}")
    return matchers


def get_node_module_file_matcher(
    app_dir: Path,
    destination: Path,
    config: dict[str, Any],
    *,
    macro_expander: MacroExpander | None = None,
    platform_options: dict[str, Any] | None = None,
) -> FileMatcher:
    """Matcher applied to dependency trees.

    Only the exclusions of the ``files`` option apply to dependencies
    (inclusions would otherwise drop required module files).
    """
    platform_options = platform_options or {}
    matcher = FileMatcher(app_dir, destination, None, macro_expander)

    for entry in [*_as_list(config.get("files")), *_as_list(platform_options.get("files"))]:
        if isinstance(entry, str):
            if entry.startswith("!"):
                matcher.add_pattern(entry)
        elif entry.get("from") in (None, "."):
            for pattern in _as_list(entry.get("filter")):
                matcher.add_pattern(pattern)

    matcher.prepend_pattern("**/*")
    for pattern in NODE_MODULES_EXCLUDES:
        matcher.add_pattern(pattern)
    return matcher


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
