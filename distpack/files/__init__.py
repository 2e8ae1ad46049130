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

"""File selection and copying for distpack.

Public API:

FileMatcher : class
    Ordered include/exclude glob patterns from a source to a destination.
compute_exclude_patterns : function
    Compile sibling matchers into an ExcludeSet for two-phase exclusion.
compute_file_sets : function
    Resolve matchers into ordered file sets, applying transformers.
copy_file_sets : function
    Copy file sets to disk with bounded concurrency.

Example:
    from pathlib import Path
    from distpack.files import FileMatcher, compute_file_sets, copy_file_sets

    matcher = FileMatcher(Path("src"), Path("out/app"), ["**/*.js"])
    file_sets = await compute_file_sets([matcher])
    await copy_file_sets(file_sets)

"""

from .fileset import (
    FileSet,
    FileSetEntry,
    compute_file_sets,
    compute_node_module_file_sets,
    copy_file_sets,
    copy_files,
    transform_files,
)
from .matcher import (
    ExcludeSet,
    FileMatcher,
    UnpackFilter,
    compute_exclude_patterns,
    get_file_matchers,
    get_main_file_matchers,
    get_node_module_file_matcher,
)

__all__ = [
    "ExcludeSet",
    "FileMatcher",
    "FileSet",
    "FileSetEntry",
    "UnpackFilter",
    "compute_exclude_patterns",
    "compute_file_sets",
    "compute_node_module_file_sets",
    "copy_file_sets",
    "copy_files",
    "get_file_matchers",
    "get_main_file_matchers",
    "get_node_module_file_matcher",
    "transform_files",
]
