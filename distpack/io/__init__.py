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

"""Network I/O for distpack.

Public API:

download_file : function
    Download a file with retries, atomic writes and checksum validation.
make_session : function
    requests.Session with retry/backoff defaults.

Example:
    from pathlib import Path
    from distpack.io import download_file

    file_path, sha256 = download_file(
        url="https://example.com/tools/icon-tool",
        destination_folder=Path("./tools"),
    )

"""

from .download import download_file, make_session

__all__ = ["download_file", "make_session"]
