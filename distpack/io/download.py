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

"""HTTP download for distpack's tool cache.

External helper tools (the icon converter, signing helpers) can be fetched
from a configured URL on first use. Downloads are:

- **Retried** on transient status codes with exponential backoff
  (urllib3 Retry mounted on a requests Session).
- **Atomic**: written to ``<filename>.part`` and renamed on success.
- **Verified**: SHA-256 is computed while streaming and compared to the
  expected digest when one is configured.

Constants:

- DEFAULT_CHUNK (int): Stream chunk size (1 MiB).

Example:

    >>> from pathlib import Path
    >>> from distpack.io import download_file
    >>> path, sha256 = download_file(
    ...     url="https://example.com/tools/icon-tool",
    ...     destination_folder=Path("~/.cache/distpack/tools").expanduser(),
    ... )
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from distpack import __version__
from distpack.exceptions import NetworkError
from distpack.logging import get_global_logger

# Stream size per chunk (1 MiB).
DEFAULT_CHUNK = 1024 * 1024


def _filename_from_url(url: str) -> str:
    """Derive a filename from the URL path, with a generic fallback."""
    name = Path(urlparse(url).path).name
    return name or "download.bin"


def make_session() -> requests.Session:
    """
    Create a requests.Session with retry/backoff defaults.

    - Retries on common transient status codes.
    - Applies exponential backoff.
    - Identifies distpack in the User-Agent.
    """
    s = requests.Session()
    retries = Retry(
        total=5,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    s.headers.update(
        {
            "User-Agent": f"distpack/{__version__}",
            "Accept-Encoding": "identity",
        }
    )
    s.mount("http://", HTTPAdapter(max_retries=retries))
    s.mount("https://", HTTPAdapter(max_retries=retries))
    return s


def download_file(
    url: str,
    destination_folder: Path,
    *,
    filename: str | None = None,
    expected_sha256: str | None = None,
    timeout: int = 60,
) -> tuple[Path, str]:
    """Download a URL into destination_folder.

    Args:
        url: Source URL.
        destination_folder: Folder to save into (created if missing).
        filename: Target file name. Defaults to the last URL path segment.
        expected_sha256: Known SHA-256 (hex). A mismatch deletes the file.
        timeout: Per-request timeout (seconds).

    Returns:
        A tuple (file_path, sha256_hex).

    Raises:
        NetworkError: On connection failures, non-2xx responses (after
            retries), or a checksum mismatch.
    """
    logger = get_global_logger()

    destination_folder = Path(destination_folder)
    destination_folder.mkdir(parents=True, exist_ok=True)

    logger.verbose("HTTP", f"GET {url}")

    with make_session() as session:
        try:
            resp = session.get(url, stream=True, allow_redirects=True, timeout=timeout)
        except requests.RequestException as err:
            raise NetworkError(f"download failed for {url}: {err}") from err

        try:
            resp.raise_for_status()
        except requests.HTTPError as err:
            resp.close()
            raise NetworkError(f"download failed for {url}: {err}") from err

        logger.verbose("HTTP", f"Response: {resp.status_code} {resp.reason}")

        target = destination_folder / (filename or _filename_from_url(resp.url))
        tmp = target.with_suffix(target.suffix + ".part")
        logger.debug("FILE", f"Downloading to: {tmp}")

        sha = hashlib.sha256()
        try:
            with tmp.open("wb") as f:
                for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                    if not chunk:
                        continue
                    f.write(chunk)
                    sha.update(chunk)
        except requests.RequestException as err:
            tmp.unlink(missing_ok=True)
            raise NetworkError(f"download interrupted for {url}: {err}") from err
        finally:
            resp.close()

    digest = sha.hexdigest()
    if expected_sha256 and digest.lower() != expected_sha256.lower():
        tmp.unlink(missing_ok=True)
        raise NetworkError(
            f"sha256 mismatch for {target.name}: got {digest}, expected {expected_sha256}"
        )

    tmp.replace(target)
    logger.verbose("FILE", f"Download complete: {target} ({digest})")
    return target, digest
