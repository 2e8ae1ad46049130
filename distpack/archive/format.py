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

"""Binary layout of the single-file archive.

Layout (all integers little-endian uint32):

    +--------------------+-----------------------------+----------------+
    | size envelope (8)  | header envelope             | body           |
    | 4, header_size     | payload_size, json_len,     | file bytes,    |
    |                    | json, padding to 4 bytes    | concatenated   |
    +--------------------+-----------------------------+----------------+

The header is a JSON directory tree serialized with sorted keys and
compact separators, so identical trees always produce identical bytes:

    {"files": {"lib": {"files": {"native.node": {...}}},
               "app.js": {"size": 10, "offset": "0", ...}}}

File leaves carry ``size``, ``offset`` (decimal string, relative to the
start of the body), and optionally ``executable``, ``unpacked`` and
``integrity``. Unpacked leaves have no offset and no body bytes.
"""

from __future__ import annotations

from collections.abc import Iterator
import hashlib
import json
import struct
from typing import Any, BinaryIO

from distpack.exceptions import PackagingError

__all__ = [
    "ARCHIVE_NAME",
    "BLOCK_SIZE",
    "HASH_ALGORITHM",
    "decode_header",
    "encode_header",
    "file_integrity",
    "iter_files",
]

ARCHIVE_NAME = "app.asar"
UNPACKED_SUFFIX = ".unpacked"

BLOCK_SIZE = 4 * 1024 * 1024
HASH_ALGORITHM = "SHA256"

_SIZE_ENVELOPE = 8
_UINT32 = struct.Struct("<I")


def _align4(length: int) -> int:
    return length + (-length % 4)


def encode_header(tree: dict[str, Any]) -> bytes:
    """Serialize a header tree including both envelopes."""
    json_bytes = json.dumps(tree, sort_keys=True, separators=(",", ":")).encode("utf-8")
    padding = b"\0" * (_align4(len(json_bytes)) - len(json_bytes))
    payload = _UINT32.pack(len(json_bytes)) + json_bytes + padding
    header = _UINT32.pack(len(payload)) + payload
    return struct.pack("<II", 4, len(header)) + header


def decode_header(stream: BinaryIO) -> tuple[dict[str, Any], int]:
    """Read the header from the start of an archive stream.

    Returns:
        Tuple of (header tree, body offset).

    Raises:
        PackagingError: If the envelope is truncated or inconsistent.
    """
    prefix = stream.read(_SIZE_ENVELOPE)
    if len(prefix) != _SIZE_ENVELOPE:
        raise PackagingError("archive is truncated: missing size envelope")
    marker, header_size = struct.unpack("<II", prefix)
    if marker != 4:
        raise PackagingError(f"not an archive: unexpected size marker {marker}")

    header = stream.read(header_size)
    if len(header) != header_size or header_size < 8:
        raise PackagingError("archive is truncated: incomplete header")

    (payload_size,) = _UINT32.unpack_from(header, 0)
    (json_length,) = _UINT32.unpack_from(header, 4)
    if payload_size + 4 != header_size or json_length + 4 > payload_size:
        raise PackagingError("archive header envelope is inconsistent")

    try:
        tree = json.loads(header[8 : 8 + json_length].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        raise PackagingError(f"archive header is not valid JSON: {err}") from err
    if not isinstance(tree, dict) or not isinstance(tree.get("files"), dict):
        raise PackagingError("archive header has no file tree")

    return tree, _SIZE_ENVELOPE + header_size


def iter_files(tree: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, dict[str, Any]]]:
    """Yield (path, leaf) for every file in a header tree, sorted by path."""
    for name in sorted(tree.get("files", {})):
        node = tree["files"][name]
        path = f"{prefix}{name}"
        if "files" in node:
            yield from iter_files(node, f"{path}/")
        else:
            yield path, node


def file_integrity(data: bytes) -> dict[str, Any]:
    """Per-file integrity: whole-file hash plus per-block hashes."""
    blocks = [
        hashlib.sha256(data[start : start + BLOCK_SIZE]).hexdigest()
        for start in range(0, len(data), BLOCK_SIZE)
    ]
    if not blocks:
        blocks = [hashlib.sha256(b"").hexdigest()]
    return {
        "algorithm": HASH_ALGORITHM,
        "hash": hashlib.sha256(data).hexdigest(),
        "blockSize": BLOCK_SIZE,
        "blocks": blocks,
    }
