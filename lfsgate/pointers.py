# pointers.py -- LFS pointers and pointer collections
# Copyright (C) 2026 The lfsgate Authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# lfsgate is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""LFS pointers.

An LFS pointer is the small text file git stores in place of a large file::

    version https://git-lfs.github.com/spec/v1
    oid sha256:4d7a214614ab2935c943f9e0ff69d22eadbb8f32b1258daaa5e2ca24d17e2393
    size 12345

:class:`LFSPointer` parses and renders that format. :class:`WrappedPointer`
is a pointer found while scanning a push, together with the path it was
found at, and :class:`PointerSet` is the ordered collection of them that the
gate works on.
"""

__all__ = [
    "POINTER_MAX_SIZE",
    "LFSPointer",
    "PointerSet",
    "WrappedPointer",
]

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Optional

LFS_SPEC_VERSION = "https://git-lfs.github.com/spec/v1"

# Blobs larger than this are never pointer files.
POINTER_MAX_SIZE = 1024


class LFSPointer:
    """Represents an LFS pointer file."""

    def __init__(self, oid: str, size: int) -> None:
        """Initialize LFSPointer."""
        self.oid = oid
        self.size = size

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.oid!r}, {self.size!r})"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, LFSPointer)
            and self.oid == other.oid
            and self.size == other.size
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["LFSPointer"]:
        """Parse LFS pointer from bytes.

        Returns None if data is not a valid LFS pointer.
        """
        if len(data) >= POINTER_MAX_SIZE:
            return None
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return None

        lines = text.strip().split("\n")
        if len(lines) < 3:
            return None

        if not lines[0].startswith("version " + LFS_SPEC_VERSION):
            return None

        oid = None
        size = None

        for line in lines[1:]:
            if line.startswith("oid sha256:"):
                oid = line[11:].strip()
            elif line.startswith("size "):
                try:
                    size = int(line[5:].strip())
                except ValueError:
                    return None
                if size < 0:
                    return None

        if oid is None or size is None:
            return None

        return cls(oid, size)

    def to_bytes(self) -> bytes:
        """Convert LFS pointer to bytes."""
        return (
            f"version {LFS_SPEC_VERSION}\noid sha256:{self.oid}\nsize {self.size}\n"
        ).encode()

    def is_valid_oid(self) -> bool:
        """Check if the OID is valid SHA256."""
        if len(self.oid) != 64:
            return False
        try:
            int(self.oid, 16)
        except ValueError:
            return False
        return True


@dataclass(frozen=True)
class WrappedPointer:
    """An LFS object referenced by the commits being pushed.

    Attributes:
      oid: SHA256 of the object contents
      name: Path the pointer was found at, used in messages
      size: Size of the object contents in bytes
    """

    oid: str
    name: str
    size: int

    @classmethod
    def from_pointer(cls, pointer: LFSPointer, name: str) -> "WrappedPointer":
        """Wrap a parsed pointer found at ``name``."""
        return cls(pointer.oid, name, pointer.size)


class PointerSet:
    """Ordered collection of pointers with their aggregate size.

    Each oid is kept once; adding a pointer for an oid that is already
    present is a no-op, so ``total_size`` counts every object exactly once.
    """

    def __init__(self, pointers: Iterable[WrappedPointer] = ()) -> None:
        self._pointers: dict[str, WrappedPointer] = {}
        self.total_size = 0
        for pointer in pointers:
            self.add(pointer)

    def add(self, pointer: WrappedPointer) -> bool:
        """Add a pointer.

        Returns: True if the pointer was added, False if its oid was present
        """
        if pointer.oid in self._pointers:
            return False
        self._pointers[pointer.oid] = pointer
        self.total_size += pointer.size
        return True

    def oids(self) -> frozenset[str]:
        """Return the oids of all pointers in the set."""
        return frozenset(self._pointers)

    def __contains__(self, oid: object) -> bool:
        return oid in self._pointers

    def __iter__(self) -> Iterator[WrappedPointer]:
        return iter(self._pointers.values())

    def __len__(self) -> int:
        return len(self._pointers)

    def __bool__(self) -> bool:
        return bool(self._pointers)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self)!r})"
