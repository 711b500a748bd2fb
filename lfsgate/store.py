# store.py -- The local LFS object store
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

"""The local LFS object store in ``.git/lfs``.

Objects live at ``objects/<oid[0:2]>/<oid[2:4]>/<oid>`` and are named by
the SHA256 of their contents. New objects are written to ``tmp`` first and
renamed into place.
"""

import hashlib
import logging
import os
import tempfile
from collections.abc import Iterable
from typing import BinaryIO

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class LFSStore:
    """Stores objects on disk, indexed by SHA256."""

    def __init__(self, path: str) -> None:
        """Initialize LFSStore."""
        self.path = path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"

    @classmethod
    def create(cls, lfs_dir: str) -> "LFSStore":
        """Create a new LFS store, making its directories as needed."""
        if not os.path.isdir(lfs_dir):
            os.mkdir(lfs_dir)
        for subdir in ("tmp", "objects"):
            path = os.path.join(lfs_dir, subdir)
            if not os.path.isdir(path):
                os.mkdir(path)
        return cls(lfs_dir)

    @classmethod
    def from_controldir(cls, controldir: str, create: bool = False) -> "LFSStore":
        """Create LFS store from a git control directory (e.g. ``.git``)."""
        lfs_dir = os.path.join(controldir, "lfs")
        if create:
            return cls.create(lfs_dir)
        return cls(lfs_dir)

    def object_path(self, oid: str) -> str:
        """Return the path an object is (or would be) stored at."""
        return os.path.join(self.path, "objects", oid[0:2], oid[2:4], oid)

    def object_exists_of_size(self, oid: str, size: int) -> bool:
        """Check whether a local copy of ``oid`` with exactly ``size`` bytes exists.

        This only stats the file; it never reads it or touches the network.
        """
        try:
            st = os.stat(self.object_path(oid))
        except OSError:
            return False
        return st.st_size == size

    def open_object(self, oid: str) -> BinaryIO:
        """Open an object by oid.

        Raises:
          KeyError: if the object is not in the store
        """
        try:
            return open(self.object_path(oid), "rb")
        except FileNotFoundError as exc:
            raise KeyError(oid) from exc

    def write_object(self, chunks: Iterable[bytes]) -> tuple[str, int]:
        """Write an object.

        The data is streamed to a temporary file while it is hashed, so it
        never has to be held in memory as a whole.

        Returns: Tuple with the object's oid and size
        """
        tmpdir = os.path.join(self.path, "tmp")
        if not os.path.isdir(tmpdir):
            os.makedirs(tmpdir)

        sha = hashlib.sha256()
        size = 0
        with tempfile.NamedTemporaryFile(dir=tmpdir, mode="wb", delete=False) as f:
            tmppath = f.name
            try:
                for chunk in chunks:
                    sha.update(chunk)
                    size += len(chunk)
                    f.write(chunk)
            except BaseException:
                f.close()
                os.remove(tmppath)
                raise

        oid = sha.hexdigest()
        path = self.object_path(oid)
        if os.path.exists(path):
            os.remove(tmppath)
            return oid, size

        os.makedirs(os.path.dirname(path), exist_ok=True)
        os.replace(tmppath, path)
        logger.debug("stored LFS object %s (%d bytes)", oid, size)
        return oid, size

    def write_file(self, path: str) -> tuple[str, int]:
        """Add the contents of a working tree file to the store.

        Returns: Tuple with the object's oid and size
        """
        with open(path, "rb") as f:
            return self.write_object(iter(lambda: f.read(CHUNK_SIZE), b""))
