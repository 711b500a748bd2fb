# scanner.py -- Finding the LFS pointers in a range of commits
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

"""Finding the LFS pointers reachable in a range of commits.

The scan uses three git plumbing commands:

1. ``git rev-list --objects <left> <right>`` lists every object reachable
   from the pushed commit but not from the remote's, with the path each
   blob was first seen at;
2. ``git cat-file --batch-check`` gives the type and size of each object,
   so that anything which is not a small blob can be skipped;
3. ``git cat-file --batch`` reads the remaining blobs, which are parsed as
   LFS pointers.
"""

__all__ = ["GitPointerScanner"]

import logging
import subprocess
from collections.abc import Sequence

from .errors import ScanError
from .pointers import POINTER_MAX_SIZE, LFSPointer, WrappedPointer
from .refs import is_zero_sha

logger = logging.getLogger(__name__)


class GitPointerScanner:
    """Scan commit ranges of a git repository for LFS pointers."""

    def __init__(self, path: str = ".", git_path: str = "git") -> None:
        """Initialize a scanner.

        Args:
          path: Path to the repository (or any directory inside its work tree)
          git_path: git executable to run
        """
        self.path = path
        self.git_path = git_path

    def _git(self, args: Sequence[str], input: bytes | None = None) -> bytes:
        try:
            p = subprocess.run(
                [self.git_path, *args],
                cwd=self.path,
                input=input,
                capture_output=True,
                check=True,
            )
        except OSError as e:
            raise ScanError(f"Unable to run {self.git_path}: {e}", cause=e) from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode("utf-8", "replace").strip()
            raise ScanError(
                f"git {args[0]} failed with exit status {e.returncode}: {stderr}",
                cause=e,
            ) from e
        return p.stdout

    def _has_commit(self, sha: str) -> bool:
        try:
            p = subprocess.run(
                [self.git_path, "cat-file", "-e", f"{sha}^{{commit}}"],
                cwd=self.path,
                capture_output=True,
            )
        except OSError as e:
            raise ScanError(f"Unable to run {self.git_path}: {e}", cause=e) from e
        return p.returncode == 0

    def rev_list(self, left: str, right: str = "") -> dict[bytes, str]:
        """List the blobs and trees reachable in a range.

        Returns: Mapping from object id to the path it was found at
        """
        args = ["rev-list", "--objects", left]
        remote_sha = right.lstrip("^")
        # A new branch has no remote commit to exclude.
        if remote_sha and not is_zero_sha(remote_sha):
            if self._has_commit(remote_sha):
                args.append(right)
            else:
                logger.debug("remote commit %s not available locally", remote_sha)
        args.append("--")

        objects: dict[bytes, str] = {}
        for line in self._git(args).splitlines():
            sha, sep, path = line.partition(b" ")
            # Commits are listed without a path.
            if not sep or not path:
                continue
            objects.setdefault(sha, path.decode("utf-8", "surrogateescape"))
        return objects

    def _small_blobs(self, shas: Sequence[bytes]) -> list[bytes]:
        output = self._git(
            ["cat-file", "--batch-check"], input=b"".join(sha + b"\n" for sha in shas)
        )
        blobs = []
        for line in output.splitlines():
            fields = line.split(b" ")
            if len(fields) != 3 or fields[1] != b"blob":
                continue
            if int(fields[2]) < POINTER_MAX_SIZE:
                blobs.append(fields[0])
        return blobs

    def _read_blobs(self, shas: Sequence[bytes]) -> dict[bytes, bytes]:
        output = self._git(
            ["cat-file", "--batch"], input=b"".join(sha + b"\n" for sha in shas)
        )
        contents = {}
        offset = 0
        while offset < len(output):
            end = output.index(b"\n", offset)
            header = output[offset:end].split(b" ")
            if len(header) != 3:
                raise ScanError(f"Unexpected git cat-file output: {header!r}")
            size = int(header[2])
            contents[header[0]] = output[end + 1 : end + 1 + size]
            # Skip the content and the newline that follows it.
            offset = end + 1 + size + 1
        return contents

    def scan_refs(self, left: str, right: str = "") -> list[WrappedPointer]:
        """Return the LFS pointers reachable from ``left`` but not ``right``.

        Args:
          left: Commit to scan from
          right: Exclusion of the form ``^<sha>``, or ""
        Returns: Pointers in the order git lists the objects
        Raises:
          ScanError: if git fails or produces unexpected output
        """
        if not left:
            return []
        objects = self.rev_list(left, right)
        if not objects:
            return []
        blobs = self._small_blobs(list(objects))
        if not blobs:
            return []

        pointers = []
        for sha, data in self._read_blobs(blobs).items():
            pointer = LFSPointer.from_bytes(data)
            if pointer is None or not pointer.is_valid_oid():
                continue
            pointers.append(WrappedPointer.from_pointer(pointer, objects[sha]))
        logger.debug(
            "found %d LFS pointers in %s %s", len(pointers), left, right or "(all)"
        )
        return pointers
