# refs.py -- Decoding of the pre-push hook's ref input
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

"""Decoding of the refs git passes to a pre-push hook.

git writes one line per ref being pushed to the hook's standard input::

    <local ref> <local sha1> <remote ref> <remote sha1>

The objects that have to be sent are those reachable from ``<local sha1>``
but not from ``<remote sha1>``, i.e. ``git rev-list <local> ^<remote>``.
"""

__all__ = [
    "DELETE_BRANCH",
    "ZERO_SHA",
    "RefRange",
    "decode_refs",
    "is_zero_sha",
    "read_ref_ranges",
]

from typing import NamedTuple, TextIO

DELETE_BRANCH = "(delete)"
ZERO_SHA = "0" * 40


def is_zero_sha(sha: str) -> bool:
    """Check whether ``sha`` is the all-zero object id git uses for "no commit"."""
    return len(sha) in (40, 64) and sha.strip("0") == ""


class RefRange(NamedTuple):
    """The commit range of one pushed ref.

    Attributes:
      left: The local endpoint, or "" if there is nothing to scan
      right: The exclusion of the remote endpoint ("^<sha>"), or ""
    """

    left: str
    right: str

    @property
    def is_deletion(self) -> bool:
        """Whether this line describes the deletion of a remote branch."""
        return self.left == DELETE_BRANCH or is_zero_sha(self.left)

    @property
    def is_empty(self) -> bool:
        """Whether there is no local endpoint to scan from."""
        return not self.left


def decode_refs(line: str) -> RefRange:
    """Pull the endpoints out of one line of pre-push input.

    Args:
      line: A line of the form "<local ref> <local sha1> <remote ref> <remote sha1>"
    Returns: A RefRange; missing tokens leave the corresponding endpoint empty
    """
    refs = line.strip().split(" ")
    left = right = ""

    if refs[0] == DELETE_BRANCH:
        left = DELETE_BRANCH
    elif len(refs) > 1:
        left = refs[1]

    if len(refs) > 3:
        right = "^" + refs[3]

    return RefRange(left, right)


def read_ref_ranges(stream: TextIO) -> list[RefRange]:
    """Read and decode all of the pre-push input.

    Returns: One RefRange per non-blank line; an empty list if there was no
        input at all, meaning there is nothing to push
    """
    data = stream.read()
    return [decode_refs(line) for line in data.splitlines() if line.strip()]
