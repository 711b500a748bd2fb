# prepush.py -- The pre-push gate
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

"""The pre-push gate.

git runs the pre-push hook with the name and URL of the remote as arguments
and the refs being pushed on standard input. For every LFS pointer
reachable from the pushed commits but not from the remote's, the gate
makes sure the object ends up on the remote LFS store:

1. Objects present in the local store (``.git/lfs/objects``) are uploaded.
2. Objects missing locally are looked up on the remote first. If the remote
   already has all of them they are skipped; if any of them is missing
   there too the push is refused before anything is uploaded, since the
   data is not available anywhere.
3. Uploads run on a bounded pool. A failed upload does not stop the others;
   once all are done, any failure makes the hook exit with status 2 so that
   git aborts the push.

With ``--dry-run`` the gate only lists the objects it would push.
"""

__all__ = [
    "Outcome",
    "PointerScanner",
    "RunContext",
    "coordinate_uploads",
    "filter_locally_missing",
    "pre_push",
    "reconcile_missing",
    "report_error",
    "report_outcome",
]

import enum
import logging
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, TextIO

from .client import LFSClient
from .config import DEFAULT_CONCURRENT_TRANSFERS
from .errors import (
    ConfigurationError,
    ConstructionError,
    OperationError,
    ReconciliationError,
)
from .pointers import PointerSet, WrappedPointer
from .refs import RefRange
from .store import LFSStore
from .transfer import Checkable, CheckQueue, UploadQueue, new_uploadable

logger = logging.getLogger(__name__)


class PointerScanner(Protocol):
    """Enumerates the LFS pointers reachable in a commit range."""

    def scan_refs(self, left: str, right: str = "") -> Iterable[WrappedPointer]:
        """Return the pointers reachable from ``left``, excluding ``right``."""


@dataclass
class RunContext:
    """Everything a single run of the gate works with.

    Attributes:
      remote: Name (or URL) of the remote being pushed to
      store: The local LFS store
      client: Client for the remote's LFS store; None if no endpoint is known
      worktree: Top of the working tree, to find files named by pointers
      concurrency: Number of concurrent checks and uploads
      dry_run: Only report what would be pushed
      verbose: Print full diagnostics for every failure
      outstream: Where the objects a dry run would push are listed
    """

    remote: str
    store: LFSStore
    client: LFSClient | None
    worktree: str = "."
    concurrency: int = DEFAULT_CONCURRENT_TRANSFERS
    dry_run: bool = False
    verbose: bool = False
    outstream: TextIO = field(default_factory=lambda: sys.stdout)

    def require_client(self) -> LFSClient:
        """Return the LFS client, or fail if no LFS endpoint is configured."""
        if self.client is None:
            raise ConfigurationError(
                f"No LFS endpoint configured for remote {self.remote!r}; "
                "set lfs.url or remote.<name>.lfsurl"
            )
        return self.client


class Outcome(enum.Enum):
    """How a run of the gate ended."""

    SUCCESS = "success"
    DRY_RUN = "dry-run"
    MISCONFIGURED = "misconfigured"
    FAILURE = "failure"

    @property
    def exit_code(self) -> int:
        """The exit status the hook should terminate with."""
        return _EXIT_CODES[self]


_EXIT_CODES = {
    Outcome.SUCCESS: 0,
    Outcome.DRY_RUN: 0,
    Outcome.MISCONFIGURED: 1,
    Outcome.FAILURE: 2,
}


def report_error(error: OperationError, verbose: bool = False) -> None:
    """Print an error: the full diagnostic if verbose or fatal, else its summary.

    Configuration errors are advisory: only their summary is printed unless
    ``verbose`` is set.
    """
    if isinstance(error, ConstructionError) and error.permanently_missing:
        logger.error("%s", error.summary())
    elif verbose:
        logger.error("%s", error.detail())
    elif isinstance(error, ConfigurationError):
        logger.error("%s", error.summary())
    elif error.fatal:
        logger.error("%s", error.detail())
    else:
        logger.error("%s", error.summary())


def report_outcome(
    noop: bool, dry_run: bool, errors: Sequence[OperationError]
) -> Outcome:
    """Decide how the run ended.

    Args:
      noop: True if there was nothing to push (no input, or only deletions)
      dry_run: True if the run only listed what it would push
      errors: Errors collected from the upload queue
    """
    if noop:
        return Outcome.SUCCESS
    if errors:
        return Outcome.FAILURE
    if dry_run:
        return Outcome.DRY_RUN
    return Outcome.SUCCESS


def filter_locally_missing(pointers: PointerSet, ctx: RunContext) -> PointerSet:
    """Return the pointers whose objects are not in the local store.

    An object only counts as present if its size matches the pointer's.
    """
    missing = PointerSet()
    for pointer in pointers:
        if not ctx.store.object_exists_of_size(pointer.oid, pointer.size):
            logger.debug("%s (%s) is missing locally", pointer.name, pointer.oid)
            missing.add(pointer)
    return missing


def reconcile_missing(missing: PointerSet, ctx: RunContext) -> frozenset[str]:
    """Confirm that the remote has every object missing from the local store.

    A check that fails for any reason counts as the object being absent.

    Args:
      missing: Pointers whose objects are not available locally
      ctx: The run's context
    Returns: The oids that are safe to skip uploading
    Raises:
      ReconciliationError: if any object could not be confirmed on the remote
    """
    if not missing:
        return frozenset()

    queue = CheckQueue(
        ctx.require_client(), len(missing), missing.total_size, ctx.concurrency
    )
    try:
        for pointer in missing:
            queue.add(Checkable(pointer))
    finally:
        queue.wait()

    errors = queue.errors()
    if errors:
        raise ReconciliationError(errors)
    return missing.oids()


def coordinate_uploads(
    pointers: PointerSet, skip: frozenset[str], ctx: RunContext
) -> list[OperationError]:
    """Upload every pointer's object that the remote still needs.

    Args:
      pointers: All pointers found in the pushed range
      skip: oids the remote is known to have already
      ctx: The run's context
    Returns: The errors of the uploads that failed; each has been reported
    Raises:
      ConstructionError: if an upload job could not be built for a pointer.
        Uploads that were already running are waited for first.
    """
    if ctx.dry_run:
        for pointer in pointers:
            ctx.outstream.write(f"push {pointer.name}\n")
        return []

    queue = UploadQueue(
        ctx.require_client(), len(pointers), pointers.total_size, ctx.concurrency
    )
    try:
        for pointer in pointers:
            if pointer.oid in skip:
                logger.debug("skipping %s: already on the remote", pointer.name)
                continue
            queue.add(new_uploadable(pointer.oid, pointer.name, ctx))
    finally:
        queue.wait()

    errors = queue.errors()
    for error in errors:
        report_error(error, ctx.verbose)
    return errors


def pre_push(
    ranges: Sequence[RefRange], scanner: PointerScanner, ctx: RunContext
) -> Outcome:
    """Run the gate for the refs git is about to push.

    Args:
      ranges: The decoded hook input; empty if git sent nothing
      scanner: Finds the LFS pointers in each range
      ctx: The run's context
    Returns: The outcome of the run
    Raises:
      OperationError: for failures that end the run before or while
        uploading: scanning, reconciliation or building an upload job
    """
    pointers = PointerSet()
    scanned = False
    for ref_range in ranges:
        if ref_range.is_deletion:
            logger.debug("not checking deleted ref")
            continue
        scanned = True
        if ref_range.is_empty:
            continue
        for pointer in scanner.scan_refs(ref_range.left, ref_range.right):
            pointers.add(pointer)

    if not scanned:
        return report_outcome(noop=True, dry_run=ctx.dry_run, errors=[])

    if not pointers:
        logger.debug("no LFS objects to push")
        return report_outcome(noop=False, dry_run=ctx.dry_run, errors=[])

    skip: frozenset[str] = frozenset()
    if not ctx.dry_run:
        # Checked up front, since uploads start as soon as they are queued.
        missing = filter_locally_missing(pointers, ctx)
        skip = reconcile_missing(missing, ctx)

    errors = coordinate_uploads(pointers, skip, ctx)
    return report_outcome(noop=False, dry_run=ctx.dry_run, errors=errors)
