# transfer.py -- Bounded pools of LFS existence checks and uploads
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

"""Bounded pools of LFS transfers.

A :class:`TransferQueue` runs jobs on a fixed number of worker threads.
:meth:`TransferQueue.add` blocks while the pool already holds twice as many
jobs as it has workers, so a large push never builds up an unbounded
backlog. :meth:`TransferQueue.wait` returns once every job added has
finished; after that :meth:`TransferQueue.errors` holds exactly one
:class:`~lfsgate.errors.OperationError` for every job that failed.

Two kinds of job exist: :class:`Checkable` asks the remote whether it has an
object, and :class:`Uploadable` sends one. :func:`new_uploadable` builds the
latter from a pointer, finding (or producing) the object in the local store.
"""

__all__ = [
    "CheckQueue",
    "Checkable",
    "TransferQueue",
    "UploadQueue",
    "Uploadable",
    "format_bytes",
    "new_uploadable",
]

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Protocol

from .client import LFSClient
from .config import DEFAULT_CONCURRENT_TRANSFERS
from .errors import (
    CheckError,
    ConstructionError,
    LFSError,
    OperationError,
    UploadError,
)
from .pointers import POINTER_MAX_SIZE, LFSPointer, WrappedPointer

if TYPE_CHECKING:
    from .prepush import RunContext

logger = logging.getLogger(__name__)


def format_bytes(size: float) -> str:
    """Format a byte count as a human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if abs(size) < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


class Transferable(Protocol):
    """A unit of work for a transfer queue."""

    oid: str
    name: str
    size: int

    def transfer(self, client: LFSClient) -> None:
        """Perform the transfer, raising an exception on failure."""


class TransferQueue:
    """Fixed-size pool of workers running transfer jobs.

    Subclasses set ``error_class`` (used to wrap unexpected job failures) and
    ``description`` (used in log messages).
    """

    error_class: type[OperationError] = OperationError
    description = "transfer"

    def __init__(
        self,
        client: LFSClient,
        files: int,
        size: int,
        concurrency: int = DEFAULT_CONCURRENT_TRANSFERS,
    ) -> None:
        """Create a transfer queue.

        Args:
          client: LFS client the jobs run against
          files: Number of jobs expected
          size: Total size of the objects involved, in bytes
          concurrency: Maximum number of jobs running at the same time
        """
        self.client = client
        self.files = files
        self.size = size
        self.workers = max(1, min(concurrency, files))
        self._executor = ThreadPoolExecutor(
            max_workers=self.workers,
            thread_name_prefix=f"lfsgate-{self.description}",
        )
        self._slots = threading.BoundedSemaphore(self.workers * 2)
        self._lock = threading.Lock()
        self._errors: list[OperationError] = []
        self._added = 0
        self._completed = 0
        self._transferred_bytes = 0
        self._waited = False
        logger.debug(
            "%s queue: %d files, %s, %d workers",
            self.description,
            files,
            format_bytes(size),
            self.workers,
        )

    def add(self, job: Transferable) -> None:
        """Submit a job, blocking while the pool is saturated."""
        if self._waited:
            raise RuntimeError("cannot add jobs to a queue that has been waited on")
        self._slots.acquire()
        try:
            self._executor.submit(self._run, job)
        except BaseException:
            self._slots.release()
            raise
        self._added += 1

    def _wrap_error(self, job: Transferable, exc: Exception) -> OperationError:
        context = {"oid": job.oid, "name": job.name}
        if isinstance(exc, LFSError):
            return self.error_class(f"{exc} ({job.name})", cause=exc, context=context)
        return self.error_class(
            f"Unexpected error during {self.description} of {job.name} "
            f"({job.oid}): {exc}",
            cause=exc,
            fatal=True,
            context=context,
        )

    def _run(self, job: Transferable) -> None:
        try:
            job.transfer(self.client)
        except OperationError as e:
            error: OperationError | None = e
        except Exception as e:
            error = self._wrap_error(job, e)
        else:
            error = None
        finally:
            self._slots.release()

        with self._lock:
            self._completed += 1
            if error is not None:
                self._errors.append(error)
            else:
                self._transferred_bytes += job.size
            completed = self._completed
        if error is None:
            logger.debug(
                "%s %s (%d/%d)", self.description, job.name, completed, self.files
            )
        else:
            logger.debug("%s of %s failed: %s", self.description, job.name, error)

    def wait(self) -> None:
        """Block until every job added has finished."""
        self._executor.shutdown(wait=True)
        self._waited = True
        logger.debug(
            "%s queue drained: %d of %d jobs failed, %s transferred",
            self.description,
            len(self._errors),
            self._added,
            format_bytes(self._transferred_bytes),
        )

    def errors(self) -> list[OperationError]:
        """Return the errors of all failed jobs."""
        with self._lock:
            return list(self._errors)

    @property
    def added(self) -> int:
        """Number of jobs submitted so far."""
        return self._added


class Checkable:
    """Job checking that the remote has an object."""

    def __init__(self, pointer: WrappedPointer) -> None:
        self.pointer = pointer
        self.oid = pointer.oid
        self.name = pointer.name
        self.size = pointer.size

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.pointer!r})"

    def transfer(self, client: LFSClient) -> None:
        if not client.object_exists(self.oid, self.size):
            raise CheckError(
                f"{self.name} ({self.oid}) does not exist on the remote",
                context={"oid": self.oid, "name": self.name},
            )


class CheckQueue(TransferQueue):
    """Pool of remote existence checks."""

    error_class = CheckError
    description = "check"


class Uploadable:
    """Job uploading one object from the local store."""

    def __init__(self, oid: str, name: str, size: int, path: str) -> None:
        self.oid = oid
        self.name = name
        self.size = size
        self.path = path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.oid!r}, {self.name!r})"

    def transfer(self, client: LFSClient) -> None:
        with open(self.path, "rb") as f:
            uploaded = client.upload(self.oid, self.size, f)
        if not uploaded:
            logger.debug("%s (%s) already on the remote", self.name, self.oid)


class UploadQueue(TransferQueue):
    """Pool of uploads."""

    error_class = UploadError
    description = "upload"


def _ensure_file(oid: str, name: str, ctx: "RunContext") -> None:
    """Produce a missing local object from the working tree copy of ``name``.

    Raises:
      ConstructionError: with ``permanently_missing`` set if the working tree
        file is itself a pointer, i.e. the content was never produced here
    """
    path = os.path.join(ctx.worktree, name)
    context = {"oid": oid, "name": name}
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise ConstructionError(
            f"Error uploading file {name} ({oid})", cause=e, context=context
        ) from e

    try:
        if st.st_size < POINTER_MAX_SIZE:
            with open(path, "rb") as f:
                pointer = LFSPointer.from_bytes(f.read())
            if pointer is not None:
                raise ConstructionError(
                    f"{name} is an LFS pointer to missing content {pointer.oid}",
                    context={"oid": pointer.oid, "name": name},
                    permanently_missing=True,
                )
        clean_oid, _ = ctx.store.write_file(path)
    except OSError as e:
        raise ConstructionError(
            f"Error uploading file {name} ({oid})", cause=e, fatal=True, context=context
        ) from e

    if clean_oid != oid:
        raise ConstructionError(
            f"Error uploading file {name} ({oid})",
            cause=LFSError(
                f"working tree copy of {name} has oid {clean_oid}, expected {oid}"
            ),
            context=context,
        )
    logger.debug("recovered %s (%s) from the working tree", name, oid)


def new_uploadable(oid: str, name: str, ctx: "RunContext") -> Uploadable:
    """Build an upload job for the object ``oid`` found at path ``name``.

    Args:
      oid: Object ID (SHA256)
      name: Path of the pointer in the repository
      ctx: The run's context; supplies the local store and working tree
    Raises:
      ConstructionError: if the object cannot be supplied from local storage
    """
    path = ctx.store.object_path(oid)
    if name and not os.path.exists(path):
        _ensure_file(oid, name, ctx)

    try:
        st = os.stat(path)
    except OSError as e:
        raise ConstructionError(
            f"Error uploading file {name} ({oid})",
            cause=e,
            context={"oid": oid, "name": name},
        ) from e
    return Uploadable(oid, name, st.st_size, path)
