# errors.py -- Error classes for the pre-push gate
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

"""lfsgate exception classes.

Every failure the gate reports is an :class:`OperationError`. The concrete
subclass tells what went wrong (its ``kind``), and the ``fatal`` flag tells
whether the full diagnostic should be shown rather than just the summary.

Scan, reconciliation and construction errors are raised and end the run.
Check and upload errors are collected by the transfer queues and inspected
once the queue has drained.
"""

__all__ = [
    "MISSING_OBJECT_MESSAGE",
    "CheckError",
    "ConfigurationError",
    "ConstructionError",
    "ErrorKind",
    "LFSError",
    "OperationError",
    "ReconciliationError",
    "ScanError",
    "UploadError",
]

import enum
import traceback
from collections.abc import Mapping, Sequence

# Parsed by tooling that reads hook output; must not change.
MISSING_OBJECT_MESSAGE = (
    "%s is an LFS pointer to %s, which does not exist in .git/lfs/objects."
    "\n\nRun 'git lfs fsck' to verify Git LFS objects."
)


class ErrorKind(enum.Enum):
    """Discriminant for :class:`OperationError` subclasses."""

    CONFIGURATION = "configuration"
    SCAN = "scan"
    RECONCILIATION = "reconciliation"
    CONSTRUCTION = "construction"
    CHECK = "check"
    UPLOAD = "upload"


class LFSError(Exception):
    """LFS-specific error raised by the LFS clients."""


class OperationError(Exception):
    """A failure of one step of the pre-push gate.

    Do not instantiate directly; use one of the subclasses.
    """

    kind: ErrorKind

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        fatal: bool = False,
        context: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize an OperationError.

        Args:
          message: Human-readable summary of the failure
          cause: Underlying exception, if any
          fatal: Whether the failure warrants full diagnostic output
          context: Structured values (e.g. ``oid`` and ``name``) that callers
            use to re-aggregate messages
        """
        Exception.__init__(self, message)
        self.message = message
        self.fatal = fatal
        self.context = dict(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def cause(self) -> BaseException | None:
        """The underlying exception, if any."""
        return self.__cause__

    def get(self, key: str, default: str = "") -> str:
        """Look up a context value."""
        return self.context.get(key, default)

    def summary(self) -> str:
        """Return the short, user-facing description of the failure."""
        return self.message

    def detail(self) -> str:
        """Return the full diagnostic: message, cause and traceback."""
        lines = [self.message]
        if self.__cause__ is not None:
            lines.append("")
            lines.extend(
                line.rstrip("\n")
                for line in traceback.format_exception(
                    type(self.__cause__), self.__cause__, self.__cause__.__traceback__
                )
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, fatal={self.fatal!r})"


class ConfigurationError(OperationError):
    """The gate cannot run because of how it was set up or invoked."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        """Initialize a ConfigurationError; these always end the run."""
        super().__init__(message, cause=cause, fatal=True)


class ScanError(OperationError):
    """Enumerating the LFS pointers in the pushed range failed."""

    kind = ErrorKind.SCAN

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        """Initialize a ScanError; scan failures are always fatal."""
        super().__init__(message, cause=cause, fatal=True)


class CheckError(OperationError):
    """A remote existence check did not confirm the object."""

    kind = ErrorKind.CHECK


class ReconciliationError(OperationError):
    """Objects missing locally could not be found on the remote either."""

    kind = ErrorKind.RECONCILIATION

    def __init__(self, failures: Sequence[OperationError]) -> None:
        """Initialize a ReconciliationError.

        Args:
          failures: The check errors, each carrying ``oid`` and ``name``
            context values
        """
        self.failures = list(failures)
        message = "".join(
            MISSING_OBJECT_MESSAGE % (failure.get("name"), failure.get("oid")) + "\n"
            for failure in self.failures
        )
        super().__init__(message, fatal=True)

    def oids(self) -> list[str]:
        """Return the oids of the objects that could not be confirmed."""
        return [failure.get("oid") for failure in self.failures]


class ConstructionError(OperationError):
    """An upload job could not be built for a pointer."""

    kind = ErrorKind.CONSTRUCTION

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        fatal: bool = False,
        context: Mapping[str, str] | None = None,
        permanently_missing: bool = False,
    ) -> None:
        """Initialize a ConstructionError.

        Args:
          message: Human-readable summary of the failure
          cause: Underlying exception, if any
          fatal: Whether the failure warrants full diagnostic output
          context: ``oid`` and ``name`` of the pointer
          permanently_missing: True if the pointer refers to content that was
            never produced locally, so no retry can satisfy it
        """
        super().__init__(message, cause=cause, fatal=fatal, context=context)
        self.permanently_missing = permanently_missing

    def summary(self) -> str:
        """Return the user-facing text, using the fixed template when missing."""
        if self.permanently_missing:
            return MISSING_OBJECT_MESSAGE % (self.get("name"), self.get("oid"))
        return self.message


class UploadError(OperationError):
    """Uploading one object failed."""

    kind = ErrorKind.UPLOAD
