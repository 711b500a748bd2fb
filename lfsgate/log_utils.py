# log_utils.py -- Logging and tracing utilities for lfsgate
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

"""Logging utilities for lfsgate.

The gate runs inside ``git push``, so everything it has to say to the user
goes to stderr through the ``lfsgate`` logger hierarchy. When lfsgate is
imported as a library nothing is printed: the package logger carries a
null handler until :func:`default_logging_config` is called.

Tracing follows git's conventions. ``GIT_TRACE`` selects a destination for
DEBUG output:

- ``1``, ``2`` or ``true``: stderr
- an integer from 3 to 9: that file descriptor
- an absolute path: that file, or a per-process file inside it if it is a
  directory

Tracing, ``LFSGATE_DEBUG`` or the ``--verbose`` switch also turn on the
global debugging toggle, which makes failures print their full diagnostic
instead of a one-line summary.
"""

import logging
import os
import sys
from collections.abc import Mapping

getLogger = logging.getLogger


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_LFSGATE_LOGGER = getLogger("lfsgate")
_LFSGATE_LOGGER.addHandler(_NULL_HANDLER)

_TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

_debugging = False
_handlers: list[logging.Handler] = []


def _env_true(value: str | None) -> bool:
    return bool(value) and value.lower() not in ("0", "false", "no", "off")


def _get_trace_target(env: Mapping[str, str] | None = None) -> str | int | None:
    """Get the trace target from the GIT_TRACE environment variable.

    Returns:
        - None if tracing is disabled
        - 2 for stderr output (values "1", "2", "true")
        - int (3-9) for file descriptor
        - str for file path (absolute paths or directories)
    """
    if env is None:
        env = os.environ
    trace_value = env.get("GIT_TRACE", "")

    if not _env_true(trace_value):
        return None

    if trace_value.lower() in ("1", "2", "true"):
        return 2

    try:
        fd = int(trace_value)
    except ValueError:
        pass
    else:
        if 3 <= fd <= 9:
            return fd
        return None

    if os.path.isabs(trace_value):
        return trace_value

    return None


def _trace_handler(target: str | int) -> logging.Handler | None:
    if isinstance(target, int):
        try:
            stream = os.fdopen(target, "w", buffering=1)
        except OSError as e:
            sys.stderr.write(f"Warning: Failed to open GIT_TRACE fd {target}: {e}\n")
            return None
        return logging.StreamHandler(stream)

    if os.path.isdir(target):
        filename = os.path.join(target, f"lfsgate-trace.{os.getpid()}")
    else:
        filename = target
    try:
        return logging.FileHandler(filename, mode="a")
    except OSError as e:
        sys.stderr.write(f"Warning: Failed to open GIT_TRACE file {target}: {e}\n")
        return None


def is_debugging() -> bool:
    """Check whether full diagnostics should be printed for failures."""
    return _debugging or _env_true(os.environ.get("LFSGATE_DEBUG"))


def set_debugging(value: bool) -> None:
    """Force the global debugging toggle on or off."""
    global _debugging
    _debugging = value


def default_logging_config(verbose: bool = False) -> None:
    """Set up the lfsgate loggers for command-line use.

    User-facing messages are written to stderr without decoration. If
    GIT_TRACE is set, DEBUG records are additionally sent to the trace target
    with timestamps.

    Calling it again replaces the handlers installed by the previous call.

    Args:
      verbose: Turn on the debugging toggle and DEBUG output on stderr
    """
    remove_null_handler()
    while _handlers:
        handler = _handlers.pop()
        _LFSGATE_LOGGER.removeHandler(handler)
        handler.close()
    if verbose:
        set_debugging(True)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(message)s"))
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    _LFSGATE_LOGGER.addHandler(console)
    _handlers.append(console)
    _LFSGATE_LOGGER.setLevel(logging.DEBUG)
    _LFSGATE_LOGGER.propagate = False

    target = _get_trace_target()
    if target is None:
        if not verbose:
            _LFSGATE_LOGGER.setLevel(logging.INFO)
        return

    set_debugging(True)
    if target == 2:
        # Already writing to stderr; just let the DEBUG records through.
        console.setLevel(logging.DEBUG)
        return
    handler = _trace_handler(target)
    if handler is not None:
        handler.setFormatter(logging.Formatter(_TRACE_FORMAT))
        handler.setLevel(logging.DEBUG)
        _LFSGATE_LOGGER.addHandler(handler)
        _handlers.append(handler)


def remove_null_handler() -> None:
    """Remove the null handler from the lfsgate loggers.

    If a caller wants to set up logging using something other than
    default_logging_config, calling this function first is a minor optimization
    to avoid the overhead of using the _NullHandler.
    """
    _LFSGATE_LOGGER.removeHandler(_NULL_HANDLER)
