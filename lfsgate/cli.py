# cli.py -- Command-line interface for lfsgate
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

"""Command-line interface for lfsgate.

Usage::

    lfsgate pre-push [--dry-run] [--verbose] <remote> [<url>]
    lfsgate install [--force]

``pre-push`` is meant to be run by git's pre-push hook, which
``lfsgate install`` sets up.
"""

__all__ = [
    "Command",
    "cmd_install",
    "cmd_pre_push",
    "commands",
    "find_repository",
    "main",
]

import argparse
import logging
import os
import stat
import subprocess
import sys
from collections.abc import Sequence
from typing import TextIO

from .client import LFSClient
from .config import concurrent_transfers, read_git_config
from .errors import ConfigurationError, OperationError
from .log_utils import default_logging_config, is_debugging
from .prepush import Outcome, RunContext, pre_push, report_error
from .refs import read_ref_ranges
from .scanner import GitPointerScanner
from .store import LFSStore

logger = logging.getLogger(__name__)

HOOK_SCRIPT = """\
#!/bin/sh
command -v lfsgate >/dev/null 2>&1 || { printf >&2 "\\n%s\\n\\n" "This repository \
is configured for lfsgate but 'lfsgate' was not found on your path."; exit 2; }
lfsgate pre-push "$@"
"""


def _rev_parse(path: str, *args: str) -> str:
    try:
        output = subprocess.check_output(
            ["git", "rev-parse", *args], cwd=path, stderr=subprocess.PIPE
        )
    except OSError as e:
        raise ConfigurationError(f"Unable to run git: {e}", cause=e) from e
    except subprocess.CalledProcessError as e:
        raise ConfigurationError(
            "Not in a git repository: "
            + e.stderr.decode("utf-8", "replace").strip(),
            cause=e,
        ) from e
    return output.decode("utf-8").strip()


def find_repository(path: str = ".") -> tuple[str, str]:
    """Locate the repository containing ``path``.

    Returns: Tuple with the control directory and the top of the working
        tree; for a bare repository both are the repository itself
    Raises:
      ConfigurationError: if ``path`` is not inside a git repository
    """
    controldir = _rev_parse(path, "--absolute-git-dir")
    if _rev_parse(path, "--is-bare-repository") == "true":
        return controldir, controldir
    return controldir, _rev_parse(path, "--show-toplevel")


class Command:
    """An lfsgate subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_pre_push(Command):
    """Upload the LFS objects referenced by the commits being pushed."""

    def __init__(self, stdin: TextIO | None = None, path: str = ".") -> None:
        self.stdin = stdin
        self.path = path

    def run(self, args: Sequence[str]) -> int:
        """Execute the pre-push command.

        Args:
            args: Command line arguments: the remote name and URL git passes
        """
        parser = argparse.ArgumentParser(prog="lfsgate pre-push")
        parser.add_argument(
            "-d",
            "--dry-run",
            action="store_true",
            help="Only list the objects that would be pushed",
        )
        parser.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            help="Print full details of every failure",
        )
        parser.add_argument("remote", nargs="*", help="Remote name and URL")
        parsed_args = parser.parse_args(args)

        if parsed_args.verbose:
            default_logging_config(verbose=True)

        if not parsed_args.remote:
            logger.error(
                "This should be run through Git's pre-push hook.  "
                "Run `lfsgate install` to install it."
            )
            return Outcome.MISCONFIGURED.exit_code

        ranges = read_ref_ranges(self.stdin or sys.stdin)
        if all(ref_range.is_deletion for ref_range in ranges):
            # Nothing to scan, so the repository and endpoint don't matter.
            logger.debug("no refs to check")
            return Outcome.SUCCESS.exit_code

        try:
            ctx = self._make_context(
                parsed_args.remote, parsed_args.dry_run, parsed_args.verbose
            )
            scanner = GitPointerScanner(ctx.worktree)
            outcome = pre_push(ranges, scanner, ctx)
        except ConfigurationError as e:
            report_error(e, parsed_args.verbose or is_debugging())
            return Outcome.MISCONFIGURED.exit_code
        except OperationError as e:
            report_error(e, parsed_args.verbose or is_debugging())
            return Outcome.FAILURE.exit_code
        return outcome.exit_code

    def _make_context(
        self, remote_args: Sequence[str], dry_run: bool, verbose: bool
    ) -> RunContext:
        # git passes the URL too, but the name is what selects the config.
        remote = remote_args[0]
        controldir, worktree = find_repository(self.path)
        config = read_git_config(worktree)
        try:
            client = LFSClient.from_config(config, remote)
        except ValueError as e:
            raise ConfigurationError(str(e), cause=e) from e
        if client is None and len(remote_args) > 1:
            client = LFSClient.from_config(config, remote_args[1])
        if client is not None:
            logger.debug("LFS endpoint for %s: %s", remote, client.url)
        return RunContext(
            remote=remote,
            store=LFSStore.from_controldir(controldir),
            client=client,
            worktree=worktree,
            concurrency=concurrent_transfers(config),
            dry_run=dry_run,
            verbose=verbose or is_debugging(),
        )


class cmd_install(Command):
    """Install the pre-push hook into the current repository."""

    def __init__(self, path: str = ".") -> None:
        self.path = path

    def run(self, args: Sequence[str]) -> int:
        """Execute the install command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="lfsgate install")
        parser.add_argument(
            "-f",
            "--force",
            action="store_true",
            help="Overwrite an existing pre-push hook",
        )
        parsed_args = parser.parse_args(args)

        try:
            hook_path = _rev_parse(self.path, "--git-path", "hooks/pre-push")
        except ConfigurationError as e:
            report_error(e)
            return 1
        # Relative paths are relative to where git was run.
        hook_path = os.path.join(self.path, hook_path)

        if os.path.exists(hook_path) and not parsed_args.force:
            with open(hook_path) as f:
                if f.read() == HOOK_SCRIPT:
                    logger.info("Hook already installed at %s", hook_path)
                    return 0
            logger.error(
                "Hook already exists at %s; use --force to overwrite it", hook_path
            )
            return 1

        os.makedirs(os.path.dirname(hook_path), exist_ok=True)
        with open(hook_path, "w") as f:
            f.write(HOOK_SCRIPT)
        mode = os.stat(hook_path).st_mode
        os.chmod(hook_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.info("Installed pre-push hook at %s", hook_path)
        return 0


commands: dict[str, type[Command]] = {
    "install": cmd_install,
    "pre-push": cmd_pre_push,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the lfsgate CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    if argv is None:
        argv = sys.argv[1:]

    default_logging_config()

    if not argv or argv[0] in ("-h", "--help"):
        parser = argparse.ArgumentParser(
            prog="lfsgate", description="Git LFS pre-push gate"
        )
        parser.add_argument(
            "command",
            help=f"Command to run. Available: {', '.join(sorted(commands.keys()))}",
        )
        parser.print_help()
        return 1

    cmd = argv[0]
    try:
        cmd_kls = commands[cmd]
    except KeyError:
        logger.error("No such subcommand: %s", cmd)
        return 1
    return cmd_kls().run(argv[1:]) or 0


if __name__ == "__main__":
    sys.exit(main())
