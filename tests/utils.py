# utils.py -- Test utilities for lfsgate
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

"""Utility functions common to lfsgate tests."""

import hashlib
import json
import os
import shutil
import subprocess
import threading
import typing
from collections.abc import Iterable, Mapping
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import BinaryIO

from lfsgate.client import LFSClient
from lfsgate.errors import LFSError
from lfsgate.pointers import LFSPointer, WrappedPointer
from lfsgate.store import LFSStore

from . import SkipTest


def make_pointer(content: bytes, name: str) -> WrappedPointer:
    """Build the pointer git-lfs would commit for ``content`` at ``name``."""
    oid = hashlib.sha256(content).hexdigest()
    return WrappedPointer(oid, name, len(content))


def pointer_bytes(content: bytes) -> bytes:
    """Return the pointer file contents for ``content``."""
    return LFSPointer(hashlib.sha256(content).hexdigest(), len(content)).to_bytes()


class FakeClient(LFSClient):
    """In-memory LFS client.

    Attributes:
      objects: Mapping from oid to contents of the objects the remote has
      fail_checks: oids whose existence check raises LFSError
      fail_uploads: oids whose upload raises LFSError
      checked: oids of all existence checks made, in order
      uploaded: oids of all uploads made, in order
    """

    def __init__(
        self,
        objects: Mapping[str, bytes] | None = None,
        fail_checks: Iterable[str] = (),
        fail_uploads: Iterable[str] = (),
    ) -> None:
        super().__init__("fake://lfs")
        self.objects = dict(objects or {})
        self.fail_checks = set(fail_checks)
        self.fail_uploads = set(fail_uploads)
        self.checked: list[str] = []
        self.uploaded: list[str] = []
        self._lock = threading.Lock()

    def object_exists(self, oid: str, size: int, ref: str | None = None) -> bool:
        with self._lock:
            self.checked.append(oid)
        if oid in self.fail_checks:
            raise LFSError(f"HTTP 500: check of {oid} failed")
        return oid in self.objects

    def upload(
        self, oid: str, size: int, f: BinaryIO, ref: str | None = None
    ) -> bool:
        data = f.read()
        with self._lock:
            self.uploaded.append(oid)
        if oid in self.fail_uploads:
            raise LFSError(f"HTTP 500: upload of {oid} failed")
        if oid in self.objects:
            return False
        if len(data) != size:
            raise LFSError(f"Size mismatch for {oid}")
        with self._lock:
            self.objects[oid] = data
        return True


class FakeScanner:
    """Pointer scanner returning canned results per commit range."""

    def __init__(
        self, results: Mapping[tuple[str, str], Iterable[WrappedPointer]] | None = None
    ) -> None:
        self.results = {key: list(value) for key, value in (results or {}).items()}
        self.calls: list[tuple[str, str]] = []

    def scan_refs(self, left: str, right: str = "") -> list[WrappedPointer]:
        self.calls.append((left, right))
        return self.results.get((left, right), [])


class LFSRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler implementing the LFS batch API."""

    server: "LFSServer"

    def send_json_response(
        self, status_code: int, data: Mapping[str, typing.Any]
    ) -> None:
        """Send a JSON response."""
        response = json.dumps(data).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/vnd.git-lfs+json")
        self.send_header("Content-Length", str(len(response)))
        self.end_headers()
        self.wfile.write(response)

    def do_POST(self) -> None:
        """Handle POST requests."""
        self.server.record(self.command, self.path, self.headers)
        if self.path == "/objects/batch":
            self.handle_batch()
        elif self.path.startswith("/objects/") and self.path.endswith("/verify"):
            self.handle_verify()
        else:
            self.send_error(404, "Not Found")

    def do_PUT(self) -> None:
        """Handle PUT requests (uploads)."""
        self.server.record(self.command, self.path, self.headers)
        if self.path.startswith("/objects/"):
            self.handle_upload()
        else:
            self.send_error(404, "Not Found")

    def handle_batch(self) -> None:
        """Handle batch API requests."""
        content_length = int(self.headers["Content-Length"])
        try:
            batch_request = json.loads(self.rfile.read(content_length))
        except json.JSONDecodeError:
            self.send_error(400, "Invalid JSON")
            return

        operation = batch_request.get("operation")
        if operation not in ["download", "upload"]:
            self.send_error(400, "Invalid operation")
            return

        host = self.headers["Host"]
        response_objects = []
        for obj in batch_request.get("objects", []):
            oid = obj.get("oid")
            response_obj: dict[str, typing.Any] = {"oid": oid, "size": obj.get("size")}
            if oid in self.server.broken_oids:
                response_obj["error"] = {"code": 500, "message": "Storage failure"}
            elif operation == "download":
                if self._object_exists(oid):
                    response_obj["actions"] = {
                        "download": {"href": f"http://{host}/objects/{oid}"}
                    }
                else:
                    response_obj["error"] = {"code": 404, "message": "Object not found"}
            elif not self._object_exists(oid):
                response_obj["actions"] = {
                    "upload": {
                        "href": f"http://{host}/objects/{oid}",
                        "header": {"X-Upload-Token": "secret"},
                    },
                    "verify": {"href": f"http://{host}/objects/{oid}/verify"},
                }
            response_objects.append(response_obj)

        self.send_json_response(
            200, {"transfer": "basic", "objects": response_objects}
        )

    def handle_upload(self) -> None:
        """Handle object upload requests."""
        path_parts = self.path.strip("/").split("/")
        if len(path_parts) != 2:
            self.send_error(404, "Not Found")
            return

        oid = path_parts[1]
        content = self.rfile.read(int(self.headers["Content-Length"]))
        calculated_oid = hashlib.sha256(content).hexdigest()
        if calculated_oid != oid:
            self.send_error(400, f"OID mismatch: expected {oid}, got {calculated_oid}")
            return

        if not self._object_exists(oid):
            self.server.lfs_store.write_object([content])
        self.send_response(200)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def handle_verify(self) -> None:
        """Handle object verification requests."""
        oid = self.path.strip("/").split("/")[1]
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        if self._object_exists(oid):
            self.send_response(200)
            self.send_header("Content-Length", "0")
            self.end_headers()
        else:
            self.send_error(404, "Object not found")

    def _object_exists(self, oid: str) -> bool:
        return os.path.exists(self.server.lfs_store.object_path(oid))

    def log_message(self, format: str, *args: object) -> None:
        """Suppress request logging during tests."""


class LFSServer(ThreadingHTTPServer):
    """Simple LFS server for testing.

    Attributes:
      lfs_store: Where uploaded objects end up
      broken_oids: oids for which batch requests report a server error
      requests: (method, path, headers) of every request received
    """

    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], lfs_store: LFSStore) -> None:
        super().__init__(server_address, LFSRequestHandler)
        self.lfs_store = lfs_store
        self.broken_oids: set[str] = set()
        self.requests: list[tuple[str, str, dict[str, str]]] = []
        self._lock = threading.Lock()

    def record(self, method: str, path: str, headers: Mapping[str, str]) -> None:
        with self._lock:
            self.requests.append(
                (method, path, {k.lower(): v for k, v in headers.items()})
            )


def run_lfs_server(lfs_dir: str, host: str = "127.0.0.1") -> tuple[LFSServer, str]:
    """Start an LFS server on a free port in a background thread.

    Returns:
        Tuple of (server, url); call ``server.shutdown()`` to stop it
    """
    server = LFSServer((host, 0), LFSStore.create(lfs_dir))
    thread = threading.Thread(target=server.serve_forever)
    thread.daemon = True
    thread.start()
    return server, f"http://{host}:{server.server_address[1]}"


def require_git() -> str:
    """Return the path to git, skipping the test if it is not installed."""
    git = shutil.which("git")
    if git is None:
        raise SkipTest("git not available")
    return git


def run_git(args: list[str], cwd: str, input: bytes | None = None) -> bytes:
    """Run git with a fixed identity, returning its output."""
    env = dict(os.environ)
    env.update(
        {
            "GIT_AUTHOR_NAME": "Test Author",
            "GIT_AUTHOR_EMAIL": "test@example.com",
            "GIT_COMMITTER_NAME": "Test Author",
            "GIT_COMMITTER_EMAIL": "test@example.com",
        }
    )
    return subprocess.run(
        ["git", *args], cwd=cwd, input=input, env=env, capture_output=True, check=True
    ).stdout


def init_repo(path: str) -> None:
    """Create an empty repository with a ``main`` branch."""
    run_git(["init", "-q", "-b", "main", path], cwd=os.path.dirname(path) or ".")


def commit_files(repo: str, files: Mapping[str, bytes], message: str = "Commit") -> str:
    """Write ``files`` into the work tree, commit them and return the sha."""
    for name, contents in files.items():
        path = os.path.join(repo, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(contents)
    run_git(["add", *files], cwd=repo)
    run_git(["commit", "-q", "-m", message], cwd=repo)
    return run_git(["rev-parse", "HEAD"], cwd=repo).decode("ascii").strip()
