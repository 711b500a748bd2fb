# client.py -- Clients for the Git LFS API
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

"""Clients for talking to a remote LFS store.

Two kinds of endpoint are supported:

- http:// and https:// URLs, spoken to with the Git LFS batch API
  (``POST <url>/objects/batch``) over urllib3;
- file:// URLs, which name a directory laid out like ``.git/lfs``.

The gate needs two operations from a client: whether the remote already
has an object, and uploading an object. Clients are shared between the
worker threads of a transfer queue; urllib3's pool manager is thread-safe.
"""

__all__ = [
    "FileLFSClient",
    "HTTPLFSClient",
    "LFSAction",
    "LFSBatchObject",
    "LFSBatchResponse",
    "LFSClient",
    "LFSErrorInfo",
    "default_urllib3_manager",
    "get_lfs_url",
]

import hashlib
import json
import logging
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO
from urllib.parse import urljoin, urlparse, urlunparse
from urllib.request import url2pathname

from .config import Config
from .errors import LFSError
from .store import CHUNK_SIZE, LFSStore

if TYPE_CHECKING:
    import urllib3

logger = logging.getLogger(__name__)

LFS_MEDIA_TYPE = "application/vnd.git-lfs+json"


@dataclass
class LFSAction:
    """LFS action structure."""

    href: str
    header: dict[str, str] | None = None
    expires_at: str | None = None


@dataclass
class LFSErrorInfo:
    """LFS error structure."""

    code: int
    message: str


@dataclass
class LFSBatchObject:
    """LFS batch object structure."""

    oid: str
    size: int
    authenticated: bool | None = None
    actions: dict[str, LFSAction] | None = None
    error: LFSErrorInfo | None = None


@dataclass
class LFSBatchResponse:
    """LFS batch response structure."""

    transfer: str
    objects: list[LFSBatchObject]
    hash_algo: str | None = None


def _get_lfs_user_agent(config: Config | None) -> str:
    """Get User-Agent string for LFS requests, respecting git config."""
    if config is not None:
        try:
            return config.get(b"http", b"useragent").decode()
        except KeyError:
            pass

    from . import __version__

    version_str = ".".join([str(x) for x in __version__])
    return f"git-lfs/lfsgate/{version_str}"


def _is_valid_lfs_url(url: str) -> bool:
    """Check if a URL is valid for LFS.

    Git LFS supports http://, https://, and file:// URLs.
    """
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return bool(parsed.netloc)
    if parsed.scheme == "file":
        return bool(parsed.path)
    return False


def _remote_url_to_lfs_url(remote_url: str) -> str:
    """Derive the default LFS endpoint from a remote URL, as git-lfs does."""
    if remote_url.startswith("git@") and ":" in remote_url:
        # git@host:user/repo.git -> https://host/user/repo.git
        host, path = remote_url[4:].split(":", 1)
        remote_url = f"https://{host}/{path}"
    elif remote_url.startswith("ssh://"):
        parsed = urlparse(remote_url)
        remote_url = f"https://{parsed.hostname}{parsed.path}"

    if urlparse(remote_url).scheme == "file":
        # A file:// remote holds its LFS objects in its own lfs directory.
        path = url2pathname(urlparse(remote_url).path)
        if os.path.isdir(os.path.join(path, ".git")):
            path = os.path.join(path, ".git")
        return "file://" + os.path.join(path, "lfs")

    remote_url = remote_url.rstrip("/")
    if not remote_url.endswith(".git"):
        remote_url = f"{remote_url}.git"
    return f"{remote_url}/info/lfs"


def get_lfs_url(config: Config, remote: str) -> str | None:
    """Work out the LFS endpoint for a remote.

    Args:
      config: Git configuration
      remote: Remote name, or a URL if git was given one directly
    Returns: The LFS URL, or None if no endpoint can be determined
    Raises:
      ValueError: if an explicitly configured LFS URL is not usable
    """
    candidates = [((b"remote", remote.encode()), b"lfsurl"), ((b"lfs",), b"url")]
    for section, name in candidates:
        try:
            url = config.get(section, name).decode()
        except KeyError:
            continue
        if not _is_valid_lfs_url(url):
            raise ValueError(
                f"Invalid LFS URL in config: {url!r}. "
                "URL must be an absolute URL with scheme http://, https://, or file://."
            )
        return url

    if "://" in remote or remote.startswith("git@"):
        remote_url = remote
    else:
        try:
            remote_url = config.get((b"remote", remote.encode()), b"url").decode()
        except KeyError:
            return None

    lfs_url = _remote_url_to_lfs_url(remote_url)
    if not _is_valid_lfs_url(lfs_url):
        return None
    return lfs_url


def _check_for_proxy_bypass(base_url: str | None) -> bool:
    """Check whether ``no_proxy`` exempts the host of ``base_url``."""
    if not base_url:
        return False
    no_proxy_str = os.environ.get("no_proxy") or os.environ.get("NO_PROXY")
    if not no_proxy_str:
        return False
    hostname = urlparse(base_url).hostname
    if not hostname:
        return False
    for entry in no_proxy_str.split(","):
        entry = entry.strip().lstrip(".")
        if not entry:
            continue
        if entry == "*" or hostname == entry or hostname.endswith("." + entry):
            return True
    return False


def default_urllib3_manager(
    config: Config | None,
    base_url: str | None = None,
    timeout: float | None = None,
) -> "urllib3.ProxyManager | urllib3.PoolManager":
    """Return urllib3 connection pool manager.

    Honour detected proxy configurations and the ``http.*`` settings of the
    git configuration.

    Args:
      config: Git configuration, if any
      base_url: URL the manager will be used for, for proxy bypass checks
      timeout: Timeout for HTTP requests in seconds
    """
    import urllib3

    proxy_server: str | None = None
    ca_certs: str | None = None
    ssl_verify = True
    headers = {"User-Agent": _get_lfs_user_agent(config)}

    for proxyname in ("https_proxy", "http_proxy", "all_proxy"):
        proxy_server = os.environ.get(proxyname) or os.environ.get(proxyname.upper())
        if proxy_server:
            break

    if config is not None:
        if not proxy_server:
            try:
                proxy_server = config.get(b"http", b"proxy").decode("utf-8")
            except KeyError:
                pass
        try:
            ssl_verify = config.get_boolean(b"http", b"sslVerify", True)
        except ValueError:
            logger.warning("Ignoring invalid http.sslVerify value")
        try:
            ca_certs = config.get(b"http", b"sslCAInfo").decode("utf-8")
        except KeyError:
            pass
        if timeout is None:
            try:
                timeout = float(config.get(b"http", b"timeout").decode("utf-8"))
            except KeyError:
                pass
        try:
            extra_headers = list(config.get_multivar(b"http", b"extraHeader"))
        except KeyError:
            extra_headers = []
        for extra_header in extra_headers:
            if b": " not in extra_header:
                logger.warning(
                    "Ignoring invalid http.extraHeader value %r (missing ': ' separator)",
                    extra_header,
                )
                continue
            header_name, header_value = extra_header.split(b": ", 1)
            headers[header_name.decode("utf-8")] = header_value.decode("utf-8")

    if proxy_server and _check_for_proxy_bypass(base_url):
        proxy_server = None

    kwargs: dict[str, Any] = {
        "ca_certs": ca_certs,
        "cert_reqs": "CERT_REQUIRED" if ssl_verify else "CERT_NONE",
    }
    if timeout is not None:
        kwargs["timeout"] = timeout

    if proxy_server:
        proxy_url = urlparse(proxy_server)
        if proxy_url.username is not None:
            proxy_headers = urllib3.make_headers(
                proxy_basic_auth=f"{proxy_url.username}:{proxy_url.password or ''}"
            )
        else:
            proxy_headers = {}
        return urllib3.ProxyManager(
            proxy_server, proxy_headers=proxy_headers, headers=headers, **kwargs
        )
    return urllib3.PoolManager(headers=headers, **kwargs)


class LFSClient:
    """Base class for LFS client operations."""

    def __init__(self, url: str, config: Config | None = None) -> None:
        """Initialize LFS client.

        Args:
            url: LFS server URL (http://, https://, or file://)
            config: Optional git config for authentication/proxy settings
        """
        self._base_url = url.rstrip("/") + "/"
        self.config = config

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"

    @property
    def url(self) -> str:
        """Get the LFS server URL without trailing slash."""
        return self._base_url.rstrip("/")

    def object_exists(self, oid: str, size: int, ref: str | None = None) -> bool:
        """Check whether the remote store has an object.

        Args:
            oid: Object ID (SHA256)
            size: Expected size
            ref: Optional ref name
        Returns: True if the object is present on the remote
        Raises:
            LFSError: if the remote could not answer the question
        """
        raise NotImplementedError(self.object_exists)

    def upload(
        self, oid: str, size: int, f: BinaryIO, ref: str | None = None
    ) -> bool:
        """Upload an LFS object.

        Args:
            oid: Object ID (SHA256)
            size: Object size
            f: File to read the object contents from
            ref: Optional ref name
        Returns: False if the remote already had the object, True otherwise
        Raises:
            LFSError: if the upload failed
        """
        raise NotImplementedError(self.upload)

    @classmethod
    def from_config(cls, config: Config, remote: str = "origin") -> "LFSClient | None":
        """Create LFS client for a remote from git config.

        Returns the appropriate subclass (HTTPLFSClient or FileLFSClient)
        based on the URL scheme, or None if no LFS endpoint is known.
        """
        url = get_lfs_url(config, remote)
        if url is None:
            return None
        if urlparse(url).scheme == "file":
            return FileLFSClient(url, config)
        return HTTPLFSClient(url, config)


class HTTPLFSClient(LFSClient):
    """LFS client for HTTP/HTTPS operations."""

    def __init__(self, url: str, config: Config | None = None) -> None:
        """Initialize HTTP LFS client.

        Credentials embedded in the URL are sent with basic authentication.
        """
        parsed = urlparse(url)
        self._auth_headers: dict[str, str] = {}
        if parsed.username is not None:
            import urllib3

            self._auth_headers = urllib3.make_headers(
                basic_auth=f"{parsed.username}:{parsed.password or ''}"
            )
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            url = urlunparse(parsed._replace(netloc=netloc))
        super().__init__(url, config)
        self._pool_manager: urllib3.PoolManager | urllib3.ProxyManager | None = None
        self._lock = threading.Lock()

    def _get_pool_manager(self) -> "urllib3.PoolManager | urllib3.ProxyManager":
        """Get urllib3 pool manager with git config applied."""
        with self._lock:
            if self._pool_manager is None:
                self._pool_manager = default_urllib3_manager(
                    self.config, base_url=self._base_url
                )
            return self._pool_manager

    def _request(
        self,
        method: str,
        url: str,
        body: bytes | BinaryIO | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> bytes:
        import urllib3

        try:
            response = self._get_pool_manager().request(
                method, url, headers=dict(headers or {}), body=body
            )
        except urllib3.exceptions.HTTPError as e:
            raise LFSError(f"{method} {url} failed: {e}") from e
        if response.status >= 400:
            raise LFSError(
                f"HTTP {response.status}: {response.data.decode('utf-8', errors='ignore')}"
            )
        return response.data

    def batch(
        self,
        operation: str,
        objects: list[dict[str, str | int]],
        ref: str | None = None,
    ) -> LFSBatchResponse:
        """Perform batch operation to get transfer URLs.

        Args:
            operation: "download" or "upload"
            objects: List of {"oid": str, "size": int} dicts
            ref: Optional ref name

        Returns:
            Batch response from server
        """
        data: dict[str, Any] = {
            "operation": operation,
            "transfers": ["basic"],
            "objects": objects,
        }
        if ref:
            data["ref"] = {"name": ref}

        headers = {"Accept": LFS_MEDIA_TYPE, "Content-Type": LFS_MEDIA_TYPE}
        headers.update(self._auth_headers)
        response = self._request(
            "POST",
            urljoin(self._base_url, "objects/batch"),
            json.dumps(data).encode("utf-8"),
            headers,
        )
        if not response:
            raise LFSError("Empty response from LFS server")
        try:
            response_data = json.loads(response)
        except ValueError as e:
            raise LFSError(f"Invalid batch response from LFS server: {e}") from e
        return self._parse_batch_response(response_data)

    def _parse_batch_response(self, data: Mapping[str, Any]) -> LFSBatchResponse:
        """Parse JSON response into LFSBatchResponse dataclass."""
        objects = []
        for obj_data in data.get("objects", []):
            actions = None
            if "actions" in obj_data:
                actions = {
                    action_name: LFSAction(
                        href=action_data["href"],
                        header=action_data.get("header"),
                        expires_at=action_data.get("expires_at"),
                    )
                    for action_name, action_data in obj_data["actions"].items()
                }

            error = None
            if "error" in obj_data:
                error = LFSErrorInfo(
                    code=obj_data["error"]["code"], message=obj_data["error"]["message"]
                )

            objects.append(
                LFSBatchObject(
                    oid=obj_data["oid"],
                    size=obj_data["size"],
                    authenticated=obj_data.get("authenticated"),
                    actions=actions,
                    error=error,
                )
            )

        return LFSBatchResponse(
            transfer=data.get("transfer", "basic"),
            objects=objects,
            hash_algo=data.get("hash_algo"),
        )

    def _batch_object(
        self, operation: str, oid: str, size: int, ref: str | None
    ) -> LFSBatchObject:
        batch_resp = self.batch(operation, [{"oid": oid, "size": size}], ref)
        for obj in batch_resp.objects:
            if obj.oid == oid:
                return obj
        raise LFSError(f"No objects returned for {oid}")

    def object_exists(self, oid: str, size: int, ref: str | None = None) -> bool:
        """Check whether the server has an object, via a download batch request."""
        obj = self._batch_object("download", oid, size, ref)
        if obj.error:
            if obj.error.code == 404:
                return False
            raise LFSError(f"Server error for {oid}: {obj.error.message}")
        return bool(obj.actions and "download" in obj.actions)

    def upload(
        self, oid: str, size: int, f: BinaryIO, ref: str | None = None
    ) -> bool:
        """Upload an LFS object with the basic transfer adapter."""
        obj = self._batch_object("upload", oid, size, ref)
        if obj.error:
            raise LFSError(f"Server error for {oid}: {obj.error.message}")

        # No actions means the server already has the object.
        if not obj.actions:
            return False

        if "upload" not in obj.actions:
            raise LFSError(f"No upload action for {oid}")

        upload_action = obj.actions["upload"]
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(size),
        }
        if upload_action.header:
            headers.update(upload_action.header)
        self._request("PUT", upload_action.href, f, headers)

        verify_action = obj.actions.get("verify")
        if verify_action is not None:
            headers = {"Content-Type": LFS_MEDIA_TYPE, "Accept": LFS_MEDIA_TYPE}
            if verify_action.header:
                headers.update(verify_action.header)
            self._request(
                "POST",
                verify_action.href,
                json.dumps({"oid": oid, "size": size}).encode("utf-8"),
                headers,
            )
        return True


class FileLFSClient(LFSClient):
    """LFS client for file:// URLs that accesses local filesystem."""

    def __init__(self, url: str, config: Config | None = None) -> None:
        """Initialize File LFS client.

        Args:
            url: LFS server URL (file://)
            config: Optional git config (unused for file:// URLs)
        """
        super().__init__(url, config)
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise ValueError(f"FileLFSClient requires file:// URL, got {url!r}")
        self._local_store = LFSStore(url2pathname(parsed.path))

    def object_exists(self, oid: str, size: int, ref: str | None = None) -> bool:
        """Check whether the target directory has the object."""
        return self._local_store.object_exists_of_size(oid, size)

    def upload(
        self, oid: str, size: int, f: BinaryIO, ref: str | None = None
    ) -> bool:
        """Copy an LFS object into the target directory.

        Raises:
            LFSError: If size or OID mismatch
        """
        if self._local_store.object_exists_of_size(oid, size):
            return False

        store = LFSStore.create(self._local_store.path)
        sha = hashlib.sha256()
        chunks = []
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            sha.update(chunk)
            chunks.append(chunk)
        actual_oid = sha.hexdigest()
        actual_size = sum(len(chunk) for chunk in chunks)
        if actual_size != size:
            raise LFSError(f"Size mismatch: expected {size}, got {actual_size}")
        if actual_oid != oid:
            raise LFSError(f"OID mismatch: expected {oid}, got {actual_oid}")

        stored_oid, _ = store.write_object(chunks)
        if stored_oid != oid:
            raise LFSError(f"Storage OID mismatch: expected {oid}, got {stored_oid}")
        return True
