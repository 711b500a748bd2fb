# config.py -- Reading git configuration for the pre-push gate
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

"""Reading git configuration.

The hook runs inside a repository that git has already set up, so rather
than parsing config files ourselves we ask git for the merged view of all
of them (system, global, repository, includes) with
``git config --null --list`` and load it into a :class:`ConfigDict`.

Settings used by lfsgate:

- ``lfs.url`` / ``remote.<name>.lfsurl``: LFS endpoint
- ``remote.<name>.url``: used to derive the LFS endpoint otherwise
- ``lfs.concurrenttransfers``: number of concurrent checks and uploads
- ``http.proxy``, ``http.sslVerify``, ``http.sslCAInfo``, ``http.timeout``,
  ``http.userAgent``, ``http.extraHeader``: HTTP transport settings
"""

__all__ = [
    "Config",
    "ConfigDict",
    "DEFAULT_CONCURRENT_TRANSFERS",
    "concurrent_transfers",
    "parse_config_list",
    "read_git_config",
]

import logging
import subprocess
from collections.abc import Iterator
from typing import overload

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENT_TRANSFERS = 3

Name = bytes
NameLike = bytes | str
Section = tuple[bytes, ...]
SectionLike = bytes | str | tuple[bytes | str, ...]
Value = bytes
ValueLike = bytes | str

_TRUE_VALUES = (b"true", b"yes", b"on", b"1")
_FALSE_VALUES = (b"false", b"no", b"off", b"0", b"")


class Config:
    """A Git configuration."""

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Retrieve the contents of a configuration setting.

        Args:
          section: Tuple with section name and optional subsection name
          name: Variable name
        Returns:
          Contents of the setting
        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get)

    def get_multivar(self, section: SectionLike, name: NameLike) -> Iterator[Value]:
        """Retrieve the contents of a multivar configuration setting.

        Args:
          section: Tuple with section name and optional subsection name
          name: Variable name
        Returns:
          Contents of the setting as iterable
        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get_multivar)

    @overload
    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool
    ) -> bool: ...

    @overload
    def get_boolean(self, section: SectionLike, name: NameLike) -> bool | None: ...

    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool | None = None
    ) -> bool | None:
        """Retrieve a configuration setting as boolean.

        Args:
          section: Tuple with section name and optional subsection name
          name: Name of the setting
          default: Default value if setting is not found

        Returns:
          Contents of the setting
        Raises:
          ValueError: if the value is not a boolean git understands
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        if value.lower() in _TRUE_VALUES:
            return True
        elif value.lower() in _FALSE_VALUES:
            return False
        raise ValueError(f"not a valid boolean string: {value!r}")

    def get_int(self, section: SectionLike, name: NameLike, default: int) -> int:
        """Retrieve a configuration setting as integer.

        Raises:
          ValueError: if the value is not an integer
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        return int(value)


class ConfigDict(Config):
    """Git configuration stored in a dictionary.

    Section and variable names are case-insensitive; subsection names are
    not, as in git.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        """Create a new, empty ConfigDict."""
        self.encoding = encoding
        self._values: dict[Section, dict[Name, list[Value]]] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._values!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, self.__class__) and other._values == self._values

    def _check_section_and_name(
        self, section: SectionLike, name: NameLike
    ) -> tuple[Section, Name]:
        if not isinstance(section, tuple):
            section = (section,)

        checked = [
            subsection.encode(self.encoding)
            if not isinstance(subsection, bytes)
            else subsection
            for subsection in section
        ]
        checked[0] = checked[0].lower()

        if not isinstance(name, bytes):
            name = name.encode(self.encoding)

        return tuple(checked), name.lower()

    def get_multivar(self, section: SectionLike, name: NameLike) -> Iterator[Value]:
        """Get all values of a configuration setting, in the order they were set."""
        section, name = self._check_section_and_name(section, name)
        return iter(self._values[section][name])

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Get a configuration value.

        If the setting occurs multiple times, the last value wins.

        Raises:
          KeyError: if the value is not set
        """
        section, name = self._check_section_and_name(section, name)
        return self._values[section][name][-1]

    def set(
        self, section: SectionLike, name: NameLike, value: ValueLike | bool
    ) -> None:
        """Set a configuration value, replacing any earlier values."""
        section, name = self._check_section_and_name(section, name)
        self._values.setdefault(section, {})[name] = [self._check_value(value)]

    def add(
        self, section: SectionLike, name: NameLike, value: ValueLike | bool
    ) -> None:
        """Add a value to a configuration setting, creating a multivar if needed."""
        section, name = self._check_section_and_name(section, name)
        self._values.setdefault(section, {}).setdefault(name, []).append(
            self._check_value(value)
        )

    def _check_value(self, value: ValueLike | bool) -> Value:
        if isinstance(value, bool):
            return b"true" if value else b"false"
        if not isinstance(value, bytes):
            return value.encode(self.encoding)
        return value

    def sections(self) -> Iterator[Section]:
        """Iterate over all sections."""
        return iter(self._values.keys())


def _split_key(key: bytes) -> tuple[Section, Name]:
    # "http.https://example.com/.sslverify": the subsection may contain dots
    section, _, rest = key.partition(b".")
    subsection, _, name = rest.rpartition(b".")
    if subsection:
        return (section, subsection), name
    return (section,), name


def parse_config_list(data: bytes) -> ConfigDict:
    """Parse the output of ``git config --null --list``.

    Each entry is ``<key>\\n<value>`` terminated by a NUL byte; a key without
    a newline is a boolean variable set without a value, which means true.
    """
    config = ConfigDict()
    for entry in data.split(b"\0"):
        if not entry:
            continue
        key, sep, value = entry.partition(b"\n")
        if not sep:
            value = b"true"
        section, name = _split_key(key)
        config.add(section, name, value)
    return config


def read_git_config(path: str = ".") -> ConfigDict:
    """Load the effective git configuration for the repository at ``path``.

    Returns an empty configuration if git cannot be run or fails, so that
    lookups fall back to their defaults.
    """
    try:
        output = subprocess.check_output(
            ["git", "config", "--null", "--list"],
            cwd=path,
            stderr=subprocess.DEVNULL,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("unable to read git configuration: %s", e)
        return ConfigDict()
    return parse_config_list(output)


def concurrent_transfers(config: Config) -> int:
    """Return the configured number of concurrent transfers (at least 1)."""
    try:
        value = config.get_int(
            (b"lfs",), b"concurrenttransfers", DEFAULT_CONCURRENT_TRANSFERS
        )
    except ValueError:
        logger.warning("Ignoring invalid lfs.concurrenttransfers value")
        return DEFAULT_CONCURRENT_TRANSFERS
    return max(1, value)
