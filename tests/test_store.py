# test_store.py -- Tests for lfsgate.store
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

"""Tests for lfsgate.store."""

import hashlib
import os

from lfsgate.store import LFSStore

from . import TestCase


class LFSStoreTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.test_dir = self.make_temp_dir()
        self.lfs = LFSStore.create(os.path.join(self.test_dir, "lfs"))

    def test_create(self) -> None:
        oid, size = self.lfs.write_object([b"a", b"b"])
        self.assertEqual(hashlib.sha256(b"ab").hexdigest(), oid)
        self.assertEqual(2, size)
        with self.lfs.open_object(oid) as f:
            self.assertEqual(b"ab", f.read())

    def test_missing(self) -> None:
        self.assertRaises(KeyError, self.lfs.open_object, "abcdeabcdeabcdeabcde")

    def test_write_object_empty(self) -> None:
        """Test writing an empty object."""
        oid, size = self.lfs.write_object([])
        self.assertEqual(0, size)
        with self.lfs.open_object(oid) as f:
            self.assertEqual(b"", f.read())

    def test_write_object_existing(self) -> None:
        """Test that writing an object twice leaves no temporary files."""
        first = self.lfs.write_object([b"content"])
        second = self.lfs.write_object([b"content"])
        self.assertEqual(first, second)
        self.assertEqual([], os.listdir(os.path.join(self.lfs.path, "tmp")))

    def test_write_object_failure_removes_temporary(self) -> None:
        def chunks():
            yield b"partial"
            raise RuntimeError("interrupted")

        self.assertRaises(RuntimeError, self.lfs.write_object, chunks())
        self.assertEqual([], os.listdir(os.path.join(self.lfs.path, "tmp")))

    def test_object_path(self) -> None:
        """Test the sharded layout of the object directory."""
        oid = "abcdef" + "0" * 58
        self.assertEqual(
            os.path.join(self.lfs.path, "objects", "ab", "cd", oid),
            self.lfs.object_path(oid),
        )

    def test_object_exists_of_size(self) -> None:
        oid, size = self.lfs.write_object([b"twelve bytes"])
        self.assertTrue(self.lfs.object_exists_of_size(oid, size))
        self.assertFalse(self.lfs.object_exists_of_size(oid, size + 1))
        self.assertFalse(self.lfs.object_exists_of_size("f" * 64, size))

    def test_write_file(self) -> None:
        path = os.path.join(self.test_dir, "big.bin")
        with open(path, "wb") as f:
            f.write(b"x" * 200000)
        oid, size = self.lfs.write_file(path)
        self.assertEqual(hashlib.sha256(b"x" * 200000).hexdigest(), oid)
        self.assertEqual(200000, size)
        self.assertTrue(self.lfs.object_exists_of_size(oid, 200000))

    def test_from_controldir(self) -> None:
        controldir = os.path.join(self.test_dir, ".git")
        os.mkdir(controldir)
        store = LFSStore.from_controldir(controldir)
        self.assertEqual(os.path.join(controldir, "lfs"), store.path)
        self.assertFalse(os.path.exists(store.path))
        LFSStore.from_controldir(controldir, create=True)
        self.assertTrue(os.path.isdir(os.path.join(controldir, "lfs", "objects")))
