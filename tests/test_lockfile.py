# -*- coding: utf-8 -*-
# © Copyright EnterpriseDB UK Limited 2013-2025
#
# This file is part of pgrman.
#
# pgrman is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# pgrman is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with pgrman.  If not, see <http://www.gnu.org/licenses/>.

import errno
import fcntl
import os

import pytest
from mock import ANY, patch

from pgrman.exceptions import (
    LockFileBusy,
    LockFileException,
    LockFilePermissionDenied,
)
from pgrman.lockfile import CatalogLock, LockFile


def _prepare_fnctl_mock(fcntl_mock, exception=None):
    """
    Setup the fcntl_mock to behave like we need

    :param fcntl_mock: a 'pgrman.lockfile.fcntl' mock
    :param Exception|None exception: If not none set it as flock side effect
    """
    # Reset the mock
    fcntl_mock.reset_mock()
    # Setup fcntl flags
    fcntl_mock.LOCK_EX = fcntl.LOCK_EX
    fcntl_mock.LOCK_NB = fcntl.LOCK_NB
    fcntl_mock.LOCK_UN = fcntl.LOCK_UN
    if exception:
        fcntl_mock.flock.side_effect = exception


# noinspection PyMethodMayBeStatic
@patch("pgrman.lockfile.fcntl")
class TestLockFileBehavior(object):
    def test_raise(self, fcntl_mock, tmpdir):
        lock_file_path = tmpdir.join("test_lock_file1")

        _prepare_fnctl_mock(fcntl_mock, OSError(errno.EAGAIN, "", ""))
        lock_file = LockFile(lock_file_path.strpath, raise_if_fail=False, wait=False)
        # Expect the acquire method to raise a LockFileBusy exception.
        with pytest.raises(LockFileBusy):
            lock_file.acquire(raise_if_fail=True)
        fcntl_mock.flock.assert_called_once_with(
            ANY, fcntl_mock.LOCK_EX | fcntl_mock.LOCK_NB
        )

        _prepare_fnctl_mock(fcntl_mock, OSError(errno.EWOULDBLOCK, "", ""))
        with pytest.raises(LockFileBusy):
            lock_file.acquire(raise_if_fail=True)

        _prepare_fnctl_mock(fcntl_mock, OSError(errno.EACCES, "", ""))
        with pytest.raises(LockFilePermissionDenied):
            lock_file.acquire(raise_if_fail=True)

        _prepare_fnctl_mock(fcntl_mock, OSError(errno.EIO, "", ""))
        with pytest.raises(LockFileException):
            lock_file.acquire(raise_if_fail=True)

        # Without raise_if_fail the failure is reported by the return value
        _prepare_fnctl_mock(fcntl_mock, OSError(errno.EAGAIN, "", ""))
        assert not lock_file.acquire()

    def test_wait(self, fcntl_mock, tmpdir):
        lock_file_path = tmpdir.join("test_lock_file2")
        _prepare_fnctl_mock(fcntl_mock)
        lock_file = LockFile(lock_file_path.strpath, wait=True)
        assert lock_file.acquire()
        fcntl_mock.flock.assert_called_once_with(ANY, fcntl_mock.LOCK_EX)
        lock_file.release()
        fcntl_mock.flock.assert_called_with(ANY, fcntl_mock.LOCK_UN)

    def test_context_manager(self, fcntl_mock, tmpdir):
        lock_file_path = tmpdir.join("test_lock_file3")
        _prepare_fnctl_mock(fcntl_mock)
        with LockFile(lock_file_path.strpath) as locked:
            assert locked
            assert lock_file_path.read() == "%s\n" % os.getpid()
        fcntl_mock.flock.assert_called_with(ANY, fcntl_mock.LOCK_UN)

    def test_release_failure(self, fcntl_mock, tmpdir, caplog):
        lock_file_path = tmpdir.join("test_lock_file4")
        _prepare_fnctl_mock(fcntl_mock)
        lock_file = LockFile(lock_file_path.strpath)
        assert lock_file.acquire()
        fcntl_mock.flock.side_effect = OSError(errno.EBADF, "Bad file")
        lock_file.release()
        assert lock_file.fd is None
        assert "Failed releasing lock" in caplog.text


# noinspection PyMethodMayBeStatic
class TestCatalogLock(object):
    def test_catalog_lock(self, tmpdir):
        lock = CatalogLock(tmpdir.strpath)
        assert lock.filename == tmpdir.join(".pgrman.lock").strpath
        assert lock.raise_if_fail
        assert not lock.wait

    def test_concurrent_restore(self, tmpdir):
        with CatalogLock(tmpdir.strpath):
            with pytest.raises(LockFileBusy):
                with CatalogLock(tmpdir.strpath):
                    pass
        # the lock is free again
        with CatalogLock(tmpdir.strpath) as locked:
            assert locked
