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
import os

import mock
import pytest
from testing_helpers import write_control_file

from pgrman.exceptions import PostmasterPidBroken
from pgrman.postgres import (
    ControlFileReader,
    is_pg_running,
    read_postmaster_pid,
)


# noinspection PyMethodMayBeStatic
class TestControlFileReader(object):
    def _mock_writer(self):
        writer = mock.Mock()
        mock.patch("pgrman.output._writer", writer).start()
        return writer

    def teardown_method(self, method):
        mock.patch.stopall()

    def test_get_timeline(self, tmpdir):
        write_control_file(tmpdir.strpath, 3)
        assert ControlFileReader(tmpdir.strpath).get_timeline() == 3

    def test_missing_control_file(self, tmpdir):
        writer = self._mock_writer()
        assert ControlFileReader(tmpdir.strpath).get_timeline() == 0
        assert "is not found" in writer.warning.call_args[0][0]

    def test_short_control_file(self, tmpdir):
        writer = self._mock_writer()
        tmpdir.join("global", "pg_control").write_binary(b"\0" * 10, ensure=True)
        assert ControlFileReader(tmpdir.strpath).get_timeline() == 0
        assert "is too short" in writer.warning.call_args[0][0]

    def test_crc_mismatch(self, tmpdir):
        writer = self._mock_writer()
        write_control_file(tmpdir.strpath, 3, crc=12345)
        assert ControlFileReader(tmpdir.strpath).get_timeline() == 0
        assert "CRC checksum does not match" in writer.warning.call_args[0][0]

    def test_byte_order_mismatch(self, tmpdir):
        writer = self._mock_writer()
        write_control_file(tmpdir.strpath, 3, version=922 << 16)
        assert ControlFileReader(tmpdir.strpath).get_timeline() == 0
        assert "byte ordering mismatch" in writer.warning.call_args[0][0]

    @mock.patch("pgrman.postgres.open", create=True)
    def test_unreadable_control_file(self, open_mock, tmpdir):
        writer = self._mock_writer()
        open_mock.side_effect = IOError(errno.EACCES, "Permission denied")
        assert ControlFileReader(tmpdir.strpath).get_timeline() == 0
        assert "could not read control file" in writer.warning.call_args[0][0]
        assert writer.warning.call_args[0][2] == "Permission denied"


# noinspection PyMethodMayBeStatic
class TestPostmasterPid(object):
    def test_no_pid_file(self, tmpdir):
        assert read_postmaster_pid(tmpdir.strpath) is None
        assert not is_pg_running(tmpdir.strpath)

    def test_read_pid(self, tmpdir):
        tmpdir.join("postmaster.pid").write("1234\n/var/lib/pgsql/data\n")
        assert read_postmaster_pid(tmpdir.strpath) == 1234

    def test_standalone_backend(self, tmpdir):
        tmpdir.join("postmaster.pid").write("-1234\n")
        assert read_postmaster_pid(tmpdir.strpath) == 1234

    @pytest.mark.parametrize("content", ["", "abc\n", "0\n"])
    def test_broken_pid(self, content, tmpdir):
        tmpdir.join("postmaster.pid").write(content)
        with pytest.raises(PostmasterPidBroken):
            read_postmaster_pid(tmpdir.strpath)

    def test_running(self, tmpdir):
        tmpdir.join("postmaster.pid").write("%s\n" % os.getpid())
        assert is_pg_running(tmpdir.strpath)

    @mock.patch("pgrman.postgres.os.kill")
    def test_stale_pid(self, kill_mock, tmpdir):
        tmpdir.join("postmaster.pid").write("1234\n")
        kill_mock.side_effect = OSError(errno.ESRCH, "No such process")
        assert not is_pg_running(tmpdir.strpath)
        kill_mock.assert_called_once_with(1234, 0)

    @mock.patch("pgrman.postgres.os.kill")
    def test_not_owned_process(self, kill_mock, tmpdir):
        tmpdir.join("postmaster.pid").write("1234\n")
        kill_mock.side_effect = OSError(errno.EPERM, "Operation not permitted")
        assert is_pg_running(tmpdir.strpath)
