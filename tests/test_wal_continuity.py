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

import mock

from pgrman.timeline import Timeline
from pgrman.wal_continuity import WalContinuityChecker, WalSearchResult
from pgrman.xlog import MAX_LSN, WalPosition


def _touch(directory, *names):
    for name in names:
        directory.join(name).write("")


# noinspection PyMethodMayBeStatic
class TestWalContinuityChecker(object):
    def test_search_across_directories(self, tmpdir):
        first = tmpdir.mkdir("first")
        second = tmpdir.mkdir("second")
        third = tmpdir.mkdir("third")
        _touch(first, "000000010000000000000001", "000000010000000000000002")
        _touch(second, "000000010000000000000003")
        # 000000010000000000000004 is missing
        _touch(third, "000000010000000000000005")

        checker = WalContinuityChecker(0x01000028, [Timeline(1, MAX_LSN)])
        assert checker.position == WalPosition(0, 1)
        assert checker.search(first.strpath) == WalSearchResult(
            first.strpath, "000000010000000000000001", "000000010000000000000002", 2
        )
        assert checker.search(second.strpath) == WalSearchResult(
            second.strpath, "000000010000000000000003", "000000010000000000000003", 1
        )
        assert checker.search(third.strpath) == WalSearchResult(
            third.strpath, None, None, 0
        )
        assert checker.position == WalPosition(0, 4)

    def test_newest_timeline_first(self, tmpdir):
        _touch(tmpdir, "000000010000000000000001", "000000020000000000000001")
        timelines = [Timeline(2, MAX_LSN), Timeline(1, 0x5000000)]
        checker = WalContinuityChecker(0x01000000, timelines)
        result = checker.search(tmpdir.strpath)
        assert result.first == "000000020000000000000001"
        assert result.count == 1
        assert timelines == [Timeline(2, MAX_LSN), Timeline(1, 0x5000000)]

    def test_prune_newer_timelines(self, tmpdir):
        _touch(tmpdir, "000000010000000000000001", "000000020000000000000002")
        timelines = [Timeline(2, MAX_LSN), Timeline(1, 0x5000000)]
        checker = WalContinuityChecker(0x01000000, timelines)
        result = checker.search(tmpdir.strpath)
        # the file of timeline 2 is not searched anymore once a file
        # of timeline 1 has been found
        assert result.count == 1
        assert result.last == "000000010000000000000001"
        assert timelines == [Timeline(1, 0x5000000)]
        assert checker.timelines is timelines

    def test_log_wrap(self, tmpdir):
        _touch(tmpdir, "0000000100000000000000FF", "000000010000000100000000")
        checker = WalContinuityChecker(0xFF000000, [Timeline(1, MAX_LSN)])
        result = checker.search(tmpdir.strpath)
        assert result.count == 2
        assert result.last == "000000010000000100000000"
        assert checker.position == WalPosition(1, 1)

    def test_segment_size(self, tmpdir):
        _touch(tmpdir, "000000010000000000000001", "000000010000000000000002")
        checker = WalContinuityChecker(
            0x04000000, [Timeline(1, MAX_LSN)], xlog_segment_size=1 << 26
        )
        assert checker.position == WalPosition(0, 1)
        assert checker.search(tmpdir.strpath).count == 2

    @mock.patch("pgrman.wal_continuity.output")
    def test_report(self, output_mock, tmpdir):
        _touch(tmpdir, "000000010000000000000001")
        checker = WalContinuityChecker(0x01000000, [Timeline(1, MAX_LSN)])
        checker.search(tmpdir.strpath)
        output_mock.info.assert_called_once_with(
            "WAL files found in %s: %s", tmpdir.strpath, "000000010000000000000001"
        )
        output_mock.reset_mock()
        checker.search(tmpdir.strpath)
        output_mock.info.assert_called_once_with(
            "no WAL files found in %s", tmpdir.strpath
        )

    def test_missing_directory(self, tmpdir):
        checker = WalContinuityChecker(0x01000000, [Timeline(1, MAX_LSN)])
        result = checker.search(tmpdir.join("missing").strpath)
        assert result.count == 0
        assert checker.position == WalPosition(0, 1)
