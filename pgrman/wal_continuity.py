# -*- coding: utf-8 -*-
# © Copyright EnterpriseDB UK Limited 2011-2025
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

"""
This module verifies that the WAL files needed by a restore are available
"""

import collections
import logging
import os

from pgrman import output, xlog

_logger = logging.getLogger(__name__)

#: The outcome of the search in a directory: the first and the last of the
#: consecutive WAL files found and their number
WalSearchResult = collections.namedtuple(
    "WalSearchResult", "directory first last count"
)


def _format_found(result):
    if result.count == 0:
        return None
    if result.count == 1:
        return result.first
    return "%s - %s" % (result.first, result.last)


class WalContinuityChecker(object):
    """
    Walk the WAL stream from a starting position through a sequence of
    directories, checking that no WAL file is missing.

    The position reached in a directory is where the search continues in
    the next one. The list of timelines is shared with the caller: when a
    WAL file is found on a timeline, the newer timelines are removed from
    it and never searched again.
    """

    def __init__(
        self, start_lsn, timelines, xlog_segment_size=xlog.DEFAULT_XLOG_SEG_SIZE
    ):
        """
        :param int start_lsn: the LSN the restore starts from
        :param list[pgrman.timeline.Timeline] timelines: the target
            ancestry, newest first. It is modified in place.
        :param int xlog_segment_size: the size of a XLOG segment
        """
        self.timelines = timelines
        self.xlog_segment_size = xlog_segment_size
        self.position = xlog.position_from_lsn(start_lsn, xlog_segment_size)

    def _find(self, directory):
        """
        Look for the WAL file of the current position on every timeline,
        newest first

        :return tuple[int,str]|None: the index of the timeline and the name
            of the file
        """
        for index, timeline in enumerate(self.timelines):
            name = xlog.encode_segment_name(
                timeline.tli, self.position.log, self.position.seg
            )
            if os.path.exists(os.path.join(directory, name)):
                return index, name
        return None

    def search(self, directory):
        """
        Search consecutive WAL files in a directory, starting from the
        current position and stopping at the first missing one.

        :param str directory: the directory to search
        :rtype: WalSearchResult
        """
        first = None
        last = None
        count = 0
        while True:
            found = self._find(directory)
            if found is None:
                break
            index, name = found
            count += 1
            if first is None:
                first = name
            last = name
            if index > 0:
                _logger.debug(
                    "WAL file %s found on timeline %d, discarding newer timelines",
                    name,
                    self.timelines[index].tli,
                )
                del self.timelines[:index]
            self.position = xlog.next_position(self.position, self.xlog_segment_size)

        result = WalSearchResult(directory, first, last, count)
        found_range = _format_found(result)
        if found_range:
            output.info("WAL files found in %s: %s", directory, found_range)
        else:
            output.info("no WAL files found in %s", directory)
        _logger.debug(
            "WAL search in %s stopped at %s",
            directory,
            xlog.encode_segment_name(
                self.timelines[0].tli if self.timelines else 0,
                self.position.log,
                self.position.seg,
            ),
        )
        return result
