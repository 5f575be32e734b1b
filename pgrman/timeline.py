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
This module resolves the ancestry of a timeline from its history file
and decides which backups are reachable from it
"""

import collections
import errno
import logging
import os

from pgrman import xlog
from pgrman.exceptions import (
    BadHistoryFileContents,
    BadXlogSegmentName,
    FsOperationFailed,
)

_logger = logging.getLogger(__name__)

#: A timeline of the ancestry, with the LSN where the next one forked from it
Timeline = collections.namedtuple("Timeline", "tli end")


def _parse_tli(token):
    """
    Parse a timeline id written in decimal or in 0x hexadecimal notation

    :param str token: the token to parse
    :rtype: int
    :raise ValueError: if the token is not a number
    """
    try:
        return int(token, 0)
    except ValueError:
        # int() refuses decimal numbers with leading zeros in base 0
        return int(token, 10)


def _parse_end_position(token, xlog_segment_size):
    """
    Parse the position where a timeline ends.

    The token can be either the name of the first WAL segment of the
    next timeline or a LSN in the X/X notation.

    :param str token: the token to parse
    :param int xlog_segment_size: the size of a XLOG segment
    :rtype: int
    :raise ValueError: if the token is not a valid position
    """
    if "/" in token:
        return xlog.parse_lsn(token)
    try:
        return xlog.segment_name_to_lsn(token, xlog_segment_size)
    except BadXlogSegmentName:
        raise ValueError("invalid WAL file name %s" % token)


def parse_history_lines(
    target_tli, lines, source="<unknown>", xlog_segment_size=xlog.DEFAULT_XLOG_SEG_SIZE
):
    """
    Build the ancestry of a timeline from the lines of its history file.

    Blank lines and lines starting with '#' are ignored. Every other line
    must contain a timeline id followed by the position where it ends,
    any further field is ignored.

    :param int target_tli: the timeline the history file belongs to
    :param iterable[str] lines: the content of the history file
    :param str source: the name of the file, used in error messages
    :param int xlog_segment_size: the size of a XLOG segment
    :return list[Timeline]: the ancestry, newest timeline first. The target
        timeline is always the first element and has no end.
    :raise BadHistoryFileContents: if the content is invalid
    """
    timelines = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        fields = stripped.split()
        try:
            tli = _parse_tli(fields[0])
        except ValueError:
            raise BadHistoryFileContents(
                "syntax error in history file %s: %s" % (source, stripped)
            )
        if len(fields) < 2:
            raise BadHistoryFileContents(
                "syntax error in history file %s: %s "
                "(expected a transaction log switchpoint location)" % (source, stripped)
            )
        try:
            end = _parse_end_position(fields[1], xlog_segment_size)
        except ValueError:
            raise BadHistoryFileContents(
                "syntax error in history file %s: %s "
                "(invalid transaction log switchpoint location)" % (source, stripped)
            )
        if timelines and tli <= timelines[-1].tli:
            raise BadHistoryFileContents(
                "invalid data in history file %s: %s "
                "(timeline IDs must be in increasing sequence)" % (source, stripped)
            )
        timelines.append(Timeline(tli, end))

    if timelines and target_tli <= timelines[-1].tli:
        raise BadHistoryFileContents(
            "invalid data in history file %s "
            "(timeline IDs must be less than child timeline's ID)" % source
        )

    timelines.append(Timeline(target_tli, xlog.MAX_LSN))
    timelines.reverse()
    return timelines


def read_timeline_history(
    target_tli,
    arclog_path,
    work_xlog_path,
    xlog_segment_size=xlog.DEFAULT_XLOG_SEG_SIZE,
):
    """
    Read the history file of a timeline and return its ancestry.

    The history file is searched in the archive first, then in the copy
    of the online WAL stored in the catalog. If no history file exists
    the timeline has no parents.

    :param int target_tli: the timeline to resolve
    :param str arclog_path: the WAL archive directory
    :param str work_xlog_path: the copy of the online WAL in the catalog
    :param int xlog_segment_size: the size of a XLOG segment
    :return list[Timeline]: the ancestry, newest timeline first
    :raise BadHistoryFileContents: if the history file is invalid
    :raise FsOperationFailed: if the history file can't be read
    """
    history_name = xlog.encode_history_file_name(target_tli)
    lines = []
    source = None
    for directory in (arclog_path, work_xlog_path):
        path = os.path.join(directory, history_name)
        try:
            with open(path) as history:
                lines = history.readlines()
        except (OSError, IOError) as e:
            if e.errno == errno.ENOENT:
                continue
            raise FsOperationFailed(
                "could not open history file '%s': %s" % (path, e.strerror)
            )
        source = path
        break

    if source is None:
        _logger.debug("No history file found for timeline %s", target_tli)
        source = history_name

    timelines = parse_history_lines(target_tli, lines, source, xlog_segment_size)

    for timeline in timelines:
        _logger.debug(
            "timeline history: tli=%d end=%s",
            timeline.tli,
            "unbounded"
            if timeline.end == xlog.MAX_LSN
            else xlog.format_lsn(timeline.end),
        )
    return timelines


def satisfies_timeline(timelines, backup):
    """
    Check whether a backup belongs to the ancestry of the target timeline.

    The backup must have been taken on one of the timelines and must
    have stopped before the point where that timeline forked.

    :param list[Timeline] timelines: the ancestry of the target timeline
    :param pgrman.infofile.BackupInfo backup: the backup to check
    :rtype: bool
    """
    for timeline in timelines:
        if backup.timeline == timeline.tli and backup.stop_lsn < timeline.end:
            return True
    return False
