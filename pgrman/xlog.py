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
This module contains functions to retrieve information about xlog
files and to move around WAL positions
"""

import collections
import os
import re

from pgrman.exceptions import BadXlogSegmentName

# xlog file segment name parser (regular expression)
_xlog_re = re.compile(
    r"""
    ^
    ([\dA-Fa-f]{8})                    # everything has a timeline
    (?:
        ([\dA-Fa-f]{8})([\dA-Fa-f]{8}) # segment name, if a wal file
        (?:                            # and optional
            \.[\dA-Fa-f]{8}\.backup    # offset, if a backup label
        |
            \.partial                  # partial, if a partial file
        )?
    |
        \.history                      # or only .history, if a history file
    )
    $
    """,
    re.VERBOSE,
)

# xlog location parser (regular expression)
_location_re = re.compile(r"^([\dA-Fa-f]{1,8})/([\dA-Fa-f]{1,8})$")

# Taken from xlog_internal.h from PostgreSQL sources

#: XLOG_SEG_SIZE is the size of a single WAL file.  This must be a power of 2
#: and larger than XLOG_BLCKSZ (preferably, a great deal larger than
#: XLOG_BLCKSZ).
DEFAULT_XLOG_SEG_SIZE = 1 << 24

#: An LSN greater than any real position of the WAL stream
MAX_LSN = 0xFFFFFFFFFFFFFFFF

#: A position in the WAL stream expressed as a (log ID, segment ID) couple
WalPosition = collections.namedtuple("WalPosition", "log seg")


def is_history_file(path):
    """
    Return True if the xlog is a .history file, False otherwise

    It supports either a full file path or a simple file name.

    :param str path: the file name to test
    :rtype: bool
    """
    match = _xlog_re.search(os.path.basename(path))
    if match and match.group(0).endswith(".history"):
        return True
    return False


def decode_segment_name(path):
    """
    Retrieve the timeline, log ID and segment ID
    from the name of a xlog segment

    It can handle either a full file path or a simple file name.

    :param str path: the file name to decode
    :rtype: list[int]
    """
    name = os.path.basename(path)
    match = _xlog_re.match(name)
    if not match:
        raise BadXlogSegmentName(name)
    return [int(x, 16) if x else None for x in match.groups()]


def encode_segment_name(tli, log, seg):
    """
    Build the xlog segment name based on timeline, log ID and segment ID

    :param int tli: timeline number
    :param int log: log number
    :param int seg: segment number
    :return str: segment file name
    """
    return "%08X%08X%08X" % (tli, log, seg)


def encode_history_file_name(tli):
    """
    Build the history file name based on timeline

    :return str: history file name
    """
    return "%08X.history" % (tli,)


def xlog_segments_per_file(xlog_segment_size):
    """
    Given that WAL files are named using the following pattern:

        <timeline_number><xlog_file_number><xlog_segment_number>

    this is the number of the last XLOG segment in an XLOG file. By XLOG
    file we don't mean an actual file on the filesystem, but the definition
    used in the PostgreSQL sources: meaning a set of files containing the
    same file number.

    :param int xlog_segment_size: The XLOG segment size in bytes
    :return int: The number of segments in an XLOG file
    """
    return 0xFFFFFFFF // xlog_segment_size


def parse_lsn(lsn_string):
    """
    Transform a string XLOG location, formatted as %X/%X, in the corresponding
    numeric representation

    :param str lsn_string: the string XLOG location, i.e. '2/82000168'
    :rtype: int
    """
    match = _location_re.match(lsn_string.strip())
    if not match:
        raise ValueError("Invalid LSN: %s" % lsn_string)
    return (int(match.group(1), 16) << 32) + int(match.group(2), 16)


def format_lsn(lsn):
    """
    Transform a numeric XLOG location, in the corresponding %X/%X string
    representation

    :param int lsn: numeric XLOG location
    :rtype: str
    """
    return "%X/%X" % (lsn >> 32, lsn & 0xFFFFFFFF)


def segment_name_to_lsn(name, xlog_segment_size=DEFAULT_XLOG_SEG_SIZE):
    """
    Return the LSN where the WAL segment with the given name begins.

    The timeline part of the name is ignored.

    :param str name: a WAL segment name
    :param int xlog_segment_size: the size of a XLOG segment
    :rtype: int
    :raise BadXlogSegmentName: if the name is not a WAL segment name
    """
    _, log, seg = decode_segment_name(name)
    if log is None:
        raise BadXlogSegmentName(name)
    return (log << 32) + seg * xlog_segment_size


def position_from_lsn(lsn, xlog_segment_size=DEFAULT_XLOG_SEG_SIZE):
    """
    Return the WAL position of the segment containing the given LSN

    :param int lsn: numeric XLOG location
    :param int xlog_segment_size: the size of a XLOG segment
    :rtype: WalPosition
    """
    return WalPosition(lsn >> 32, (lsn & 0xFFFFFFFF) // xlog_segment_size)


def next_position(position, xlog_segment_size=DEFAULT_XLOG_SEG_SIZE):
    """
    Return the WAL position following the given one, switching to the
    next log ID after the last segment of the current one.

    :param WalPosition position: the current position
    :param int xlog_segment_size: the size of a XLOG segment
    :rtype: WalPosition
    """
    if position.seg >= xlog_segments_per_file(xlog_segment_size):
        return WalPosition(position.log + 1, 0)
    return WalPosition(position.log, position.seg + 1)
