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
This module inspects the files of a PostgreSQL data directory
"""

import binascii
import collections
import errno
import logging
import os
import struct

from pgrman import output
from pgrman.exceptions import FsOperationFailed, PostmasterPidBroken

_logger = logging.getLogger(__name__)

#: Positions of the fields of the control file read by pgrman
ControlFileLayout = collections.namedtuple(
    "ControlFileLayout", "version_offset timeline_offset crc_offset"
)

#: The layout of the control file of PostgreSQL 8.4 to 9.2
DEFAULT_CONTROL_FILE_LAYOUT = ControlFileLayout(
    version_offset=8, timeline_offset=56, crc_offset=184
)

CONTROL_FILE = os.path.join("global", "pg_control")
POSTMASTER_PID_FILE = "postmaster.pid"


class ControlFileReader(object):
    """
    Read the current timeline from the control file of a data directory
    """

    def __init__(self, pgdata, layout=DEFAULT_CONTROL_FILE_LAYOUT, byteorder="="):
        """
        :param str pgdata: the data directory
        :param ControlFileLayout layout: where the fields are stored
        :param str byteorder: the struct byte order of the control file,
            the native one by default
        """
        self.pgdata = pgdata
        self.layout = layout
        self.byteorder = byteorder

    @property
    def path(self):
        return os.path.join(self.pgdata, CONTROL_FILE)

    def _read(self):
        size = self.layout.crc_offset + 4
        try:
            with open(self.path, "rb") as control_file:
                data = control_file.read(size)
        except (OSError, IOError) as e:
            if e.errno == errno.ENOENT:
                output.warning("control file \"%s\" is not found", self.path)
            else:
                output.warning(
                    "could not read control file \"%s\": %s", self.path, e.strerror
                )
            return None
        if len(data) < size:
            output.warning(
                "control file \"%s\" is too short: %d bytes", self.path, len(data)
            )
            return None
        return data

    def _unpack_uint32(self, data, offset):
        return struct.unpack_from(self.byteorder + "I", data, offset)[0]

    def get_timeline(self):
        """
        Return the timeline the cluster is running on.

        Problems with the control file are reported as warnings and the
        timeline is unknown.

        :return int: the timeline, 0 if unknown
        """
        data = self._read()
        if data is None:
            return 0

        stored_crc = self._unpack_uint32(data, self.layout.crc_offset)
        crc = binascii.crc32(data[: self.layout.crc_offset]) & 0xFFFFFFFF
        if crc != stored_crc:
            output.warning(
                "calculated CRC checksum does not match value stored in file.\n"
                "Either the file is corrupt, or it has a different layout "
                "than this program is expecting."
            )
            return 0

        version = self._unpack_uint32(data, self.layout.version_offset)
        if version % 65536 == 0 and version // 65536 != 0:
            output.warning(
                "possible byte ordering mismatch\n"
                "The byte ordering used to store the pg_control file might not "
                "match the one used by this program."
            )
            return 0

        timeline = self._unpack_uint32(data, self.layout.timeline_offset)
        _logger.debug("current timeline from %s: %d", self.path, timeline)
        return timeline


def read_postmaster_pid(pgdata):
    """
    Read the pid of the postmaster from its lock file

    :param str pgdata: the data directory
    :return int|None: the pid, None if the lock file doesn't exist
    :raise PostmasterPidBroken: if the lock file has unexpected contents
    """
    path = os.path.join(pgdata, POSTMASTER_PID_FILE)
    try:
        with open(path) as pid_file:
            first_line = pid_file.readline()
    except (OSError, IOError) as e:
        if e.errno == errno.ENOENT:
            return None
        raise FsOperationFailed("could not open PID file \"%s\": %s" % (path, e))
    try:
        pid = int(first_line.strip())
    except ValueError:
        raise PostmasterPidBroken("invalid data in PID file \"%s\"" % path)
    # a negative pid is written by a standalone backend
    pid = abs(pid)
    if pid == 0:
        raise PostmasterPidBroken("invalid data in PID file \"%s\"" % path)
    return pid


def is_pg_running(pgdata):
    """
    Check whether a PostgreSQL server is running on a data directory

    :param str pgdata: the data directory
    :rtype: bool
    :raise PostmasterPidBroken: if the lock file has unexpected contents
    """
    pid = read_postmaster_pid(pgdata)
    if pid is None:
        return False
    try:
        os.kill(pid, 0)
    except OSError as e:
        if e.errno == errno.ESRCH:
            _logger.debug("stale postmaster.pid, process %d is gone", pid)
            return False
        if e.errno == errno.EPERM:
            return True
        raise FsOperationFailed("could not check process %d: %s" % (pid, e))
    return True
