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

import binascii
import gzip
import io
import os
import struct
from datetime import datetime

from dateutil import tz

from pgrman.catalog import (
    ARCLOG_DIR,
    ARCLOG_FILE_LIST,
    DATABASE_DIR,
    DATABASE_FILE_LIST,
    MKDIRS_SH_FILE,
    SRVLOG_DIR,
    SRVLOG_FILE_LIST,
)
from pgrman.config import Config
from pgrman.infofile import (
    BACKUP_MODE_FULL,
    BYTES_INVALID,
    BackupInfo,
    FileInfo,
    write_file_list,
)
from pgrman.postgres import CONTROL_FILE, DEFAULT_CONTROL_FILE_LAYOUT


def build_test_backup_info(
    backup_path=None,
    start_time=None,
    end_time=None,
    backup_mode=BACKUP_MODE_FULL,
    status=BackupInfo.OK,
    timeline=1,
    start_lsn=0x01000028,
    stop_lsn=0x01000100,
    compress_data=False,
    with_serverlog=False,
    block_size=8192,
    wal_block_size=8192,
    **kwargs
):
    """
    Create an 'Ad Hoc' BackupInfo object for testing purposes.

    :param str|None backup_path: the root directory of the catalog
    :param datetime|None start_time: defaults to 2024-01-01 10:00:00
    :rtype: pgrman.infofile.BackupInfo
    """
    if start_time is None:
        start_time = datetime(2024, 1, 1, 10, 0, 0, tzinfo=tz.tzlocal())
    if end_time is None:
        end_time = start_time
    return BackupInfo(
        backup_path=backup_path,
        start_time=start_time,
        end_time=end_time,
        backup_mode=backup_mode,
        status=status,
        timeline=timeline,
        start_lsn=start_lsn,
        stop_lsn=stop_lsn,
        compress_data=compress_data,
        with_serverlog=with_serverlog,
        block_size=block_size,
        wal_block_size=wal_block_size,
        **kwargs
    )


def _store_files(root, files, compress):
    """
    Write the content of a backup and return its file list.

    A None content is a directory, any other content is written to a
    regular file, gzipped when compress is True.
    """
    entries = []
    for relative, content in sorted(files.items()):
        path = os.path.join(root, relative)
        if content is None:
            if not os.path.isdir(path):
                os.makedirs(path)
            entries.append(FileInfo(relative, FileInfo.DIRECTORY, 0, mode=0o700))
            continue
        if not os.path.isdir(os.path.dirname(path)):
            os.makedirs(os.path.dirname(path))
        if compress:
            with gzip.open(path, "wb") as f:
                f.write(content)
        else:
            with open(path, "wb") as f:
                f.write(content)
        with open(path, "rb") as f:
            crc = binascii.crc32(f.read()) & 0xFFFFFFFF
        entries.append(
            FileInfo(relative, FileInfo.REGULAR, os.path.getsize(path), crc, 0o600)
        )
    return entries


def write_backup(
    backup_path,
    database_files=None,
    arclog_files=None,
    srvlog_files=None,
    uncaptured=(),
    **kwargs
):
    """
    Store a backup in a catalog, with its metadata, its file lists and
    its mkdirs.sh script.

    :param str backup_path: the root directory of the catalog
    :param dict database_files: relative path -> content of the data
        files, None for a directory
    :param dict arclog_files: WAL file name -> content
    :param dict srvlog_files: log file name -> content
    :param iterable[str] uncaptured: data files listed as not captured
    :rtype: pgrman.infofile.BackupInfo
    """
    backup = build_test_backup_info(backup_path=str(backup_path), **kwargs)
    base = backup.get_basebackup_directory()
    os.makedirs(base)
    compress = backup.compress_data

    if backup.has_database:
        database_files = database_files or {}
        entries = _store_files(
            os.path.join(base, DATABASE_DIR), database_files, compress
        )
        entries.extend(FileInfo(path, write_size=BYTES_INVALID) for path in uncaptured)
        write_file_list(os.path.join(base, DATABASE_FILE_LIST), entries)
        with open(os.path.join(base, MKDIRS_SH_FILE), "w") as script:
            for relative, content in sorted(database_files.items()):
                if content is None:
                    script.write("mkdir -m 700 -p %s\n" % relative)
    if backup.has_arclog:
        entries = _store_files(
            os.path.join(base, ARCLOG_DIR), arclog_files or {}, compress
        )
        write_file_list(os.path.join(base, ARCLOG_FILE_LIST), entries)
    if backup.with_serverlog:
        entries = _store_files(
            os.path.join(base, SRVLOG_DIR), srvlog_files or {}, compress
        )
        write_file_list(os.path.join(base, SRVLOG_FILE_LIST), entries)

    backup.save()
    return backup


def build_config(tmpdir, **kwargs):
    """
    Build a configuration whose directories live inside tmpdir

    :param tmpdir: the py.path.local temporary directory
    :rtype: pgrman.config.Config
    """
    config = Config(filename=io.StringIO("[pgrman]\n"), environ={})
    for key in ("pgdata", "arclog_path", "srvlog_path", "backup_path"):
        directory = tmpdir.join(key)
        directory.ensure(dir=True)
        setattr(config, key, directory.strpath)
    for key, value in kwargs.items():
        setattr(config, key, value)
    return config


def write_control_file(pgdata, timeline, version=922, crc=None):
    """
    Write a global/pg_control file with the given timeline

    :param str pgdata: the data directory
    :param int timeline: the timeline of the latest checkpoint
    :param int version: the value of pg_control_version
    :param int|None crc: the CRC to store, the correct one if None
    """
    layout = DEFAULT_CONTROL_FILE_LAYOUT
    data = bytearray(layout.crc_offset + 4)
    struct.pack_into("=I", data, layout.version_offset, version)
    struct.pack_into("=I", data, layout.timeline_offset, timeline)
    if crc is None:
        crc = binascii.crc32(bytes(data[: layout.crc_offset])) & 0xFFFFFFFF
    struct.pack_into("=I", data, layout.crc_offset, crc)
    path = os.path.join(pgdata, CONTROL_FILE)
    if not os.path.isdir(os.path.dirname(path)):
        os.makedirs(os.path.dirname(path))
    with open(path, "wb") as control_file:
        control_file.write(bytes(data))
    return path
