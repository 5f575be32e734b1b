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
This module gives access to the content of a backup catalog
"""

import binascii
import logging
import os
import re

from pgrman import output
from pgrman.exceptions import BackupCorrupted, FsOperationFailed
from pgrman.infofile import BackupInfo, FileInfo, read_file_list
from pgrman.lockfile import CatalogLock

_logger = logging.getLogger(__name__)

_date_dir_re = re.compile(r"^\d{8}$")
_time_dir_re = re.compile(r"^\d{6}$")

#: The name of the metadata file of a backup
BACKUP_INI_FILE = "backup.ini"

#: Where the content of a backup is stored, and the list of its files
DATABASE_DIR = "database"
ARCLOG_DIR = "arclog"
SRVLOG_DIR = "srvlog"
DATABASE_FILE_LIST = "file_database.txt"
ARCLOG_FILE_LIST = "file_arclog.txt"
SRVLOG_FILE_LIST = "file_srvlog.txt"
MKDIRS_SH_FILE = "mkdirs.sh"

#: The directory of the catalog containing the timeline history files
TIMELINE_HISTORY_DIR = "timeline_history"

#: The directory of the catalog where the online files are preserved
WORK_DIR = "backup"

#: The name of the WAL directory inside the data directory
PG_XLOG_DIR = "pg_xlog"

#: The kinds of content of a backup, with their directory and file list
BACKUP_CONTENTS = {
    DATABASE_DIR: DATABASE_FILE_LIST,
    ARCLOG_DIR: ARCLOG_FILE_LIST,
    SRVLOG_DIR: SRVLOG_FILE_LIST,
}


def _crc32(path):
    crc = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            crc = binascii.crc32(chunk, crc)
    return crc & 0xFFFFFFFF


class BackupCatalog(object):
    """
    A directory containing backups, organised by the day and the time
    they started at
    """

    def __init__(self, backup_path):
        """
        :param str backup_path: the root directory of the catalog
        """
        self.backup_path = backup_path

    @property
    def timeline_history_directory(self):
        return os.path.join(self.backup_path, TIMELINE_HISTORY_DIR)

    @property
    def work_directory(self):
        return os.path.join(self.backup_path, WORK_DIR)

    @property
    def work_xlog_directory(self):
        return os.path.join(self.work_directory, PG_XLOG_DIR)

    @property
    def work_srvlog_directory(self):
        return os.path.join(self.work_directory, SRVLOG_DIR)

    def lock(self):
        """
        Return the lock protecting this catalog, to be used in a with
        statement

        :rtype: CatalogLock
        """
        return CatalogLock(self.backup_path)

    def get_backup_list(self):
        """
        Load the metadata of every backup in the catalog

        Backups whose metadata can't be read are skipped with a warning.

        :return list[BackupInfo]: the backups, newest first
        :raise FsOperationFailed: if the catalog can't be read
        """
        try:
            days = os.listdir(self.backup_path)
        except OSError as e:
            raise FsOperationFailed(
                "could not open backup catalog '%s': %s" % (self.backup_path, e.strerror)
            )

        backups = []
        for day in sorted(days, reverse=True):
            day_path = os.path.join(self.backup_path, day)
            if not _date_dir_re.match(day) or not os.path.isdir(day_path):
                continue
            for time in sorted(os.listdir(day_path), reverse=True):
                backup_dir = os.path.join(day_path, time)
                info_file = os.path.join(backup_dir, BACKUP_INI_FILE)
                if not _time_dir_re.match(time) or not os.path.isfile(info_file):
                    continue
                try:
                    backup = BackupInfo.from_meta_file(
                        info_file, backup_path=self.backup_path
                    )
                except (OSError, IOError, ValueError) as e:
                    output.warning(
                        "can't read backup information of %s/%s: %s", day, time, e
                    )
                    continue
                backups.append(backup)

        backups.sort(key=lambda b: b.backup_id or "", reverse=True)
        _logger.debug("Found %d backups in %s", len(backups), self.backup_path)
        return backups

    @staticmethod
    def get_content_directory(backup, content):
        """
        The directory containing a kind of content of a backup

        :param BackupInfo backup: the backup
        :param str content: one of DATABASE_DIR, ARCLOG_DIR, SRVLOG_DIR
        """
        return backup.get_path(content)

    @staticmethod
    def get_file_list(backup, content):
        """
        Read the list of files of a kind of content of a backup

        :param BackupInfo backup: the backup
        :param str content: one of DATABASE_DIR, ARCLOG_DIR, SRVLOG_DIR
        :rtype: list[FileInfo]
        :raise FsOperationFailed: if the list can't be read
        :raise BackupCorrupted: if the list contains invalid lines
        """
        path = backup.get_path(BACKUP_CONTENTS[content])
        try:
            return read_file_list(path)
        except (OSError, IOError) as e:
            raise FsOperationFailed("could not read file list '%s': %s" % (path, e))
        except ValueError as e:
            raise BackupCorrupted(
                "backup %s has a corrupted file list: %s" % (backup.backup_id, e)
            )

    def _contents_of(self, backup):
        contents = []
        if backup.has_database:
            contents.append(DATABASE_DIR)
        if backup.has_arclog:
            contents.append(ARCLOG_DIR)
        if backup.with_serverlog:
            contents.append(SRVLOG_DIR)
        return contents

    def _check_file(self, backup, content, file_info, size_only):
        path = os.path.join(backup.get_path(content), file_info.path)
        try:
            size = os.path.getsize(path)
        except OSError as e:
            output.warning("backup file \"%s\" vanished: %s", path, e.strerror)
            return False
        if size != file_info.write_size:
            output.warning(
                "size of backup file \"%s\" must be %d but %d",
                path,
                file_info.write_size,
                size,
            )
            return False
        if not size_only and _crc32(path) != file_info.crc:
            output.warning("CRC of backup file \"%s\" must be %X", path, file_info.crc)
            return False
        return True

    def validate_backup(self, backup, size_only=True, update_status=True):
        """
        Verify that the files of a backup are intact.

        Unless update_status is False, the status of the backup becomes
        OK or CORRUPT and is saved to its metadata file.

        :param BackupInfo backup: the backup to validate
        :param bool size_only: don't verify the CRC of the files
        :param bool update_status: save the outcome as the backup status
        :return bool: whether the backup is valid
        """
        _logger.debug("Validating backup %s", backup.backup_id)
        valid = True
        for content in self._contents_of(backup):
            for file_info in self.get_file_list(backup, content):
                if file_info.type != FileInfo.REGULAR or not file_info.is_captured:
                    continue
                if not self._check_file(backup, content, file_info, size_only):
                    valid = False
                    break
            if not valid:
                break

        if update_status:
            self.set_status(backup, BackupInfo.OK if valid else BackupInfo.CORRUPT)
        if valid:
            output.info("backup %s is valid", backup.backup_id)
        else:
            output.warning("backup %s is corrupted", backup.backup_id)
        return valid

    @staticmethod
    def set_status(backup, status):
        """
        Change the status of a backup and save its metadata

        :param BackupInfo backup: the backup
        :param str status: the new status
        """
        backup.status = status
        try:
            backup.save()
        except (OSError, IOError) as e:
            raise FsOperationFailed(
                "could not write backup information of %s: %s" % (backup.backup_id, e)
            )
