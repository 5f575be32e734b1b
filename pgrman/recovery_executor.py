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
This module contains the methods necessary to perform a restore
"""

import logging
import os

from pgrman import fs, output, xlog
from pgrman.catalog import (
    ARCLOG_DIR,
    DATABASE_DIR,
    MKDIRS_SH_FILE,
    PG_XLOG_DIR,
    BackupCatalog,
)
from pgrman.chain import (
    get_fullbackup_timeline,
    iter_archive_backups,
    resolve_backup_chain,
)
from pgrman.command_wrappers import Command
from pgrman.compression import decompression_supported, get_compressor
from pgrman.exceptions import (
    ArgumentException,
    BackupCorrupted,
    BackupIncompatible,
    CommandFailedException,
    FsOperationFailed,
    PostgresIsRunning,
    RestoreInterrupted,
)
from pgrman.infofile import BackupInfo, load_datetime_tz
from pgrman.postgres import POSTMASTER_PID_FILE, ControlFileReader, is_pg_running
from pgrman.timeline import read_timeline_history
from pgrman.utils import mkpath, working_directory
from pgrman.version import __version__
from pgrman.wal_continuity import WalContinuityChecker

_logger = logging.getLogger(__name__)

#: The name of the recovery configuration file
RECOVERY_CONF_FILE = "recovery.conf"


class RecoveryExecutor(object):
    """
    Class responsible of restoring a data directory and its WAL files
    from the backups of a catalog.

    In check mode every backup, timeline and WAL file needed by the restore
    is resolved and verified, but the destination is left untouched.
    """

    def __init__(self, config, check=False, verbose=False, interrupted=None):
        """
        :param pgrman.config.Config config: the configuration
        :param bool check: only verify that the restore is possible
        :param bool verbose: report the progress of every step
        :param threading.Event|None interrupted: when set, the restore
            stops before the next file
        """
        self.config = config
        self.check = check
        self.verbose = verbose
        self.interrupted = interrupted
        self.pgdata = config.pgdata
        self.arclog_path = config.arclog_path
        self.srvlog_path = config.srvlog_path
        self.catalog = BackupCatalog(config.backup_path) if config.backup_path else None

    def _progress(self, message, *args):
        """
        Report the progress of the restore, which is only shown in
        verbose mode
        """
        if self.verbose:
            output.info(message, *args)
        else:
            _logger.debug(message, *args)

    def _check_interrupt(self, message):
        if self.interrupted is not None and self.interrupted.is_set():
            raise RestoreInterrupted(message)

    def _check_required_parameters(self):
        for value, name, option in (
            (self.pgdata, "PGDATA", "-D, --pgdata"),
            (self.arclog_path, "ARCLOG_PATH", "-A, --arclog-path"),
            (self.srvlog_path, "SRVLOG_PATH", "-S, --srvlog-path"),
            (self.config.backup_path, "BACKUP_PATH", "-B, --backup-path"),
        ):
            if not value:
                raise ArgumentException(
                    "required parameter not specified: %s (%s)" % (name, option)
                )

    @staticmethod
    def _check_recovery_target(target_time, target_xid):
        """
        Reject recovery targets PostgreSQL would not accept in recovery.conf

        :raise ArgumentException: if the time or the transaction id is invalid
        """
        if target_time:
            try:
                load_datetime_tz(target_time)
            except (ValueError, OverflowError):
                raise ArgumentException(
                    "could not create recovery.conf with %s" % target_time
                )
        if target_xid:
            try:
                xid = int(target_xid)
            except ValueError:
                xid = -1
            if not 0 <= xid <= 0xFFFFFFFF:
                raise ArgumentException(
                    "could not create recovery.conf with %s" % target_xid
                )

    @property
    def pg_xlog_path(self):
        return os.path.join(self.pgdata, PG_XLOG_DIR)

    def recover(
        self,
        target_time=None,
        target_xid=None,
        target_inclusive=None,
        target_tli=None,
    ):
        """
        Restore the data directory from the catalog

        :param str|None target_time: the recovery target time
        :param str|None target_xid: the recovery target transaction id
        :param str|None target_inclusive: whether to stop after the
            recovery target
        :param int|None target_tli: the recovery target timeline, by default
            the current timeline of the data directory
        :return dict: the backups used and the result of the WAL checks
        """
        self._check_required_parameters()
        self._check_recovery_target(target_time, target_xid)
        self._progress("========================================")
        self._progress("restore start")

        with self.catalog.lock():
            if is_pg_running(self.pgdata):
                raise PostgresIsRunning("PostgreSQL server is running")

            backups = self.catalog.get_backup_list()

            current_tli = ControlFileReader(self.pgdata).get_timeline()
            backup_tli = get_fullbackup_timeline(self.catalog, backups)
            if not target_tli:
                target_tli = current_tli if current_tli != 0 else backup_tli

            self._progress("current timeline ID = %s", current_tli)
            self._progress("latest full backup timeline ID = %s", backup_tli)
            self._progress("target timeline ID = %s", target_tli)

            self.backup_online_files(current_tli != 0 and current_tli != backup_tli)

            if not self.check:
                self.clear_destination()

            self.restore_timeline_history()
            timelines = read_timeline_history(
                target_tli,
                self.arclog_path,
                self.catalog.work_xlog_directory,
                self.config.xlog_segment_size,
            )

            self._progress("searching recent full backup")
            chain = resolve_backup_chain(
                backups, timelines, decompression_supported()
            )
            chain_backups = chain.backups
            for position, backup in enumerate(chain_backups):
                self._progress(
                    "  %s (%s)", backup.backup_id, xlog.format_lsn(backup.stop_lsn)
                )
                self.restore_database(
                    backup,
                    is_base=position == 0,
                    is_last=position == len(chain_backups) - 1,
                )

            self._progress("searching backed-up WAL...")
            checker = None
            if self.check:
                checker = WalContinuityChecker(
                    chain.last.start_lsn, timelines, self.config.xlog_segment_size
                )
            wal_search = []
            archive_backups = []
            # the checker prunes timelines while searching, so each backup
            # is matched against the ancestry left by the previous ones
            for backup in iter_archive_backups(backups, chain.last_index, timelines):
                archive_backups.append(backup)
                self.restore_archive_logs(backup)
                if checker:
                    wal_search.append(
                        checker.search(
                            self.catalog.get_content_directory(backup, ARCLOG_DIR)
                        )
                    )

            self.restore_online_files()

            if checker:
                self._progress("searching archived WAL...")
                wal_search.append(checker.search(self.arclog_path))
                self._progress("searching online WAL...")
                wal_search.append(checker.search(self.pg_xlog_path))

            self.create_recovery_conf(
                target_time, target_xid, target_inclusive, target_tli
            )

        if not self.check:
            self._progress("all restore completed")
        return {
            "check": self.check,
            "current_timeline": current_tli,
            "backup_timeline": backup_tli,
            "target_timeline": target_tli,
            "base_backup": chain.base.backup_id,
            "incremental_backups": [b.backup_id for b in chain.incrementals],
            "archive_backups": [b.backup_id for b in archive_backups],
            "wal_search": wal_search,
        }

    def _check_compatibility(self, backup):
        if backup.block_size != self.config.block_size:
            raise BackupIncompatible(
                "BLCKSZ(%d) is not compatible(%d expected)"
                % (backup.block_size, self.config.block_size)
            )
        if backup.wal_block_size != self.config.wal_block_size:
            raise BackupIncompatible(
                "XLOG_BLCKSZ(%d) is not compatible(%d expected)"
                % (backup.wal_block_size, self.config.wal_block_size)
            )

    def _run_mkdirs(self, backup):
        """
        Create the directories and the symbolic links of the data directory
        running the script stored in the backup
        """
        script = backup.get_path(MKDIRS_SH_FILE)
        try:
            mkpath(self.pgdata)
        except OSError as e:
            raise FsOperationFailed(
                "can't create directory '%s': %s" % (self.pgdata, e)
            )
        with working_directory(self.pgdata):
            try:
                Command("sh", args=[script], check=True)()
            except CommandFailedException as e:
                raise FsOperationFailed("can't execute mkdirs.sh: %s" % e)

    def _restore_file(self, src, dst, file_info, compressed):
        if compressed:
            try:
                mkpath(os.path.dirname(dst))
            except OSError as e:
                raise FsOperationFailed("can't create directory for '%s': %s" % (dst, e))
            get_compressor().decompress(src, dst)
            try:
                os.chmod(dst, file_info.mode & 0o7777)
            except OSError as e:
                raise FsOperationFailed("can't change mode of '%s': %s" % (dst, e))
        else:
            fs.copy_file(src, dst)

    def restore_database(self, backup, is_base=True, is_last=True):
        """
        Restore the data files of a backup into the data directory

        :param BackupInfo backup: the backup to restore
        :param bool is_base: whether the backup is the full backup of the
            chain, in which case the directories are created first
        :param bool is_last: whether the backup is the last of the chain,
            in which case the files not belonging to it are removed
        """
        self._check_compatibility(backup)

        if not self.check:
            self._progress("----------------------------------------")
            self._progress("restoring database from backup %s.", backup.backup_id)

        # a size check is enough here, the CRC check is too slow
        if not self.catalog.validate_backup(
            backup, size_only=True, update_status=backup.status == BackupInfo.DONE
        ):
            raise BackupCorrupted("backup %s is corrupted" % backup.backup_id)

        if is_base and not self.check:
            self._run_mkdirs(backup)

        from_root = self.catalog.get_content_directory(backup, DATABASE_DIR)
        files = [
            f
            for f in self.catalog.get_file_list(backup, DATABASE_DIR)
            if f.is_captured
        ]
        for position, file_info in enumerate(files, 1):
            self._check_interrupt("interrupted during restore database")
            if file_info.is_dir:
                self._progress(
                    "(%d/%d) %s directory, skip", position, len(files), file_info.path
                )
                continue
            if not self.check:
                self._restore_file(
                    os.path.join(from_root, file_info.path),
                    os.path.join(self.pgdata, file_info.path),
                    file_info,
                    backup.compress_data,
                )
                self._progress(
                    "(%d/%d) %s restored %d",
                    position,
                    len(files),
                    file_info.path,
                    file_info.write_size,
                )

        if is_last and not self.check:
            self._remove_unlisted_files(backup)

        if not self.check:
            fs.delete(os.path.join(self.pgdata, POSTMASTER_PID_FILE))
            self._progress("restore backup completed")

    def _reconcile_exclude(self):
        exclude = list(self.config.pgdata_exclude)
        exclude.append(PG_XLOG_DIR)
        srvlog = os.path.abspath(self.srvlog_path)
        pgdata = os.path.abspath(self.pgdata)
        if srvlog.startswith(pgdata + os.sep):
            exclude.append(os.path.relpath(srvlog, pgdata))
        return exclude

    def _remove_unlisted_files(self, backup):
        """
        Delete from the data directory every file which is not in the
        file list of the backup
        """
        listed = set(f.path for f in self.catalog.get_file_list(backup, DATABASE_DIR))
        current = fs.list_dir(
            self.pgdata, self._reconcile_exclude(), follow_symlinks=True
        )
        for relative in reversed(current):
            if relative not in listed:
                self._progress("  delete %s", relative)
                fs.delete(os.path.join(self.pgdata, relative))

    def restore_archive_logs(self, backup):
        """
        Make the archived WAL files of a backup available in the archive

        The files are linked from the backup into the archive, or
        decompressed there if the backup is compressed.

        :param BackupInfo backup: the backup containing the WAL files
        """
        if not self.check:
            self._progress("----------------------------------------")
            self._progress("restoring WAL from backup %s.", backup.backup_id)

        base_path = self.catalog.get_content_directory(backup, ARCLOG_DIR)
        files = self.catalog.get_file_list(backup, ARCLOG_DIR)
        for position, file_info in enumerate(files, 1):
            self._check_interrupt("interrupted during restore WAL")
            if not file_info.is_captured:
                self._progress(
                    "(%d/%d) %s skip(not backed up)", position, len(files), file_info.path
                )
                continue
            # history files are restored from the timeline_history directory
            if xlog.is_history_file(file_info.path):
                self._progress(
                    "(%d/%d) %s skip(timeline history)",
                    position,
                    len(files),
                    file_info.path,
                )
                continue
            if self.check:
                continue
            src = os.path.join(base_path, file_info.path)
            dst = os.path.join(self.arclog_path, file_info.path)
            if backup.compress_data:
                self._restore_file(src, dst, file_info, True)
                self._progress(
                    "(%d/%d) %s decompressed", position, len(files), file_info.path
                )
            else:
                fs.create_symlink(src, dst)
                self._progress("(%d/%d) %s linked", position, len(files), file_info.path)

    def backup_online_files(self, re_recovery):
        """
        Preserve the online WAL files and the server logs in the catalog.

        An existing copy is kept, unless the restore follows a previous one
        on a different timeline.

        :param bool re_recovery: whether the data directory is running on a
            timeline other than the one of the latest full backup
        """
        work_xlog = self.catalog.work_xlog_directory
        files_exist = os.path.isdir(work_xlog) and len(fs.list_dir(work_xlog)) > 0
        if files_exist and not re_recovery:
            self._progress("online WALs have been already backed up, use them.")
            return

        self._progress("----------------------------------------")
        self._progress("backup online WAL and serverlog start")
        if os.path.isdir(self.pg_xlog_path):
            fs.copy_tree(self.pg_xlog_path, work_xlog)
        else:
            mkpath(work_xlog)
        if os.path.isdir(self.srvlog_path):
            fs.copy_tree(self.srvlog_path, self.catalog.work_srvlog_directory)
        else:
            mkpath(self.catalog.work_srvlog_directory)

    def clear_destination(self):
        """
        Delete the content of the data directory, keeping the directory
        """
        self._progress("----------------------------------------")
        self._progress("clearing restore destination")
        fs.delete_contents(self.pgdata)

    def restore_online_files(self):
        """
        Copy the preserved online WAL files back into the data directory
        """
        if self.check:
            return
        self._progress("----------------------------------------")
        self._progress("restoring online WAL")
        work_xlog = self.catalog.work_xlog_directory
        if os.path.isdir(work_xlog):
            fs.copy_tree(work_xlog, self.pg_xlog_path)
        else:
            mkpath(self.pg_xlog_path)

    def restore_timeline_history(self):
        """
        Copy the timeline history files stored in the catalog into the
        archive
        """
        if not self.check:
            self._progress("restoring timeline history files")
        history_dir = self.catalog.timeline_history_directory
        if not os.path.isdir(history_dir):
            _logger.debug("no timeline history directory in %s", history_dir)
            return
        fs.copy_tree(history_dir, self.arclog_path)

    def create_recovery_conf(
        self, target_time=None, target_xid=None, target_inclusive=None, target_tli=None
    ):
        """
        Write the recovery.conf file driving the recovery of the restored
        data directory

        :param str|None target_time: the recovery target time
        :param str|None target_xid: the recovery target transaction id
        :param str|None target_inclusive: whether to stop after the
            recovery target
        :param int target_tli: the recovery target timeline
        """
        if self.check:
            return
        self._progress("----------------------------------------")
        self._progress("creating recovery.conf")
        path = os.path.join(self.pgdata, RECOVERY_CONF_FILE)
        try:
            with open(path, "w") as recovery_conf:
                recovery_conf.write(
                    "# recovery.conf generated by pgrman %s\n" % __version__
                )
                recovery_conf.write(
                    "restore_command = 'cp %s/%%f %%p'\n" % self.arclog_path
                )
                if target_time:
                    recovery_conf.write("recovery_target_time = '%s'\n" % target_time)
                if target_xid:
                    recovery_conf.write("recovery_target_xid = '%s'\n" % target_xid)
                if target_inclusive:
                    recovery_conf.write(
                        "recovery_target_inclusive = '%s'\n" % target_inclusive
                    )
                recovery_conf.write("recovery_target_timeline = '%s'\n" % target_tli)
        except (OSError, IOError) as e:
            raise FsOperationFailed(
                "can't open recovery.conf \"%s\": %s" % (path, e.strerror)
            )
