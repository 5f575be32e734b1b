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

#: Process exit status for every error kind
EXIT_ERROR = 1
EXIT_SYSTEM = 10
EXIT_ARGS = 12
EXIT_INTERRUPTED = 13
EXIT_CORRUPTED = 20
EXIT_ALREADY_RUNNING = 21
EXIT_PG_INCOMPATIBLE = 22
EXIT_PG_RUNNING = 23
EXIT_PID_BROKEN = 24
EXIT_NO_BACKUP = 25
EXIT_NOT_SUPPORTED = 26


class PgRmanException(Exception):
    """
    The base class of all other pgrman exceptions
    """

    #: Exit status of the process when the exception terminates a command
    exit_code = EXIT_ERROR


class ArgumentException(PgRmanException):
    """
    A required parameter has not been supplied
    """

    exit_code = EXIT_ARGS


class ConfigurationException(PgRmanException):
    """
    Base exception for all the Configuration errors
    """

    exit_code = EXIT_ARGS


class CommandException(PgRmanException):
    """
    Base exception for all the errors related to
    the execution of a Command.
    """

    exit_code = EXIT_SYSTEM


class CommandFailedException(CommandException):
    """
    Exception representing a failed command
    """


class FsOperationFailed(CommandException):
    """
    Exception which represents a failed operation on the file system
    """


class CompressionException(PgRmanException):
    """
    Base exception for all the errors related to
    the execution of a compression action.
    """

    exit_code = EXIT_SYSTEM


class UnsupportedCompression(CompressionException):
    """
    A compressed payload requires a decompression method which is not
    available in this installation
    """

    exit_code = EXIT_NOT_SUPPORTED


class LockFileException(PgRmanException):
    """
    Base exception for lock related errors
    """

    exit_code = EXIT_SYSTEM


class LockFileBusy(LockFileException):
    """
    Raised when a lock file is not free
    """

    exit_code = EXIT_ALREADY_RUNNING


class LockFilePermissionDenied(LockFileException):
    """
    Raised when a lock file is not accessible
    """


class WALFileException(PgRmanException):
    """
    Base exception for all the errors related to WAL files.
    """

    exit_code = EXIT_CORRUPTED

    def __str__(self):
        """
        Human readable string representation
        """
        return "%s:%s" % (self.__class__.__name__, self.args[0] if self.args else None)


class BadXlogSegmentName(WALFileException):
    """
    Exception for a bad xlog name
    """


class BadHistoryFileContents(WALFileException):
    """
    Exception for a corrupted history file
    """

    def __str__(self):
        return self.args[0] if self.args else ""


class BackupException(PgRmanException):
    """
    Base exception for all the errors related to a backup of the catalog.
    """


class NoUsableBackup(BackupException):
    """
    No full backup of the catalog can be used as the base of a restore
    """

    exit_code = EXIT_NO_BACKUP


class BackupCorrupted(BackupException):
    """
    A backup failed the validation of its file list
    """

    exit_code = EXIT_CORRUPTED


class BackupIncompatible(BackupException):
    """
    The block sizes recorded in a backup don't match the ones this
    installation has been configured with
    """

    exit_code = EXIT_PG_INCOMPATIBLE


class PostgresException(PgRmanException):
    """
    Base exception for all the errors related to PostgreSQL.
    """


class PostgresIsRunning(PostgresException):
    """
    The PostgreSQL server owning the destination directory is running
    """

    exit_code = EXIT_PG_RUNNING


class PostmasterPidBroken(PostgresException):
    """
    The postmaster.pid file has unexpected contents
    """

    exit_code = EXIT_PID_BROKEN


class RecoveryException(PgRmanException):
    """
    Exception for a recovery error
    """


class RestoreInterrupted(RecoveryException):
    """
    The restore has been interrupted by a signal
    """

    exit_code = EXIT_INTERRUPTED
