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

import datetime
import inspect
import logging
import os

import dateutil.parser
import dateutil.tz

from pgrman import xlog
from pgrman.utils import fsync_dir

_logger = logging.getLogger(__name__)

#: Backup modes, in increasing order of content
BACKUP_MODE_INVALID = 0
BACKUP_MODE_ARCHIVE = 1
BACKUP_MODE_INCREMENTAL = 2
BACKUP_MODE_FULL = 3

BACKUP_MODE_NAMES = {
    BACKUP_MODE_INVALID: "INVALID",
    BACKUP_MODE_ARCHIVE: "ARCHIVE",
    BACKUP_MODE_INCREMENTAL: "INCREMENTAL",
    BACKUP_MODE_FULL: "FULL",
}

#: The write size of a file that has not been captured by a backup
BYTES_INVALID = -1

#: Format of the timestamps stored in metadata files
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

#: Format of the ID of a backup, which is also its relative directory
BACKUP_ID_FORMAT = "%Y%m%d/%H%M%S"


def load_datetime_tz(time_str):
    """
    Load datetime and ensure the result is timezone-aware.

    If the parsed timestamp is naive, transform it into a timezone-aware one
    using the local timezone.

    :param str time_str: string representing a timestamp
    :return datetime: the parsed timezone-aware datetime
    """
    # dateutil parser returns naive or tz-aware string depending on the format
    # of the input string
    timestamp = dateutil.parser.parse(time_str.strip("'"))
    # if the parsed timestamp is naive, forces it to local timezone
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=dateutil.tz.tzlocal())
    return timestamp


def dump_datetime(timestamp):
    """
    Dump a timestamp using the format of the metadata files

    :param datetime.datetime|None timestamp: the timestamp to dump
    :return str|None: the dumped string
    """
    if timestamp is None:
        return None
    return "'%s'" % timestamp.strftime(TIMESTAMP_FORMAT)


def load_backup_mode(string):
    """
    Load a backup mode from its name, unknown names being INVALID

    :param str string: the name of the mode
    :rtype: int
    """
    for mode, name in BACKUP_MODE_NAMES.items():
        if name == string.upper():
            return mode
    return BACKUP_MODE_INVALID


def dump_backup_mode(mode):
    return BACKUP_MODE_NAMES.get(mode, BACKUP_MODE_NAMES[BACKUP_MODE_INVALID])


def load_lsn(string):
    return xlog.parse_lsn(string)


def dump_lsn(lsn):
    if lsn is None:
        return None
    return xlog.format_lsn(lsn)


def load_boolean(string):
    return string.strip().lower() in ("true", "t", "yes", "on", "1")


def dump_boolean(value):
    return "true" if value else "false"


class Field(object):
    def __init__(self, name, dump=None, load=None, default=None, doc=None):
        """
        Field descriptor to be used with a FieldListFile subclass.

        The resulting field is like a normal attribute with
        two optional associated function: to_str and from_str

        :param str name: the name of this attribute
        :param callable dump: function used to dump the content to a disk
        :param callable load: function used to reload the content from disk
        :param default: default value for the field
        :param str doc: docstring of the filed
        """
        self.name = name
        self.to_str = dump
        self.from_str = load
        self.default = default
        self.__doc__ = doc

    # noinspection PyUnusedLocal
    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        if not hasattr(obj, "_fields"):
            obj._fields = {}
        return obj._fields.setdefault(self.name, self.default)

    def __set__(self, obj, value):
        if not hasattr(obj, "_fields"):
            obj._fields = {}
        obj._fields[self.name] = value

    def __delete__(self, obj):
        raise AttributeError("can't delete attribute")


class FieldListFile(object):
    __slots__ = ("_fields", "filename")

    def __init__(self, **kwargs):
        """
        Represent a predefined set of keys with the associated value.

        The constructor build the object assigning every keyword argument to
        the corresponding attribute. If a provided keyword argument doesn't
        has a corresponding attribute an AttributeError exception is raised.

        This class is meant to be an abstract base class.

        :raises: AttributeError
        """
        self._fields = {}
        self.filename = None
        for name in kwargs:
            field = getattr(type(self), name, None)
            if isinstance(field, Field):
                setattr(self, name, kwargs[name])
            else:
                raise AttributeError("unknown attribute %s" % name)

    @classmethod
    def from_meta_file(cls, filename):
        """
        Factory method that read the specified file and build
        an object with its content.

        :param str filename: the file to read
        """
        o = cls()
        o.load(filename)
        return o

    def save(self, filename=None, file_object=None):
        """
        Serialize the object to the specified file or file object

        If a file_object is specified it will be used.

        If the filename is not specified it uses the one memorized in the
        filename attribute. If neither the filename attribute and parameter are
        set a ValueError exception is raised.

        :param str filename: path of the file to write
        :param file file_object: a file like object to write in
        :raises: ValueError
        """
        if file_object:
            info = file_object
        else:
            filename = filename or self.filename
            if filename:
                info = open(filename + ".tmp", "wb")
            else:
                info = None

        if not info:
            raise ValueError(
                "either a valid filename or a file_object must be specified"
            )

        try:
            for name, value in self.items():
                if value is None:
                    continue
                info.write(("%s=%s\n" % (name, value)).encode("UTF-8"))
        finally:
            if not file_object:
                info.close()

        if not file_object:
            os.rename(filename + ".tmp", filename)
            fsync_dir(os.path.normpath(os.path.dirname(filename)))
            self.filename = filename

    def load(self, filename=None, file_object=None):
        """
        Replaces the current object content with the one deserialized from
        the provided file.

        This method set the filename attribute.

        A ValueError exception is raised if the provided file contains any
        invalid line.

        :param str filename: path of the file to read
        :param file file_object: a file like object to read from
        :raises: ValueError
        """

        if file_object:
            info = file_object
        elif filename:
            info = open(filename, "rb")
        else:
            raise ValueError("either filename or file_object must be specified")

        # detect the filename if a file_object is passed
        if not filename and file_object:
            if hasattr(file_object, "name"):
                filename = file_object.name

        # canonicalize filename
        if filename:
            self.filename = os.path.abspath(filename)
        else:
            self.filename = None
            filename = "<UNKNOWN>"  # This is only for error reporting

        with info:
            for line in info:
                line = line.decode("UTF-8")
                # skip spaces and comments
                if line.isspace() or line.rstrip().startswith("#"):
                    continue

                # parse the line of form "key = value"
                try:
                    name, value = [x.strip() for x in line.split("=", 1)]
                except ValueError:
                    raise ValueError(
                        "invalid line %s in file %s" % (line.strip(), filename)
                    )

                name = name.lower()
                field = getattr(type(self), name, None)
                if not isinstance(field, Field):
                    _logger.debug("ignoring unknown key %s in file %s", name, filename)
                    continue
                if value == "None":
                    value = None
                elif callable(field.from_str):
                    value = field.from_str(value)
                setattr(self, name, value)

    def items(self):
        """
        Return a generator returning a list of (key, value) pairs.

        If a filed has a dump function defined, it will be used.
        """
        for name, field in sorted(inspect.getmembers(type(self))):
            if isinstance(field, Field):
                value = getattr(self, name, None)
                if value is not None and callable(field.to_str):
                    value = field.to_str(value)
                yield (name, value)

    def __repr__(self):
        return "%s(%s)" % (
            self.__class__.__name__,
            ", ".join(["%s=%r" % x for x in self.items()]),
        )


class BackupInfo(FieldListFile):
    #: Status of a backup
    OK = "OK"
    RUNNING = "RUNNING"
    ERROR = "ERROR"
    DELETING = "DELETING"
    DELETED = "DELETED"
    DONE = "DONE"
    CORRUPT = "CORRUPT"
    STATUS_ALL = (OK, RUNNING, ERROR, DELETING, DELETED, DONE, CORRUPT)

    backup_mode = Field(
        "backup_mode",
        load=load_backup_mode,
        dump=dump_backup_mode,
        default=BACKUP_MODE_INVALID,
    )
    with_serverlog = Field(
        "with_serverlog", load=load_boolean, dump=dump_boolean, default=False
    )
    compress_data = Field(
        "compress_data", load=load_boolean, dump=dump_boolean, default=False
    )
    timeline = Field("timeline", load=int, default=0)
    start_lsn = Field("start_lsn", load=load_lsn, dump=dump_lsn, default=0)
    stop_lsn = Field("stop_lsn", load=load_lsn, dump=dump_lsn, default=0)
    start_time = Field("start_time", load=load_datetime_tz, dump=dump_datetime)
    end_time = Field("end_time", load=load_datetime_tz, dump=dump_datetime)
    recovery_xid = Field("recovery_xid", load=int)
    recovery_time = Field("recovery_time", load=load_datetime_tz, dump=dump_datetime)
    total_data_bytes = Field("total_data_bytes", load=int)
    read_data_bytes = Field("read_data_bytes", load=int)
    read_arclog_bytes = Field("read_arclog_bytes", load=int)
    read_srvlog_bytes = Field("read_srvlog_bytes", load=int)
    write_bytes = Field("write_bytes", load=int)
    block_size = Field("block_size", load=int, default=8192)
    wal_block_size = Field("wal_block_size", load=int, default=8192)
    status = Field("status", default=OK)

    __slots__ = ("backup_path",)

    def __init__(self, backup_path=None, **kwargs):
        """
        Stores meta information about a single backup

        :param str,None backup_path: the root directory of the catalog
            containing the backup
        """
        self.backup_path = backup_path
        super(BackupInfo, self).__init__(**kwargs)

    @classmethod
    def from_meta_file(cls, filename, backup_path=None):
        o = cls(backup_path=backup_path)
        o.load(filename)
        return o

    @property
    def backup_id(self):
        """
        The ID of the backup, derived from its start time
        """
        if self.start_time is None:
            return None
        return self.start_time.strftime(BACKUP_ID_FORMAT)

    @property
    def has_database(self):
        return self.backup_mode >= BACKUP_MODE_INCREMENTAL

    @property
    def has_arclog(self):
        return self.backup_mode >= BACKUP_MODE_ARCHIVE

    @property
    def is_full(self):
        return self.backup_mode >= BACKUP_MODE_FULL

    def get_basebackup_directory(self):
        """
        Get the directory of the backup inside the catalog
        """
        if self.backup_path is None or self.backup_id is None:
            raise ValueError("backup directory unknown for %r" % self)
        return os.path.join(self.backup_path, *self.backup_id.split("/"))

    def get_path(self, *subdirs):
        """
        Build a path relative to the directory of the backup
        """
        return os.path.join(self.get_basebackup_directory(), *subdirs)

    def get_filename(self):
        return self.get_path("backup.ini")

    def save(self, filename=None, file_object=None):
        if not filename and not file_object and not self.filename:
            self.filename = self.get_filename()
        super(BackupInfo, self).save(filename=filename, file_object=file_object)

    def to_dict(self):
        """
        Return the backup_info content as a simple dictionary

        :return dict:
        """
        result = dict(self.items())
        result["backup_id"] = self.backup_id
        return result

    def to_json(self):
        """
        Return an equivalent dictionary that uses only json-supported types
        """
        data = self.to_dict()
        for name in ("start_time", "end_time", "recovery_time"):
            timestamp = getattr(self, name)
            if timestamp is not None:
                data[name] = timestamp.isoformat()
        return data


class FileInfo(object):
    """
    An entry of the list of files contained in a backup
    """

    #: Types of entries
    REGULAR = "f"
    DIRECTORY = "d"
    SYMLINK = "l"

    __slots__ = ("path", "type", "write_size", "crc", "mode", "mtime")

    def __init__(
        self,
        path,
        file_type=REGULAR,
        write_size=BYTES_INVALID,
        crc=0,
        mode=0o600,
        mtime=None,
    ):
        """
        :param str path: the path of the file, relative to the root
            of the backed up directory
        :param str file_type: one of REGULAR, DIRECTORY or SYMLINK
        :param int write_size: the number of bytes stored in the backup,
            BYTES_INVALID if the file was not captured by the backup
        :param int crc: the CRC of the stored content
        :param int mode: the permission bits of the file
        :param datetime.datetime,None mtime: the modification time
        """
        self.path = path
        self.type = file_type
        self.write_size = write_size
        self.crc = crc
        self.mode = mode
        self.mtime = mtime

    @property
    def is_dir(self):
        return self.type == self.DIRECTORY

    @property
    def is_captured(self):
        return self.write_size != BYTES_INVALID

    def to_line(self):
        """
        Format the entry as a line of a file list
        """
        mtime = self.mtime or datetime.datetime.fromtimestamp(0)
        return "%s %s %d %d %o %s" % (
            self.path,
            self.type,
            self.write_size,
            self.crc,
            self.mode,
            mtime.strftime(TIMESTAMP_FORMAT),
        )

    @classmethod
    def from_line(cls, line):
        """
        Parse a line of a file list.

        The path is the only field that can contain spaces, so the line
        is split from the right.

        :param str line: the line to parse
        :rtype: FileInfo
        :raise ValueError: if the line is not valid
        """
        try:
            path, file_type, size, crc, mode, date, time = line.rstrip("\n").rsplit(
                " ", 6
            )
            return cls(
                path,
                file_type,
                int(size),
                int(crc),
                int(mode, 8),
                datetime.datetime.strptime(
                    "%s %s" % (date, time), TIMESTAMP_FORMAT
                ),
            )
        except ValueError:
            raise ValueError("invalid file list line: %s" % line.strip())

    def __eq__(self, other):
        if not isinstance(other, FileInfo):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in self.__slots__)

    def __repr__(self):
        return "FileInfo(%r, %r, %r)" % (self.path, self.type, self.write_size)


def read_file_list(filename):
    """
    Read a file list, sorted by path

    :param str filename: the file list to read
    :rtype: list[FileInfo]
    """
    files = []
    with open(filename) as file_list:
        for line in file_list:
            if line.isspace() or line.startswith("#"):
                continue
            files.append(FileInfo.from_line(line))
    files.sort(key=lambda f: f.path)
    return files


def write_file_list(filename, files):
    """
    Write a file list, atomically replacing the existing one

    :param str filename: the file list to write
    :param iterable[FileInfo] files: the entries
    """
    with open(filename + ".tmp", "w") as file_list:
        for file_info in files:
            file_list.write(file_info.to_line() + "\n")
    os.rename(filename + ".tmp", filename)
    fsync_dir(os.path.normpath(os.path.dirname(filename)))
