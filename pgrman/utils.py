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
This module contains utility functions used in pgrman.
"""

import datetime
import errno
import json
import logging
import logging.handlers
import os
import signal
from argparse import ArgumentTypeError
from contextlib import contextmanager

from pgrman.exceptions import FsOperationFailed

_logger = logging.getLogger(__name__)


def mkpath(directory):
    """
    Recursively create a target directory.

    If the path already exists it does nothing.

    :param str directory: directory to be created
    """
    if not os.path.isdir(directory):
        os.makedirs(directory)


def configure_logging(
    log_file,
    log_level=logging.INFO,
    log_format="%(asctime)s %(name)s %(levelname)s: %(message)s",
):
    """
    Configure the logging module

    :param str,None log_file: target file path. If None use standard error.
    :param int log_level: min log level to be reported in log file.
        Default to INFO
    :param str log_format: format string used for a log line.
        Default to "%(asctime)s %(name)s %(levelname)s: %(message)s"
    """
    warn = None
    handler = logging.StreamHandler()
    if log_file:
        log_file = os.path.abspath(log_file)
        log_dir = os.path.dirname(log_file)
        try:
            mkpath(log_dir)
            handler = logging.handlers.WatchedFileHandler(log_file, encoding="utf-8")
        except (OSError, IOError):
            # fallback to standard error
            warn = (
                "Failed opening the requested log file. "
                "Using standard error instead."
            )
    formatter = logging.Formatter(log_format)
    handler.setFormatter(formatter)
    logging.root.addHandler(handler)
    if warn:
        # this will be always displayed because the default level is WARNING
        _logger.warning(warn)
    logging.root.setLevel(log_level)


def parse_log_level(log_level):
    """
    Convert a log level to its int representation as required by
    logging module.

    :param log_level: An integer or a string
    :return: an integer or None if an invalid argument is provided
    """
    try:
        log_level_int = int(log_level)
    except ValueError:
        log_level_int = logging.getLevelName(str(log_level).upper())
    if isinstance(log_level_int, int):
        return log_level_int
    return None


# noinspection PyProtectedMember
def get_log_levels():
    """
    Return a list of available log level names
    """
    level_to_name = logging._levelToName
    for level in sorted(level_to_name):
        yield level_to_name[level]


def fsync_dir(dir_path):
    """
    Execute fsync on a directory ensuring it is synced to disk

    :param str dir_path: The directory to sync
    :raise OSError: If fail opening the directory
    """
    dir_fd = os.open(dir_path, os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    except OSError as e:
        # On some filesystem doing a fsync on a directory
        # raises an EINVAL error. Ignoring it is usually safe.
        if e.errno != errno.EINVAL:
            raise
    finally:
        os.close(dir_fd)


def force_str(obj, encoding="utf-8", errors="replace"):
    """
    Force any object to an unicode string.

    Code inspired by Django's force_text function
    """
    # Handle the common case first for performance reasons.
    if isinstance(obj, str):
        return obj
    try:
        if isinstance(obj, bytes):
            obj = str(obj, encoding, errors)
        else:
            obj = str(obj)
    except (UnicodeDecodeError, TypeError):
        # As last resort, use a repr call to avoid any exception
        obj = repr(obj)
    return obj


def check_positive(value):
    """
    Check for a positive integer option

    :param value: str containing the value to check
    """
    if value is None:
        return None
    try:
        int_value = int(value)
    except Exception:
        raise ArgumentTypeError("'%s' is not a valid input" % value)
    if int_value < 1:
        raise ArgumentTypeError("'%s' is not a valid positive integer" % value)
    return int_value


def check_tli(value):
    """
    Check for a timeline ID, accepting decimal or hexadecimal (0x) notation

    :param value: str containing the value to check
    """
    if value is None:
        return None
    try:
        return check_positive(int(value, 0))
    except ValueError:
        raise ArgumentTypeError("'%s' is not a valid timeline" % value)


def check_boolean(value):
    """
    Check a boolean option, returning its canonical representation

    :param value: str containing the value to check
    """
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "t", "yes", "on", "1"):
        return "true"
    if lowered in ("false", "f", "no", "off", "0"):
        return "false"
    raise ArgumentTypeError("'%s' is not a valid boolean" % value)


@contextmanager
def working_directory(path):
    """
    Temporarily switch the current working directory to the given path.

    The original working directory is restored on exit, whatever happened
    inside the block.

    :param str path: the directory to switch to
    """
    try:
        previous = os.getcwd()
    except OSError as e:
        raise FsOperationFailed("can't get current working directory: %s" % e)
    try:
        os.chdir(path)
    except OSError as e:
        raise FsOperationFailed("can't change directory to '%s': %s" % (path, e))
    try:
        yield path
    finally:
        try:
            os.chdir(previous)
        except OSError as e:
            raise FsOperationFailed(
                "can't change directory to '%s': %s" % (previous, e)
            )


def install_interrupt_handler(interrupted, signals=(signal.SIGINT, signal.SIGTERM)):
    """
    Install signal handlers which set the provided event.

    The running restore polls the event and stops at the next file.

    :param threading.Event interrupted: the flag to set
    :param tuple signals: the signals to handle
    :return dict: the previously installed handlers, by signal number
    """
    previous = {}

    def _handler(signum, frame):
        _logger.debug("Received signal %s, interrupting", signum)
        interrupted.set()

    for signum in signals:
        previous[signum] = signal.signal(signum, _handler)
    return previous


class PgRmanEncoder(json.JSONEncoder):
    """
    Custom JSON encoder used for the results of the commands

    This encoder supports the following types:

    * dates and timestamps, using their ISO representation.
    * objects that implement the 'to_json' method.
    * binary strings (python 3)
    """

    method_list = [
        "_to_json",
        "_datetime_to_str",
        "binary_to_str",
    ]

    def default(self, obj):
        # Go through all methods until one returns something
        for method in self.method_list:
            res = getattr(self, method)(obj)
            if res is not None:
                return res

        # Let the base class default method raise the TypeError
        return super(PgRmanEncoder, self).default(obj)

    @staticmethod
    def _to_json(obj):
        """
        # If the object implements to_json() method use it
        :param obj:
        :return: None|str
        """
        if hasattr(obj, "to_json"):
            return obj.to_json()

    @staticmethod
    def _datetime_to_str(obj):
        """
        Serialise date and datetime objects using isoformat()
        :param obj:
        :return: None|str
        """
        if isinstance(obj, (datetime.date, datetime.datetime)):
            return obj.isoformat()

    @staticmethod
    def binary_to_str(obj):
        """
        Binary strings must be decoded before using them in an unicode string
        :param obj:
        :return: None|str
        """
        if hasattr(obj, "decode") and callable(obj.decode):
            return obj.decode("utf-8", "replace")
