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
This module is responsible for all the things related to
pgrman configuration, such as parsing configuration file.
"""

import logging
import os
import re
from configparser import ConfigParser, NoOptionError

from pgrman import output, utils, xlog
from pgrman.exceptions import ConfigurationException

_logger = logging.getLogger(__name__)

#: The section of the configuration files read by pgrman
CONFIG_SECTION = "pgrman"

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s [%(process)s] %(name)s %(levelname)s: %(message)s"

#: Entries of the data directory which are never removed by a restore
DEFAULT_PGDATA_EXCLUDE = ["pg_stat_tmp", "pgsql_tmp"]

DEFAULT_BLOCK_SIZE = 8192
DEFAULT_WAL_BLOCK_SIZE = 8192

#: Environment variables overriding the configuration files
ENVIRONMENT_VARIABLES = {
    "pgdata": "PGDATA",
    "arclog_path": "ARCLOG_PATH",
    "srvlog_path": "SRVLOG_PATH",
    "backup_path": "BACKUP_PATH",
}

CONFIG_FILE_ENV = "PGRMAN_CONFIG_FILE"

_TRUE_RE = re.compile(r"""^(true|t|yes|1|on)$""", re.IGNORECASE)
_FALSE_RE = re.compile(r"""^(false|f|no|0|off)$""", re.IGNORECASE)


def parse_boolean(value):
    """
    Parse a string to a boolean value

    :param str value: string representing a boolean
    :raises ValueError: if the string is an invalid boolean representation
    """
    if _TRUE_RE.match(value):
        return True
    if _FALSE_RE.match(value):
        return False
    raise ValueError(
        "Invalid boolean representation (must be one in: "
        "true|t|yes|1|on | false|f|no|0|off)"
    )


def parse_positive_int(value):
    """
    Parse a string to a positive integer

    :param str value: string representing the integer
    :raises ValueError: if the value is not a positive integer
    """
    int_value = int(value)
    if int_value < 1:
        raise ValueError("'%s' is not a positive integer" % value)
    return int_value


def parse_block_size(value):
    """
    Parse a block size, which must be a power of 2

    :param str value: string representing the size in bytes
    :raises ValueError: if the value is not a valid size
    """
    size = parse_positive_int(value)
    if size & (size - 1):
        raise ValueError("'%s' is not a power of 2" % value)
    return size


def parse_csv(value):
    """
    Parse a comma separated list, ignoring empty items

    :param str value: the list
    :rtype: list[str]
    """
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_log_level(value):
    """
    Parse a log level name or number

    :raises ValueError: if the level is unknown
    """
    level = utils.parse_log_level(value)
    if level is None:
        raise ValueError("unknown log level")
    return level


class ConfigMapping(ConfigParser):
    """Wrapper for :class:`ConfigParser`.

    Extend the facilities provided by a :class:`ConfigParser` object, and
    additionally keep track of the source file for each configuration option.
    """

    def __init__(self, *args, **kwargs):
        self._args = args
        self._kwargs = kwargs
        self._mapping = {}
        super().__init__(*args, **kwargs)

    def read_config(self, filename):
        """
        Read and merge configuration options from *filename*.

        :param filename: path to a configuration file or its file descriptor
            in reading mode.

        :return: a list of file names which were able to be parsed
        """
        filenames = []
        tmp_parser = ConfigParser(*self._args, **self._kwargs)

        # A file descriptor
        if hasattr(filename, "read"):
            tmp_parser.read_file(filename)
            filenames.append(getattr(filename, "name", None))
        # A file path
        else:
            for name in tmp_parser.read(filename):
                filenames.append(name)

        # Merge configuration options from the temporary parser into the global
        # parser, and update the mapping of options
        for section in tmp_parser.sections():
            if not self.has_section(section):
                self.add_section(section)
                self._mapping[section] = {}

            for option, value in tmp_parser[section].items():
                self.set(section, option, value)
                self._mapping[section][option] = filenames[0]

        return filenames

    def get_config_source(self, section, option):
        """Get the source INI file from which a config value comes from.

        :return: the file that provides the effective value for *section* ->
            *option*, or the ``default`` string.
        """
        source = self._mapping.get(section, {}).get(option, None)
        return source or "default"


class Config(object):
    """This class represents the pgrman configuration.

    Default configuration files are ~/.pgrman.conf, /etc/pgrman.conf
    and /etc/pgrman/pgrman.conf. The first one found is read, and none of
    them is required.

    The values are taken, in order of precedence, from the command line,
    the environment, the configuration file and the defaults.
    """

    CONFIG_FILES = [
        "~/.pgrman.conf",
        "/etc/pgrman.conf",
        "/etc/pgrman/pgrman.conf",
    ]

    _QUOTE_RE = re.compile(r"""^(["'])(.*)\1$""")

    KEYS = [
        "backup_path",
        "pgdata",
        "arclog_path",
        "srvlog_path",
        "log_file",
        "log_level",
        "log_format",
        "pgdata_exclude",
        "block_size",
        "wal_block_size",
        "xlog_segment_size",
    ]

    PARSERS = {
        "log_level": parse_log_level,
        "pgdata_exclude": parse_csv,
        "block_size": parse_block_size,
        "wal_block_size": parse_block_size,
        "xlog_segment_size": parse_block_size,
    }

    def __init__(self, filename=None, environ=None):
        """
        :param str|file|None filename: the configuration file to read,
            otherwise the one named by PGRMAN_CONFIG_FILE or found in
            the default locations
        :param dict|None environ: the environment, os.environ by default
        :raise ConfigurationException: if the requested configuration file
            doesn't exist
        """
        if environ is None:
            environ = os.environ
        self._config = ConfigMapping(strict=False)
        if not filename:
            filename = environ.get(CONFIG_FILE_ENV)
        if filename:
            # If it is a file descriptor
            if hasattr(filename, "read"):
                self._config.read_config(filename)
            # If it is a path
            else:
                filename = os.path.expanduser(filename)
                # check for the existence of the user defined file
                if not os.path.exists(filename):
                    raise ConfigurationException(
                        "Configuration file '%s' does not exist" % filename
                    )
                self._config.read_config(filename)
        else:
            # Check for the presence of configuration files
            # inside default directories
            for path in self.CONFIG_FILES:
                full_path = os.path.expanduser(path)
                if os.path.exists(full_path) and full_path in self._config.read_config(
                    full_path
                ):
                    filename = full_path
                    break
        self.config_file = filename

        self.backup_path = None
        self.pgdata = None
        self.arclog_path = None
        self.srvlog_path = None
        self.log_file = None
        self.log_level = DEFAULT_LOG_LEVEL
        self.log_format = DEFAULT_LOG_FORMAT
        self.pgdata_exclude = list(DEFAULT_PGDATA_EXCLUDE)
        self.block_size = DEFAULT_BLOCK_SIZE
        self.wal_block_size = DEFAULT_WAL_BLOCK_SIZE
        self.xlog_segment_size = xlog.DEFAULT_XLOG_SEG_SIZE

        self._parse_config()
        self._apply_environment(environ)

    def get(self, section, option, defaults=None, none_value=None):
        """Method to get the value from a given section from
        pgrman configuration
        """
        if not self._config.has_section(section):
            return None
        try:
            value = self._config.get(section, option, raw=False, vars=defaults)
            if value == "None":
                value = none_value
            if value is not None:
                value = self._QUOTE_RE.sub(lambda m: m.group(2), value)
            return value
        except NoOptionError:
            return None

    def get_config_source(self, option):
        return self._config.get_config_source(CONFIG_SECTION, option)

    def invoke_parser(self, key, source, value, new_value):
        """
        Function used for parsing configuration values.
        If needed, it uses special parsers from the PARSERS map,
        and handles parsing exceptions.

        :param str key: the name of the configuration option
        :param str source: the file that contains the configuration option
        :param value: the old value of the option
        :param str new_value: the new value that needs to be parsed
        :return: the parsed value of a configuration option
        """
        # If the new value is None, returns the old value
        if new_value is None:
            return value
        # If we have a parser for the current key, use it to obtain the
        # actual value. If an exception is thrown, print a warning and
        # ignore the value.
        if key in self.PARSERS:
            parser = self.PARSERS[key]
            try:
                value = parser(new_value)
            except Exception as e:
                output.warning(
                    "Ignoring invalid configuration value '%s' for key %s in %s: %s",
                    new_value,
                    key,
                    source,
                    e,
                )
        else:
            value = new_value
        return value

    def _parse_config(self):
        """
        This method parses the [pgrman] section
        """
        for key in self.KEYS:
            new_value = self.get(CONFIG_SECTION, key)
            source = self.get_config_source(key)
            setattr(
                self, key, self.invoke_parser(key, source, getattr(self, key), new_value)
            )

    def _apply_environment(self, environ):
        for key, variable in ENVIRONMENT_VARIABLES.items():
            value = environ.get(variable)
            if value:
                _logger.debug("%s set from environment variable %s", key, variable)
                setattr(self, key, value)

    def apply_args(self, args):
        """
        Override the configuration with the options given on the
        command line

        :param argparse.Namespace args: the parsed command line
        """
        for key in ENVIRONMENT_VARIABLES:
            value = getattr(args, key, None)
            if value:
                setattr(self, key, value)
        log_level = getattr(args, "log_level", None)
        if log_level:
            self.log_level = self.invoke_parser(
                "log_level", "command line", self.log_level, log_level
            )

    def normalize_paths(self):
        """
        Make every configured path absolute
        """
        for key in ENVIRONMENT_VARIABLES:
            value = getattr(self, key)
            if value:
                setattr(self, key, os.path.abspath(os.path.expanduser(value)))

    def to_json(self):
        return dict((key, getattr(self, key)) for key in self.KEYS)
