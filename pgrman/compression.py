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
This module is responsible to manage the decompression of the files
stored compressed in the backups
"""

import gzip
import logging
import shutil
from abc import ABCMeta, abstractmethod
from contextlib import closing

from pgrman.exceptions import CompressionException, UnsupportedCompression
from pgrman.utils import force_str

_logger = logging.getLogger(__name__)


def _try_import_zlib():
    try:
        import zlib
    except ImportError:
        raise UnsupportedCompression("Missing required python module: zlib")
    return zlib


def decompression_supported():
    """
    Whether this installation is able to decompress the backups stored
    with compress_data enabled

    :rtype: bool
    """
    try:
        _try_import_zlib()
    except UnsupportedCompression as e:
        _logger.debug("Decompression not supported: %s", e)
        return False
    return True


class Compressor(metaclass=ABCMeta):
    """
    Base class for all the compressors
    """

    def __init__(self, compression):
        """
        :param compression: str compression name
        """
        self.compression = compression

    @abstractmethod
    def decompress(self, src, dst):
        """
        Abstract method for decompression method

        :param str src: source file path
        :param str dst: destination file path
        """


class InternalCompressor(Compressor):
    """
    Base class for compressors built on python libraries
    """

    def decompress(self, src, dst):
        """
        Decompress using the object defined in the subclass

        :param src: source file to decompress
        :param dst: destination of the decompression
        """
        try:
            with closing(self._decompressor(src)) as istream:
                with open(dst, "wb") as ostream:
                    shutil.copyfileobj(istream, ostream)
        except Exception as e:
            # you won't get more information from the compressors anyway
            raise CompressionException(
                "could not decompress %s into %s: %s" % (src, dst, force_str(e))
            )
        return 0

    @abstractmethod
    def _decompressor(self, src):
        """
        Abstract decompressor factory method

        :param src: source file path
        :return: a file-like readable decompressor object
        """


class PyGZipCompressor(InternalCompressor):
    """
    Predefined compressor that uses GZip Python libraries
    """

    def __init__(self, compression="gzip"):
        super(PyGZipCompressor, self).__init__(compression)

    def _decompressor(self, name):
        _try_import_zlib()
        return gzip.GzipFile(name, mode="rb")


#: This dictionary acts as a registry of available compressors
compression_registry = {
    "gzip": PyGZipCompressor,
}

#: The compression used for the backups with compress_data enabled
DEFAULT_COMPRESSION = "gzip"


def get_compressor(compression=DEFAULT_COMPRESSION):
    """
    Instantiate the compressor for the given compression name

    :param str compression: the name of the compression
    :rtype: Compressor
    :raise UnsupportedCompression: if no compressor is registered
        for the compression
    """
    try:
        return compression_registry[compression](compression)
    except KeyError:
        raise UnsupportedCompression("Unknown compression '%s'" % compression)
