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
This module contains the local file system primitives used by the restore
"""

import errno
import logging
import os
import shutil

from pgrman.exceptions import FsOperationFailed
from pgrman.utils import mkpath

_logger = logging.getLogger(__name__)


def is_excluded(relative_path, exclude):
    """
    Check whether a path has to be skipped while listing a directory.

    A rule containing a slash matches the whole relative path, any other
    rule matches the name of the entry wherever it appears.

    :param str relative_path: the path relative to the listed directory
    :param iterable[str] exclude: the exclusion rules
    :rtype: bool
    """
    name = os.path.basename(relative_path)
    for rule in exclude or ():
        rule = rule.strip("/")
        if not rule:
            continue
        if "/" in rule:
            if relative_path == rule:
                return True
        elif name == rule:
            return True
    return False


def list_dir(root, exclude=None, follow_symlinks=False):
    """
    Recursively list a directory.

    Excluded entries are skipped together with their whole content.
    Symbolic links to directories are listed, and their content too when
    follow_symlinks is True.

    :param str root: the directory to list
    :param iterable[str] exclude: the exclusion rules, see is_excluded
    :param bool follow_symlinks: descend into linked directories
    :return list[str]: the relative paths of the entries, sorted
    :raise FsOperationFailed: if the directory can't be read
    """
    entries = []

    def _onerror(e):
        raise FsOperationFailed("could not read directory '%s': %s" % (e.filename, e))

    for dirpath, dirnames, filenames in os.walk(
        root, onerror=_onerror, followlinks=follow_symlinks
    ):
        relative_dir = os.path.relpath(dirpath, root)
        if relative_dir == ".":
            relative_dir = ""
        kept = []
        for dirname in dirnames:
            relative = os.path.join(relative_dir, dirname)
            if is_excluded(relative, exclude):
                continue
            entries.append(relative)
            # os.walk reports symlinks to directories as directories
            if follow_symlinks or not os.path.islink(os.path.join(dirpath, dirname)):
                kept.append(dirname)
        dirnames[:] = kept
        for filename in filenames:
            relative = os.path.join(relative_dir, filename)
            if not is_excluded(relative, exclude):
                entries.append(relative)
    entries.sort()
    return entries


def delete(path):
    """
    Delete a file, a symbolic link or an empty directory.

    A missing path is not an error.

    :param str path: the path to delete
    :return bool: True if something has been deleted
    :raise FsOperationFailed: if the deletion fails
    """
    try:
        if os.path.isdir(path) and not os.path.islink(path):
            os.rmdir(path)
        else:
            os.unlink(path)
    except OSError as e:
        if e.errno == errno.ENOENT:
            return False
        raise FsOperationFailed("could not remove '%s': %s" % (path, e.strerror))
    _logger.debug("Deleted %s", path)
    return True


def delete_contents(root):
    """
    Delete everything contained in a directory, leaves first.

    The directory itself is kept.

    :param str root: the directory to empty
    """
    if not os.path.isdir(root):
        return
    for relative in reversed(list_dir(root)):
        delete(os.path.join(root, relative))


def copy_file(src, dst):
    """
    Copy a regular file, preserving its permissions and modification time.

    Missing parent directories of the destination are created.

    :param str src: the source file
    :param str dst: the destination file
    :raise FsOperationFailed: if the copy fails
    """
    try:
        mkpath(os.path.dirname(dst))
        if os.path.lexists(dst) and not os.path.isdir(dst):
            os.unlink(dst)
        shutil.copy2(src, dst)
    except (OSError, IOError) as e:
        raise FsOperationFailed("could not copy '%s' to '%s': %s" % (src, dst, e))


def create_symlink(src, dst):
    """
    Make dst a symbolic link to src, replacing any file already there

    :param str src: the target of the link
    :param str dst: the path of the link
    :raise FsOperationFailed: if the link can't be created
    """
    delete(dst)
    try:
        os.symlink(src, dst)
    except OSError as e:
        raise FsOperationFailed(
            "could not create symbolic link '%s': %s" % (dst, e.strerror)
        )


def copy_tree(src_root, dst_root, exclude=None):
    """
    Copy the content of a directory into another one.

    Symbolic links are copied as links.

    :param str src_root: the source directory
    :param str dst_root: the destination directory, created if missing
    :param iterable[str] exclude: the exclusion rules, see is_excluded
    :return int: the number of copied files
    """
    try:
        mkpath(dst_root)
    except OSError as e:
        raise FsOperationFailed("could not create directory '%s': %s" % (dst_root, e))
    copied = 0
    for relative in list_dir(src_root, exclude):
        src = os.path.join(src_root, relative)
        dst = os.path.join(dst_root, relative)
        if os.path.islink(src):
            create_symlink(os.readlink(src), dst)
        elif os.path.isdir(src):
            try:
                mkpath(dst)
            except OSError as e:
                raise FsOperationFailed(
                    "could not create directory '%s': %s" % (dst, e)
                )
        else:
            copy_file(src, dst)
            copied += 1
    return copied
