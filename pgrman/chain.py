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
This module selects the backups to be restored to reach a timeline
"""

import collections
import logging

from pgrman import output
from pgrman.exceptions import NoUsableBackup, UnsupportedCompression
from pgrman.infofile import BackupInfo
from pgrman.timeline import satisfies_timeline

_logger = logging.getLogger(__name__)


class BackupChain(
    collections.namedtuple(
        "BackupChain", "base base_index incrementals last_index"
    )
):
    """
    A full backup followed by the incremental backups to apply over it.

    base_index and last_index are positions in the newest first list of
    backups of the catalog: last_index is the one of the most recent
    backup of the chain.
    """

    __slots__ = ()

    @property
    def backups(self):
        """
        The backups of the chain in the order they must be applied
        """
        return [self.base] + list(self.incrementals)

    @property
    def last(self):
        if self.incrementals:
            return self.incrementals[-1]
        return self.base


def find_base_backup(backups, timelines, decompression_supported=True):
    """
    Find the most recent full backup usable to reach the target timeline

    :param list[BackupInfo] backups: the catalog, newest first
    :param list[pgrman.timeline.Timeline] timelines: the target ancestry
    :param bool decompression_supported: whether compressed backups
        can be restored
    :return tuple[int,BackupInfo]|None: the position and the backup, None
        if there is no usable full backup
    :raise UnsupportedCompression: if the selected candidate is
        compressed and this installation can't decompress it
    """
    for index, backup in enumerate(backups):
        if not backup.is_full or backup.status != BackupInfo.OK:
            continue
        if (
            backup.compress_data
            and (backup.has_database or backup.has_arclog)
            and not decompression_supported
        ):
            raise UnsupportedCompression(
                "can't restore backup %s because it is compressed "
                "and this installation has no decompression support"
                % backup.backup_id
            )
        if satisfies_timeline(timelines, backup):
            _logger.debug("base backup: %s", backup.backup_id)
            return index, backup
    return None


def find_incremental_backups(backups, base_index, timelines):
    """
    Find the incremental backups to apply over a full backup.

    The backups taken after the base are examined oldest first.

    :param list[BackupInfo] backups: the catalog, newest first
    :param int base_index: the position of the full backup
    :param list[pgrman.timeline.Timeline] timelines: the target ancestry
    :return list[tuple[int,BackupInfo]]: the positions and the backups,
        oldest first
    """
    base = backups[base_index]
    found = []
    for index in range(base_index - 1, -1, -1):
        backup = backups[index]
        if (
            backup.status == BackupInfo.OK
            and backup.timeline == base.timeline
            and backup.has_database
            and satisfies_timeline(timelines, backup)
        ):
            found.append((index, backup))
    return found


def resolve_backup_chain(backups, timelines, decompression_supported=True):
    """
    Build the chain of backups to restore to reach the target timeline

    :param list[BackupInfo] backups: the catalog, newest first
    :param list[pgrman.timeline.Timeline] timelines: the target ancestry
    :param bool decompression_supported: whether compressed backups
        can be restored
    :rtype: BackupChain
    :raise NoUsableBackup: if there is no usable full backup
    """
    result = find_base_backup(backups, timelines, decompression_supported)
    if result is None:
        raise NoUsableBackup("no full backup found, can't restore.")
    base_index, base = result
    incrementals = find_incremental_backups(backups, base_index, timelines)
    last_index = incrementals[-1][0] if incrementals else base_index
    return BackupChain(
        base=base,
        base_index=base_index,
        incrementals=[backup for _, backup in incrementals],
        last_index=last_index,
    )


def iter_archive_backups(backups, last_index, timelines):
    """
    Yield the backups whose archived WAL files must be restored.

    The timeline of these backups is not compared with the one of the
    base backup, as they can contain WAL files of several timelines.

    Every backup is matched against the timelines list as it is when the
    backup is reached, so timelines pruned by the consumer between two
    steps are taken into account.

    :param list[BackupInfo] backups: the catalog, newest first
    :param int last_index: the position of the last restored backup
    :param list[pgrman.timeline.Timeline] timelines: the target ancestry
    :return Iterator[BackupInfo]: the backups, oldest first
    """
    for index in range(last_index, -1, -1):
        backup = backups[index]
        if (
            backup.status == BackupInfo.OK
            and backup.has_arclog
            and satisfies_timeline(timelines, backup)
        ):
            yield backup


def find_archive_backups(backups, last_index, timelines):
    """
    Find the backups whose archived WAL files must be restored

    :param list[BackupInfo] backups: the catalog, newest first
    :param int last_index: the position of the last restored backup
    :param list[pgrman.timeline.Timeline] timelines: the target ancestry
    :return list[BackupInfo]: the backups, oldest first
    """
    return list(iter_archive_backups(backups, last_index, timelines))


def get_fullbackup_timeline(catalog, backups):
    """
    Return the timeline of the most recent usable full backup.

    Backups which are not validated yet are validated, which updates
    their status.

    :param pgrman.catalog.BackupCatalog catalog: the catalog
    :param list[BackupInfo] backups: the catalog, newest first
    :rtype: int
    :raise NoUsableBackup: if there is no usable full backup
    """
    for backup in backups:
        if not backup.is_full:
            continue
        if backup.status == BackupInfo.DONE:
            output.info("validating backup %s", backup.backup_id)
            catalog.validate_backup(backup, size_only=True)
        if backup.status == BackupInfo.OK:
            return backup.timeline
    raise NoUsableBackup("cannot find the latest full backup")
