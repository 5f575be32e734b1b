#!/usr/bin/env python
# -*- coding: utf-8 -*-
#
# pgrman - point-in-time restore for PostgreSQL backup catalogs
#
# © Copyright EnterpriseDB UK Limited 2011-2025
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""Point-in-time restore for PostgreSQL backup catalogs

pgrman restores a PostgreSQL data directory and its WAL stream from a
catalog of full, incremental and archive backups. It selects the backups
reachable from the target timeline, verifies that the WAL files needed
by the recovery are available and writes the recovery configuration.

pgrman is distributed under GNU GPL 3.
"""

import sys

from setuptools import find_packages, setup

if sys.version_info < (3, 6):
    raise SystemExit("ERROR: pgrman needs at least python 3.6 to work")

install_requires = [
    "python-dateutil",
]

pgrman = {}
with open("pgrman/version.py", "r", encoding="utf-8") as fversion:
    exec(fversion.read(), pgrman)

setup(
    name="pgrman",
    version=pgrman["__version__"],
    packages=find_packages(exclude=["tests"]),
    entry_points={
        "console_scripts": [
            "pgrman=pgrman.cli:main",
        ],
    },
    license="GPL-3.0",
    description=__doc__.split("\n")[0],
    long_description="\n".join(__doc__.split("\n")[2:]),
    install_requires=install_requires,
    extras_require={
        "argcomplete": ["argcomplete"],
        "test": ["pytest", "mock"],
    },
    platforms=["Linux", "Mac OS X"],
    classifiers=[
        "Environment :: Console",
        "Topic :: System :: Archiving :: Backup",
        "Topic :: Database",
        "Topic :: System :: Recovery Tools",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
    ],
)
