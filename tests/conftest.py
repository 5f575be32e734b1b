# -*- coding: utf-8 -*-
# © Copyright EnterpriseDB UK Limited 2013-2025
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

import pytest

from pgrman import output


@pytest.fixture(autouse=True)
def reset_output_state():
    """
    Every test starts with a fresh console writer and no recorded error
    """
    output.set_output_writer(output.DEFAULT_WRITER)
    output.error_occurred = False
    output.error_exit_code = 1
    output.ansi_colors_enabled = False
    yield
    output.set_output_writer(output.DEFAULT_WRITER)
    output.error_occurred = False
    output.error_exit_code = 1
