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

"""
Translation of the messages shown to the user
"""

import gettext as gettext_module
import os

DOMAIN = "pgrman"

localedir = os.path.join(os.path.realpath(__file__ + "/../../share"), "locale")

if not os.path.exists(localedir):
    localedir = "/usr/share/locale"

LANGUAGES = [
    # Add languages here
    ("ja", "Japanese"),
]


def _detect_language():
    """
    Return the supported language code matching the environment, or 'en'
    """
    lang = os.environ.get("LANG") or ""
    if lang.endswith(".UTF-8"):
        lang = lang.rsplit(".", 1)[0]
    codes = [code for code, _ in LANGUAGES]
    if lang in codes:
        return lang
    # if ja_JP is not supported, try ja.
    lang = lang.rsplit("_", 1)[0]
    if lang in codes:
        return lang
    return "en"


class Trans:
    """
    The purpose of this class is to store the actual translation function upon
    receiving the first call to that function. After this is done, changes to
    LANG will have no effect to which function is served upon request. If
    your tests rely on changing LANG, you can delete all the functions
    from _trans.__dict__.
    """

    def __getattr__(self, attr):
        translation = gettext_module.translation(
            DOMAIN,
            localedir=localedir,
            languages=[_detect_language()],
            fallback=True,
        )
        setattr(self, attr, getattr(translation, attr))
        return getattr(translation, attr)


_trans = Trans()

# The Trans class is no more needed, so remove it from the namespace.
del Trans


def gettext(message):
    return _trans.gettext(message)


_ = gettext

__all__ = ["gettext", "_"]
