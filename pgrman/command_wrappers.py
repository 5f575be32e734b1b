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
This module contains a wrapper for shell commands
"""

import logging
import os
import shutil
import signal
import subprocess

from pgrman.exceptions import CommandFailedException
from pgrman.utils import force_str

_logger = logging.getLogger(__name__)


class Command(object):
    """
    Wrapper for a system command
    """

    def __init__(
        self,
        cmd,
        args=None,
        env_append=None,
        path=None,
        shell=False,
        check=False,
        allowed_retval=(0,),
    ):
        """
        If the `args` argument is specified the arguments will be always added
        to the ones eventually passed with the actual invocation.

        If the `env_append` argument is present its content will be appended to
        the environment of every invocation.

        :param str cmd: the command to run
        :param list[str] args: the arguments always passed to the command
        :param dict env_append: environment variables added to the current one
        :param str path: the PATH used to find the command
        :param bool shell: run the command through the shell
        :param bool check: raise if the exit code is not allowed
        :param tuple[int] allowed_retval: the exit codes considered success
        """
        self.cmd = cmd
        self.args = args if args is not None else []
        self.shell = shell
        self.check = check
        self.allowed_retval = allowed_retval
        self.path = path
        self.ret = None
        self.out = None
        self.err = None
        # If env_append has been provided use it or replace with an empty dict
        env_append = env_append or {}
        # If path has been provided, replace it in the environment
        if path:
            env_append["PATH"] = path
        # Find the absolute path to the command to execute
        if not self.shell:
            full_path = shutil.which(self.cmd, path=self.path)
            if not full_path:
                raise CommandFailedException("%s not in PATH" % self.cmd)
            self.cmd = full_path
        if env_append:
            self.env = os.environ.copy()
            self.env.update(env_append)
        else:
            self.env = None

    @staticmethod
    def _restore_sigpipe():
        """restore default signal handler (http://bugs.python.org/issue1652)"""
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)  # pragma: no cover

    def __call__(self, *args, **kwargs):
        """
        Run the command and return the exit code.

        The output and error strings are not returned, but they can be accessed
        as attributes of the Command object, as well as the exit code.

        :rtype: int
        :raise: CommandFailedException
        """
        self.get_output(*args, **kwargs)
        return self.ret

    def get_output(self, *args, **kwargs):
        """
        Run the command and return the output and the error as a tuple.

        If the `check` argument is True, the exit code will be checked
        against the `allowed_retval` list, raising a CommandFailedException if
        not in the list.

        :rtype: tuple[str, str]
        :raise: CommandFailedException
        """
        check = kwargs.pop("check", self.check)
        allowed_retval = kwargs.pop("allowed_retval", self.allowed_retval)
        cmd = [self.cmd] + self.args + list(args)
        if self.shell:
            cmd = " ".join(cmd)
        _logger.debug("Command: %r", cmd)
        try:
            pipe = subprocess.Popen(
                cmd,
                shell=self.shell,
                env=self.env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                preexec_fn=self._restore_sigpipe,
                **kwargs
            )
            out, err = pipe.communicate()
        except OSError as e:
            raise CommandFailedException(
                dict(ret=None, out=None, err="%s: %s" % (self.cmd, e))
            )
        self.ret = pipe.returncode
        self.out = force_str(out)
        self.err = force_str(err)
        _logger.debug("Command return code: %s", self.ret)
        _logger.debug("Command stdout: %s", self.out)
        _logger.debug("Command stderr: %s", self.err)

        # Raise if check and the return code is not in the allowed list
        if check:
            self.check_return_value(allowed_retval)
        return self.out, self.err

    def check_return_value(self, allowed_retval):
        """
        Check the current return code and raise CommandFailedException when
        it's not in the allowed_retval list

        :param list[int] allowed_retval: list of return values considered
            success
        :raises: CommandFailedException
        """
        if self.ret not in allowed_retval:
            raise CommandFailedException(dict(ret=self.ret, out=self.out, err=self.err))
