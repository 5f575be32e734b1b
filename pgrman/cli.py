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
This module implements the interface with the command line and the logger.
"""

import logging
import sys
import threading
from argparse import SUPPRESS, ArgumentParser

import pgrman
import pgrman.config
from pgrman import output
from pgrman.exceptions import EXIT_INTERRUPTED, PgRmanException
from pgrman.i18n import _
from pgrman.recovery_executor import RecoveryExecutor
from pgrman.utils import (
    check_boolean,
    check_tli,
    configure_logging,
    force_str,
    get_log_levels,
    install_interrupt_handler,
)

try:
    import argcomplete
except ImportError:
    argcomplete = None


_logger = logging.getLogger(__name__)

#: The configuration of the running command
__config__ = None

p = ArgumentParser(
    description="pgrman restores PostgreSQL data directories "
    "from a catalog of backups",
)
p.add_argument(
    "-v",
    "--version",
    action="version",
    version="%s %s" % (p.prog, pgrman.__version__),
)
p.add_argument(
    "--config",
    help="uses a configuration file "
    "(defaults: %s)" % ", ".join(pgrman.config.Config.CONFIG_FILES),
    default=SUPPRESS,
)
p.add_argument(
    "--color",
    "--colour",
    help="Whether to use colors in the output",
    choices=["never", "always", "auto"],
    default="auto",
)
p.add_argument(
    "--log-level",
    help="Override the default log level",
    choices=list(get_log_levels()),
    default=SUPPRESS,
)
p.add_argument("-q", "--quiet", help="be quiet", action="store_true")
p.add_argument("-d", "--debug", help="debug output", action="store_true")
p.add_argument(
    "-f",
    "--format",
    help="output format",
    choices=output.AVAILABLE_WRITERS.keys(),
    default=output.DEFAULT_WRITER,
)

subparsers = p.add_subparsers(dest="command")


def argument(*name_or_flags, **kwargs):
    """Convenience function to properly format arguments to pass to the
    command decorator.
    """

    # Remove the completer keyword argument from the dictionary
    completer = kwargs.pop("completer", None)
    return (list(name_or_flags), completer, kwargs)


def command(args=None, parent=subparsers, cmd_aliases=None):
    """Decorator to define a new subcommand in a sanity-preserving way.
    The function will be stored in the ``func`` variable when the parser
    parses arguments so that it can be called directly like so::
        args = cli.parse_args()
        args.func(args)
    """

    if args is None:
        args = []
    if cmd_aliases is None:
        cmd_aliases = []

    def decorator(func):
        parser = parent.add_parser(
            func.__name__.replace("_", "-"),
            description=func.__doc__,
            help=func.__doc__,
            aliases=cmd_aliases,
        )
        parent._choices_actions = sorted(parent._choices_actions, key=lambda x: x.dest)
        for arg in args:
            if arg[1]:
                parser.add_argument(*arg[0], **arg[2]).completer = arg[1]
            else:
                parser.add_argument(*arg[0], **arg[2])
        parser.set_defaults(func=func)
        return func

    return decorator


@command()
def help(args=None):
    """
    show this help message and exit
    """
    p.print_help()


@command(
    [
        argument(
            "-D",
            "--pgdata",
            help="location of the database storage area (env: PGDATA)",
        ),
        argument(
            "-A",
            "--arclog-path",
            dest="arclog_path",
            help="location of the archived WAL storage area (env: ARCLOG_PATH)",
        ),
        argument(
            "-S",
            "--srvlog-path",
            dest="srvlog_path",
            help="location of the server log storage area (env: SRVLOG_PATH)",
        ),
        argument(
            "-B",
            "--backup-path",
            dest="backup_path",
            help="location of the backup catalog (env: BACKUP_PATH)",
        ),
        argument(
            "-c",
            "--check",
            help="show what would have been restored, "
            "without touching the data directory",
            action="store_true",
        ),
        argument(
            "--verbose",
            help="show the progress of every step",
            action="store_true",
        ),
        argument(
            "--recovery-target-time",
            dest="target_time",
            help="time stamp up to which recovery will proceed",
        ),
        argument(
            "--recovery-target-xid",
            dest="target_xid",
            help="transaction ID up to which recovery will proceed",
        ),
        argument(
            "--recovery-target-inclusive",
            dest="target_inclusive",
            help="whether we stop just after the recovery target",
            type=check_boolean,
        ),
        argument(
            "--recovery-target-timeline",
            dest="target_tli",
            help="recovering into a particular timeline",
            type=check_tli,
        ),
    ]
)
def restore(args):
    """
    Restore a data directory from the backup catalog.
    """
    config = __config__
    config.apply_args(args)
    config.normalize_paths()

    interrupted = threading.Event()
    install_interrupt_handler(interrupted)
    executor = RecoveryExecutor(
        config, check=args.check, verbose=args.verbose, interrupted=interrupted
    )
    results = executor.recover(
        target_time=args.target_time,
        target_xid=args.target_xid,
        target_inclusive=args.target_inclusive,
        target_tli=args.target_tli,
    )
    output.result("restore", results)


def global_config(args):
    """
    Set the configuration file
    """
    global __config__
    filename = getattr(args, "config", None)
    config = pgrman.config.Config(filename)
    __config__ = config

    # configure logging
    if hasattr(args, "log_level"):
        config.log_level = pgrman.config.parse_log_level(args.log_level)
    configure_logging(config.log_file, config.log_level, config.log_format)

    # Configure output
    if args.format != output.DEFAULT_WRITER or args.quiet or args.debug:
        output.set_output_writer(args.format, quiet=args.quiet, debug=args.debug)

    # Configure color output
    if args.color == "auto":
        # Enable colored output if both stdout and stderr are TTYs
        output.ansi_colors_enabled = sys.stdout.isatty() and sys.stderr.isatty()
    else:
        output.ansi_colors_enabled = args.color == "always"

    _logger.debug(
        "Initialised pgrman version %s (config: %s, args: %s)",
        pgrman.__version__,
        config.config_file,
        vars(args),
    )


def main():
    """
    The main method of pgrman
    """
    # noinspection PyBroadException
    try:
        if argcomplete:
            argcomplete.autocomplete(p)
        args = p.parse_args()
        global_config(args)
        if args.command is None:
            p.print_help()
        else:
            args.func(args)
    except KeyboardInterrupt:
        msg = _("Process interrupted by user (KeyboardInterrupt)")
        output.error(msg, exit_code=EXIT_INTERRUPTED)
    except PgRmanException as e:
        output.error(_(force_str(e)), exit_code=e.exit_code)
    except Exception as e:
        msg = "%s\nSee log file for more details." % e
        output.exception(msg)

    # cleanup output API and exit honoring output.error_occurred and
    # output.error_exit_code
    output.close_and_exit()


if __name__ == "__main__":
    main()
