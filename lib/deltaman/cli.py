#!/usr/bin/env python
#
# Copyright (c) 2024-2025, Ryan Galloway (ryan@rsgalloway.com)
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
#  - Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
#  - Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
#  - Neither the name of the software nor the names of its contributors
#    may be used to endorse or promote products derived from this software
#    without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.
#

__doc__ = """
Command line interface for deltaman: versioned directory distribution.

Usage:

    $ deltaman init DIST_DIR
    $ deltaman commit [--tar-opt=TAR_OPT] DIST_DIR [RSYNC_OPT ...] SOURCE_DIR
    $ deltaman reset [--force] DIST_DIR
    $ deltaman up [--force] [--full] [-n VERSION] DIST_DIR TARGET_DIR
    $ deltaman version [-v] [--check] DIST_DIR

Options unknown to commit are passed to rsync; give values in the
--option=value form. The full image cadence is read from
DELTAMAN_FULL_INTERVAL (default 100).
"""

import argparse
import sys
from typing import List, Optional, Sequence

from deltaman import Distributor
from deltaman.config import Settings
from deltaman.errors import DeltamanError, LockReleaseError
from deltaman.logger import log, setup_logging


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser, one subparser per command."""
    from deltaman import __version__

    parser = argparse.ArgumentParser(
        prog="deltaman",
        description=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="do not show progress bars",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="log debug messages, including external commands",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"deltaman {__version__}",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    p = commands.add_parser("init", help="create an empty distribution")
    p.add_argument("dist_dir", metavar="DIST_DIR")

    p = commands.add_parser("commit", help="commit SOURCE_DIR as the next version")
    p.add_argument(
        "--tar-opt",
        metavar="TAR_OPT",
        action="append",
        default=[],
        help="extra archiver option (repeatable)",
    )
    p.add_argument("dist_dir", metavar="DIST_DIR")
    p.add_argument("source_dir", metavar="SOURCE_DIR")

    p = commands.add_parser("reset", help="rebuild the working image")
    p.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="rebuild even if the distribution is not locked",
    )
    p.add_argument("dist_dir", metavar="DIST_DIR")

    p = commands.add_parser("up", help="update TARGET_DIR from DIST_DIR")
    p.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="restore a target left locked by an interrupted update",
    )
    p.add_argument(
        "--full",
        action="store_true",
        help="do a full restore even if diffs are available",
    )
    p.add_argument(
        "-n",
        "--number",
        metavar="VERSION",
        type=int,
        help="update to VERSION instead of the latest",
    )
    p.add_argument("dist_dir", metavar="DIST_DIR")
    p.add_argument("target_dir", metavar="TARGET_DIR")

    p = commands.add_parser("version", help="show the current version")
    p.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="list every version with its artifacts",
    )
    p.add_argument(
        "--check",
        action="store_true",
        help="verify artifact contiguity and full image cadence",
    )
    p.add_argument("dist_dir", metavar="DIST_DIR")

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parses command line arguments. Unknown options are kept as rsync
    options for commit and rejected for every other command."""
    parser = build_parser()
    args, extra = parser.parse_known_args(list(argv) if argv is not None else None)
    if extra and args.command != "commit":
        parser.error("unrecognized arguments: %s" % " ".join(extra))
    args.rsync_opt = extra
    return args


def cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    Distributor(args.dist_dir, settings).init()
    return 0


def cmd_commit(args: argparse.Namespace, settings: Settings) -> int:
    Distributor(args.dist_dir, settings).commit(
        args.source_dir, rsync_options=args.rsync_opt, tar_options=args.tar_opt
    )
    return 0


def cmd_reset(args: argparse.Namespace, settings: Settings) -> int:
    Distributor(args.dist_dir, settings).reset(force=args.force)
    return 0


def cmd_up(args: argparse.Namespace, settings: Settings) -> int:
    Distributor(args.dist_dir, settings).up(
        args.target_dir, force=args.force, full=args.full, version=args.number
    )
    return 0


def cmd_version(args: argparse.Namespace, settings: Settings) -> int:
    problems = Distributor(args.dist_dir, settings).show(
        verbose=args.verbose, check=args.check
    )
    return 1 if problems else 0


# one handler per command
COMMANDS = {
    "init": cmd_init,
    "commit": cmd_commit,
    "reset": cmd_reset,
    "up": cmd_up,
    "version": cmd_version,
}


def run(args: argparse.Namespace) -> int:
    """Runs a parsed command, mapping errors to exit codes."""
    try:
        settings = Settings.from_env(progress=not args.quiet)
        return COMMANDS[args.command](args, settings)

    except LockReleaseError as err:
        log.critical("FATAL: %s", err)
        return err.exit_code

    except DeltamanError as err:
        log.error("ERROR: %s", err)
        return err.exit_code

    except KeyboardInterrupt:
        log.error("Interrupted.")
        return 130


def main(argv: Optional[List[str]] = None) -> int:
    """Main thread."""
    args = parse_args(argv)

    # set up logging handlers
    setup_logging(command=args.command, verbose=args.debug)

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
