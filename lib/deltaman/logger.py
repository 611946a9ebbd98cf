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
Contains logging functions and classes.
"""

import getpass
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from deltaman import config

log = logging.Logger(config.LOG_NAME)

# fix for ValueErrors raised by python's logging module
LOG_LEVEL_MAP = {
    0: "NOTSET",
    10: "DEBUG",
    20: "INFO",
    30: "WARNING",
    40: "ERROR",
    50: "CRITICAL",
}
VALID_LOG_LEVELS = LOG_LEVEL_MAP.values()


def normalize_level(level: Union[int, str, None]) -> str:
    """Converts a numeric or named log level to a valid level name, falling
    back to the default level.

    :param level: log level as int, digit string or name.
    :return: log level name.
    """
    if isinstance(level, int):
        return LOG_LEVEL_MAP.get(level, config.LOG_LEVEL_DEFAULT)
    if isinstance(level, str) and level.isdigit():
        return LOG_LEVEL_MAP.get(int(level), config.LOG_LEVEL_DEFAULT)
    if isinstance(level, str) and level.upper() in VALID_LOG_LEVELS:
        return level.upper()
    return config.LOG_LEVEL_DEFAULT


LOG_LEVEL = normalize_level(config.LOG_LEVEL)

log.setLevel(LOG_LEVEL)
log.addHandler(logging.NullHandler())


class UserFilter(logging.Filter):
    """Adds the username to the log record."""

    def filter(self, record: logging.LogRecord):
        try:
            record.username = os.getlogin()
        except Exception:
            record.username = getpass.getuser()
        return True


class CommandFilter(logging.Filter):
    """Adds the running subcommand to the log record, so the shared log file
    can be read per operation when several targets update at once."""

    def __init__(self, command: str = "-"):
        """Initialize the filter.

        :param command: subcommand name.
        """
        super().__init__()
        self.command = command

    def filter(self, record: logging.LogRecord):
        record.command = self.command
        record.pid = os.getpid()
        return True


class UserRotatingFileHandler(RotatingFileHandler):
    """Rotating file handler that adds the username to the log record."""

    def __init__(
        self,
        filename: str,
        mode: str = "a",
        maxBytes: int = 0,
        backupCount: int = 0,
        encoding: Optional[str] = None,
        delay: bool = False,
    ):
        super().__init__(filename, mode, maxBytes, backupCount, encoding, delay)
        self.addFilter(UserFilter())


def setup_stream_handler(level: Union[int, str] = LOG_LEVEL):
    """Adds a new console (stderr) stream handler, replacing a previous one.

    :param level: log level.
    :return: handler.
    """
    for h in list(log.handlers):
        if h.name == log.name and type(h) is logging.StreamHandler:
            log.removeHandler(h)

    handler = logging.StreamHandler()
    handler.set_name(log.name)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    log.addHandler(handler)
    return handler


def setup_file_handler(
    maxBytes: int = config.LOG_MAX_BYTES,
    backupCount: int = config.LOG_BACKUP_COUNT,
    level: Union[int, str] = LOG_LEVEL,
    logdir: str = config.LOG_DIR,
    command: str = "-",
):
    """Adds a new rotating file handler, replacing a previous one.

    :param maxBytes: max bytes per file.
    :param backupCount: number of backup files.
    :param level: log level.
    :param logdir: directory to store the log files.
    :param command: subcommand name stamped on each record.
    :return: handler.
    """
    for h in list(log.handlers):
        if h.name == log.name and isinstance(h, RotatingFileHandler):
            log.removeHandler(h)
            h.close()

    os.makedirs(logdir, exist_ok=True)
    log_file = os.path.join(logdir, "deltaman.log")

    handler = UserRotatingFileHandler(
        log_file, maxBytes=maxBytes, backupCount=backupCount
    )
    handler.set_name(log.name)
    handler.setLevel(level)
    handler.addFilter(CommandFilter(command))
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(username)s - %(command)s[%(pid)d] - "
            "%(levelname)s - %(message)s"
        )
    )

    log.addHandler(handler)
    return handler


def setup_logging(command: str = "-", verbose: bool = False, logfile: bool = True):
    """Setup log handlers.

    :param command: subcommand name for the file log.
    :param verbose: log debug messages, including external commands.
    :param logfile: also log to the rotating log file.
    """
    level = "DEBUG" if verbose else LOG_LEVEL
    if verbose:
        log.setLevel("DEBUG")
    setup_stream_handler(level)

    if logfile:
        try:
            setup_file_handler(command=command)
        except Exception as err:
            print("Error: %s" % str(err))
