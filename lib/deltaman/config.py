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
Contains default config and settings.

Diffs are generated with rsync's default quick check, which compares only
size and modification time. An edit that keeps both unchanged is not picked
up by the diff or the working image, while the next full image archive does
contain it. Add --checksum to the commit options, or to DELTAMAN_RSYNC_OPTS,
when the source tree can be edited that way.
"""

import os
import shlex
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping, Optional, Tuple

from deltaman.errors import ConfigurationError


# distribution directory layout
WORK_DIR = "image"
LOCK_FILE = ".lock"
STAGING_PREFIX = ".staging-"
FULL_EXT = ".full"
DIFF_EXT = ".diff"
INFO_EXT = ".info"

# target directory state files, never transferred or deleted by a restore
TARGET_VERSION_FILE = ".deltaman-version"
TARGET_LOCK_FILE = ".deltaman-lock"
PROTECTED_FILES = (TARGET_VERSION_FILE, TARGET_LOCK_FILE)

# full image cadence
FULL_INTERVAL_VAR = "DELTAMAN_FULL_INTERVAL"
FULL_INTERVAL_DEFAULT = 100

# external tools
RSYNC = os.getenv("DELTAMAN_RSYNC", "rsync")
TAR = os.getenv("DELTAMAN_TAR", "tar")
XZ = os.getenv("DELTAMAN_XZ", "xz")
RSYNC_OPTIONS = ("--archive", "--delete", "--no-whole-file")
TAR_OPTIONS = ("--numeric-owner",)
XZ_OPTIONS = ()

# logging settings
LOG_NAME = "deltaman"
LOG_DIR = os.getenv("LOG_DIR", os.path.expanduser("~/log/deltaman"))
LOG_LEVEL_DEFAULT = "INFO"
LOG_LEVEL = os.getenv("LOG_LEVEL", LOG_LEVEL_DEFAULT)
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 5

# provenance record keys
TAG_AUTHOR = "author"
TAG_SOURCEPATH = "source"
TAG_TIME = "time"
TAG_ORIGIN = "origin"
TAG_BRANCH = "branch"
TAG_HEAD = "head"
TAG_DIRTY = "dirty"

# git repo settings
LEN_HASH = 7


def _read_interval(value: Optional[str]) -> int:
    """Parses a full image interval setting.

    :param value: raw setting value, or None for the default.
    :raises ConfigurationError: if the value is not a positive integer.
    :return: interval.
    """
    if value is None or value == "":
        return FULL_INTERVAL_DEFAULT
    try:
        interval = int(value)
    except ValueError:
        raise ConfigurationError(
            f"{FULL_INTERVAL_VAR} must be an integer, got '{value}'"
        )
    if interval < 1:
        raise ConfigurationError(f"{FULL_INTERVAL_VAR} must be >= 1, got {interval}")
    return interval


@dataclass(frozen=True)
class Settings:
    """Per-run settings shared by every component of one command. The value
    is immutable; use :meth:`with_options` to layer per-invocation tool
    options on top of it."""

    full_interval: int = FULL_INTERVAL_DEFAULT
    rsync: str = RSYNC
    tar: str = TAR
    xz: str = XZ
    rsync_options: Tuple[str, ...] = field(default=RSYNC_OPTIONS)
    tar_options: Tuple[str, ...] = field(default=TAR_OPTIONS)
    xz_options: Tuple[str, ...] = field(default=XZ_OPTIONS)
    progress: bool = True

    def __post_init__(self):
        if self.full_interval < 1:
            raise ConfigurationError(
                f"full image interval must be >= 1, got {self.full_interval}"
            )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides):
        """Builds settings from environment variables:

            DELTAMAN_FULL_INTERVAL   full image cadence (default 100)
            DELTAMAN_RSYNC           diff engine executable
            DELTAMAN_TAR             archiver executable
            DELTAMAN_XZ              compressor executable
            DELTAMAN_RSYNC_OPTS      extra diff engine options (shell quoted)
            DELTAMAN_TAR_OPTS        extra archiver options (shell quoted)

        :param env: mapping to read, defaults to os.environ.
        :param overrides: explicit field values, take precedence over env.
        :raises ConfigurationError: on invalid values.
        :return: Settings instance.
        """
        if env is None:
            env = os.environ
        values = {
            "full_interval": _read_interval(env.get(FULL_INTERVAL_VAR)),
            "rsync": env.get("DELTAMAN_RSYNC", RSYNC),
            "tar": env.get("DELTAMAN_TAR", TAR),
            "xz": env.get("DELTAMAN_XZ", XZ),
            "rsync_options": RSYNC_OPTIONS
            + tuple(shlex.split(env.get("DELTAMAN_RSYNC_OPTS", ""))),
            "tar_options": TAR_OPTIONS
            + tuple(shlex.split(env.get("DELTAMAN_TAR_OPTS", ""))),
        }
        values.update(overrides)
        return cls(**values)

    def with_options(
        self,
        rsync_options: Iterable[str] = (),
        tar_options: Iterable[str] = (),
    ) -> "Settings":
        """Returns a copy with extra tool options appended.

        :param rsync_options: extra diff engine options.
        :param tar_options: extra archiver options.
        :return: new Settings instance.
        """
        return replace(
            self,
            rsync_options=self.rsync_options + tuple(rsync_options),
            tar_options=self.tar_options + tuple(tar_options),
        )

    def is_full_version(self, version: int) -> bool:
        """Returns True if a full image artifact belongs to version."""
        return version == 1 or version % self.full_interval == 1
