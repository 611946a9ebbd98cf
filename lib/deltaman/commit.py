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
Contains the commit pipeline: produces the next version of a distribution
from a source content directory.
"""

import os
from typing import Iterable, Optional

from deltaman import config, source, util
from deltaman.config import Settings
from deltaman.errors import ConfigurationError
from deltaman.lock import LockManager
from deltaman.logger import log
from deltaman.store import VersionStore
from deltaman.tools import Toolchain

SOURCE_LOCK_HINT = (
    "A previous commit or reset did not complete. "
    "Run 'deltaman reset <dist_dir>' to rebuild the working image."
)


def source_lock(dist_dir: str) -> LockManager:
    """Returns the lock shared by commit and reset of a distribution."""
    return LockManager(os.path.join(dist_dir, config.LOCK_FILE), SOURCE_LOCK_HINT)


class CommitPipeline(object):
    """Commits new versions into one distribution directory."""

    def __init__(
        self,
        dist_dir: str,
        settings: Settings,
        tools: Optional[Toolchain] = None,
    ):
        """Initializes the pipeline.

        :param dist_dir: distribution directory.
        :param settings: run settings.
        :param tools: toolchain, built from settings by default.
        """
        self.dist_dir = str(dist_dir)
        self.settings = settings
        self.tools = tools or Toolchain(settings)
        self.store = VersionStore(self.dist_dir, settings.full_interval)
        self.lock = source_lock(self.dist_dir)
        self.image = os.path.join(self.dist_dir, config.WORK_DIR)

    def check(self, source_dir: str) -> None:
        """Validates the preconditions of a commit.

        :param source_dir: content directory to commit.
        :raises ConfigurationError: if a precondition does not hold.
        """
        if not os.path.isdir(self.image):
            raise ConfigurationError(
                f"'{self.dist_dir}' is not an initialized distribution "
                "(run 'deltaman init' first)"
            )
        if not os.path.isdir(source_dir):
            raise ConfigurationError(f"Source '{source_dir}' is not a directory")
        if not os.access(source_dir, os.R_OK | os.X_OK):
            raise ConfigurationError(f"Source '{source_dir}' is not readable")
        if os.path.realpath(source_dir) == os.path.realpath(self.image):
            raise ConfigurationError("Cannot commit the working image onto itself")

    def commit(
        self,
        source_dir: str,
        rsync_options: Iterable[str] = (),
        tar_options: Iterable[str] = (),
    ) -> int:
        """Commits source_dir as the next version.

        The lock is held across all steps. Any failure propagates with the
        lock still in place, so the next commit refuses to run until the
        working image has been rebuilt with reset. Artifacts are staged and
        renamed into place only when complete.

        :param source_dir: content directory to commit.
        :param rsync_options: extra diff engine options for this commit.
        :param tar_options: extra archiver options for this commit.
        :raises LockConflict: if a commit or reset is in progress or crashed.
        :return: the committed version.
        """
        self.check(source_dir)
        settings = self.settings.with_options(rsync_options, tar_options)
        tools = self.tools.with_settings(settings)

        self.lock.acquire("commit")

        version = self.store.current_version() + 1
        log.info("Committing version %d from %s", version, source_dir)

        if version > 1:
            with util.atomic_file(self.store.diff_path(version)) as tmp:
                tools.make_diff(source_dir, self.image, tmp)
            log.info("Wrote %s", self.store.diff_path(version))

        if self.store.is_full_version(version):
            with util.atomic_file(self.store.full_path(version)) as tmp:
                tools.make_full(source_dir, tmp)
            log.info("Wrote %s", self.store.full_path(version))

            # first version: no diff ran, so build the image from the archive
            if version == 1:
                util.recreate_directory(self.image)
                tools.apply_full(self.store.full_path(version), self.image)

        util.write_info(self.store.info_path(version), source.read_provenance(source_dir))

        self.lock.release()
        log.info("Committed version %d", version)
        return version
