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
Contains the Distributor class, which owns one distribution directory.
"""

import os
from typing import Iterable, List, Optional

from deltaman import config, source, util
from deltaman.apply import ApplyEngine, ApplyResult
from deltaman.commit import CommitPipeline, source_lock
from deltaman.config import Settings
from deltaman.errors import ConfigurationError
from deltaman.logger import log
from deltaman.recovery import RecoveryManager
from deltaman.store import VersionStore
from deltaman.tools import Toolchain


class Distributor(object):
    """Handles one distribution directory: its working image, artifacts and
    lock. Commit, reset and the version report run here; targets are updated
    through an ApplyEngine reading the same directory."""

    def __init__(
        self,
        dist_dir: str,
        settings: Optional[Settings] = None,
        tools: Optional[Toolchain] = None,
    ):
        """Initializes the Distributor.

        :param dist_dir: distribution directory.
        :param settings: run settings, read from the environment by default.
        :param tools: toolchain, built from settings by default.
        """
        self.dist_dir = str(dist_dir)
        self.settings = settings or Settings.from_env()
        self.tools = tools or Toolchain(self.settings)
        self.store = VersionStore(self.dist_dir, self.settings.full_interval)
        self.lock = source_lock(self.dist_dir)
        self.image = os.path.join(self.dist_dir, config.WORK_DIR)

    def __repr__(self):
        return f"<Distributor {self.dist_dir}>"

    def is_initialized(self) -> bool:
        return os.path.isdir(self.image)

    def init(self) -> None:
        """Creates an empty distribution: the directory and an empty working
        image.

        :raises ConfigurationError: if the directory is already a
            distribution or holds other files.
        """
        if self.is_initialized():
            raise ConfigurationError(f"'{self.dist_dir}' is already initialized")
        if os.path.exists(self.dist_dir):
            if not os.path.isdir(self.dist_dir):
                raise ConfigurationError(f"'{self.dist_dir}' is not a directory")
            if os.listdir(self.dist_dir):
                raise ConfigurationError(f"'{self.dist_dir}' is not empty")
        util.ensure_dir(self.image)
        log.info("Initialized distribution %s", self.dist_dir)

    def current_version(self) -> int:
        return self.store.current_version()

    def commit(
        self,
        source_dir: str,
        rsync_options: Iterable[str] = (),
        tar_options: Iterable[str] = (),
    ) -> int:
        """Commits source_dir as the next version, see CommitPipeline."""
        pipeline = CommitPipeline(self.dist_dir, self.settings, tools=self.tools)
        return pipeline.commit(source_dir, rsync_options, tar_options)

    def reset(self, force: bool = False) -> int:
        """Rebuilds the working image, see RecoveryManager."""
        manager = RecoveryManager(self.dist_dir, self.settings, tools=self.tools)
        return manager.reset(force=force)

    def up(
        self,
        target_dir: str,
        force: bool = False,
        full: bool = False,
        version: Optional[int] = None,
    ) -> ApplyResult:
        """Updates a target from this distribution, see ApplyEngine."""
        engine = ApplyEngine(self.settings, tools=self.tools)
        return engine.up(self.dist_dir, target_dir, force=force, full=full, version=version)

    def show(self, verbose: bool = False, check: bool = False) -> List[str]:
        """Prints the current version to stdout and logs the lock status.

            $ deltaman version -v /dist
            3
            1: full - 2025-01-07 10:12:01 - alice - main@1a2b3c4
            2: diff - 2025-01-07 11:40:55 - alice - main@5d6e7f8
            3: full diff - 2025-01-08 09:02:13 - bob

        :param verbose: list every version with its artifacts and provenance.
        :param check: verify artifact contiguity and full image cadence.
        :return: list of problems found by check.
        """
        if not os.path.isdir(self.dist_dir):
            raise ConfigurationError(f"'{self.dist_dir}' is not a directory")

        print(self.store.current_version())

        if self.lock.is_locked():
            holder = self.lock.holder()
            log.warning(
                "Locked by %s (%s@%s, %s): run 'deltaman reset'",
                holder.get("operation", "?"),
                holder.get("user", "?"),
                holder.get("host", "?"),
                holder.get("time", "?"),
            )

        if verbose:
            for version, has_full, has_diff in self.store.artifact_versions():
                kinds = " ".join(
                    k for k, present in (("full", has_full), ("diff", has_diff)) if present
                )
                info = util.read_info(self.store.info_path(version))
                print(f"{version}: {kinds} - {source.describe(info)}")

        problems = self.store.check() if check else []
        for problem in problems:
            log.error("Problem: %s", problem)
        return problems
