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
Contains the recovery manager: rebuilds the working image of a distribution
from its committed artifacts after an interrupted commit or reset.
"""

import os
from typing import Optional

from tqdm import tqdm

from deltaman import config, util
from deltaman.commit import source_lock
from deltaman.config import Settings
from deltaman.errors import BrokenInvariant, InconsistentState
from deltaman.logger import log
from deltaman.store import VersionStore
from deltaman.tools import Toolchain


class RecoveryManager(object):
    """Rebuilds the working image of one distribution directory."""

    def __init__(
        self,
        dist_dir: str,
        settings: Settings,
        tools: Optional[Toolchain] = None,
    ):
        """Initializes the recovery manager.

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

    def remove_staging(self) -> int:
        """Deletes staging directories left by a commit that was killed
        before it could clean up. Only called with the lock held.

        :return: number of entries removed.
        """
        removed = 0
        for name in sorted(os.listdir(self.dist_dir)):
            if name.startswith(config.STAGING_PREFIX):
                log.warning("Removing leftover staging entry %s", name)
                util.remove_object(os.path.join(self.dist_dir, name))
                removed += 1
        return removed

    def reset(self, force: bool = False) -> int:
        """Rebuilds the working image at the current version: extracts the
        latest full image, then replays every later diff in order.

        Runs when the source lock was left behind by a crash. With force it
        also runs on a distribution that is not locked, taking the lock for
        the duration. A reset that fails leaves the lock held and can simply
        be run again.

        :param force: rebuild even though the lock is not held.
        :raises InconsistentState: if the lock is absent and force is False.
        :raises BrokenInvariant: if a needed artifact is missing.
        :return: the version the working image was rebuilt at.
        """
        if not os.path.isdir(self.dist_dir):
            raise InconsistentState(f"'{self.dist_dir}' is not a distribution")

        if self.lock.is_locked():
            self.lock.acquire("reset", steal=True)
        elif force:
            self.lock.acquire("reset")
        else:
            raise InconsistentState(
                f"'{self.dist_dir}' is not locked, the working image is "
                "consistent. Use --force to rebuild it anyway."
            )

        self.remove_staging()

        version = self.store.current_version()
        if version == 0:
            log.info("Nothing committed, resetting to an empty working image")
            util.recreate_directory(self.image)
            self.lock.release()
            return 0

        full = self.store.find_latest_full_version()
        missing = [v for v in range(full + 1, version + 1) if not self.store.has_diff(v)]
        if missing:
            raise BrokenInvariant(
                "Cannot rebuild version %d, missing diffs: %s"
                % (version, ", ".join(str(v) for v in missing))
            )

        log.info("Rebuilding working image at version %d from full image %d", version, full)
        util.recreate_directory(self.image)
        self.tools.apply_full(self.store.full_path(full), self.image)

        for ver in tqdm(
            range(full + 1, version + 1),
            desc="[reset]",
            unit="diff",
            disable=not self.settings.progress,
        ):
            log.debug("Replaying %s", self.store.diff_path(ver))
            self.tools.apply_diff(self.store.diff_path(ver), self.image)

        # a commit may have died between writing its diff and its full image
        if self.store.is_full_version(version) and not self.store.has_full(version):
            log.warning("Full image for version %d missing, recreating it", version)
            with util.atomic_file(self.store.full_path(version)) as tmp:
                self.tools.make_full(self.image, tmp)

        self.lock.release()
        log.info("Working image reset to version %d", version)
        return version
