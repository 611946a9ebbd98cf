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
Contains the apply engine: brings a target directory to a committed version
of a distribution, by full or incremental restore.

A target keeps two files next to its content: the applied version and its
own lock marker. Neither is ever transferred or deleted by a restore. The
choice between a full and an incremental restore depends only on those two
files and on which artifacts the distribution holds, never on comparing
content.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from tqdm import tqdm

from deltaman import config, util
from deltaman.config import Settings
from deltaman.errors import (
    BrokenInvariant,
    ConfigurationError,
    InconsistentTarget,
    IOFailure,
)
from deltaman.lock import LockManager
from deltaman.logger import log
from deltaman.store import VersionStore
from deltaman.tools import Toolchain

TARGET_LOCK_HINT = (
    "A previous update of this target did not complete. "
    "Run 'deltaman up --force' to restore it from scratch."
)

# restore modes
MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"
MODE_CURRENT = "current"


@dataclass
class ApplyResult:
    """Outcome of one up call."""

    version: int
    mode: str
    full_version: Optional[int] = None
    replayed: List[int] = field(default_factory=list)


class TargetState(object):
    """Applied version marker and lock of one target directory."""

    def __init__(self, target_dir: str):
        """Initializes the target state.

        :param target_dir: target directory.
        """
        self.directory = str(target_dir)
        self.version_file = os.path.join(self.directory, config.TARGET_VERSION_FILE)
        self.lock = LockManager(
            os.path.join(self.directory, config.TARGET_LOCK_FILE), TARGET_LOCK_HINT
        )

    def recorded_version(self) -> Optional[int]:
        """Returns the applied version, None if never applied or unreadable.

        :return: version number or None.
        """
        try:
            with open(self.version_file, "r") as f:
                text = f.read().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise IOFailure(f"Cannot read '{self.version_file}': {e}")
        if not text.isdigit():
            log.warning("Ignoring invalid version marker %s: %r", self.version_file, text)
            return None
        return int(text)

    def record(self, version: int) -> None:
        """Atomically persists the applied version."""
        with util.atomic_file(self.version_file) as tmp:
            tmp.write_text(f"{version}\n")

    def forget(self) -> None:
        """Removes the applied version marker."""
        if os.path.lexists(self.version_file):
            util.remove_object(self.version_file)


class ApplyEngine(object):
    """Updates target directories from a distribution directory."""

    def __init__(self, settings: Settings, tools: Optional[Toolchain] = None):
        """Initializes the apply engine.

        :param settings: run settings.
        :param tools: toolchain, built from settings by default.
        """
        self.settings = settings
        self.tools = tools or Toolchain(settings)

    def plan(
        self,
        store: VersionStore,
        target: TargetState,
        wanted: int,
        force: bool = False,
        full: bool = False,
    ) -> str:
        """Decides how to bring a target to the wanted version.

        :param store: version store of the distribution.
        :param target: target state.
        :param wanted: version to converge to.
        :param force: recover a target left locked by a crash.
        :param full: always do a full restore.
        :raises InconsistentTarget: if the target is locked and force is False.
        :return: one of MODE_FULL, MODE_INCREMENTAL, MODE_CURRENT.
        """
        recorded = target.recorded_version()

        if recorded is None:
            log.info("No version recorded for %s, doing full restore", target.directory)
            return MODE_FULL

        if target.lock.is_locked():
            if not force:
                raise InconsistentTarget(
                    f"Target '{target.directory}' is locked by an interrupted "
                    f"update (recorded version {recorded}).\n{TARGET_LOCK_HINT}"
                )
            # TODO: offer an incremental recovery when diffs from the
            # recorded version are available, instead of always restoring
            log.warning(
                "Target %s is locked, discarding recorded version %d and "
                "doing full restore",
                target.directory,
                recorded,
            )
            return MODE_FULL

        if full:
            return MODE_FULL

        if recorded == wanted:
            return MODE_CURRENT

        if recorded > wanted:
            log.info(
                "Target %s is at version %d, beyond %d, doing full restore",
                target.directory,
                recorded,
                wanted,
            )
            return MODE_FULL

        if not store.has_diff(recorded + 1):
            log.info("Diff for version %d not found, doing full restore", recorded + 1)
            return MODE_FULL

        return MODE_INCREMENTAL

    def up(
        self,
        dist_dir: str,
        target_dir: str,
        force: bool = False,
        full: bool = False,
        version: Optional[int] = None,
    ) -> ApplyResult:
        """Brings target_dir to a committed version of dist_dir.

        :param dist_dir: distribution directory (read only).
        :param target_dir: target directory, created if missing.
        :param force: recover a target left locked by a crash.
        :param full: always do a full restore.
        :param version: version to converge to, default the latest.
        :raises ConfigurationError: on a bad distribution or version, or a
            target overlapping the distribution.
        :raises InconsistentTarget: if the target is locked and force is False.
        :raises BrokenInvariant: if a needed artifact is missing.
        :return: ApplyResult.
        """
        if not os.path.isdir(dist_dir):
            raise ConfigurationError(f"Distribution '{dist_dir}' is not a directory")

        store = VersionStore(dist_dir, self.settings.full_interval)
        latest = store.current_version()
        if latest == 0:
            raise ConfigurationError(f"Nothing committed in '{dist_dir}'")
        wanted = latest if version is None else version
        if not 1 <= wanted <= latest:
            raise ConfigurationError(
                f"Version {wanted} not in distribution (1..{latest})"
            )

        if os.path.exists(target_dir) and not os.path.isdir(target_dir):
            raise ConfigurationError(f"Target '{target_dir}' is not a directory")
        dist_real = os.path.realpath(dist_dir)
        target_real = os.path.realpath(target_dir)
        if os.path.commonpath([dist_real, target_real]) in (dist_real, target_real):
            raise ConfigurationError(
                f"Target '{target_dir}' overlaps distribution '{dist_dir}'"
            )
        util.ensure_dir(target_dir)
        target = TargetState(target_dir)

        mode = self.plan(store, target, wanted, force=force, full=full)
        if mode == MODE_CURRENT:
            log.info("Target %s is up to date at version %d", target_dir, wanted)
            return ApplyResult(wanted, MODE_CURRENT)

        if mode == MODE_FULL:
            result = self.full_restore(store, target, wanted, steal=force)
        else:
            result = self.incremental_restore(store, target, wanted)

        log.info("Target %s updated to version %d (%s)", target_dir, wanted, mode)
        return result

    def full_restore(
        self, store: VersionStore, target: TargetState, wanted: int, steal: bool = False
    ) -> ApplyResult:
        """Replaces the target content with the latest full image at or
        below wanted, then replays the diffs up to wanted.

        :param store: version store of the distribution.
        :param target: target state.
        :param wanted: version to converge to.
        :param steal: take over an existing target lock.
        :return: ApplyResult.
        """
        full = store.find_latest_full_version(upto=wanted)
        diffs = list(range(full + 1, wanted + 1))
        self._check_diffs(store, diffs)

        target.lock.acquire("up", steal=steal)
        target.forget()
        util.clear_directory(target.directory, keep=config.PROTECTED_FILES)

        log.info("Restoring %s from %s", target.directory, store.full_path(full))
        self.tools.apply_full(store.full_path(full), target.directory)
        self._replay(store, target, diffs)

        target.record(wanted)
        target.lock.release()
        return ApplyResult(wanted, MODE_FULL, full_version=full, replayed=diffs)

    def incremental_restore(
        self, store: VersionStore, target: TargetState, wanted: int
    ) -> ApplyResult:
        """Replays the diffs following the recorded version onto the live
        target content.

        :param store: version store of the distribution.
        :param target: target state.
        :param wanted: version to converge to.
        :return: ApplyResult.
        """
        diffs = list(range(target.recorded_version() + 1, wanted + 1))
        self._check_diffs(store, diffs)

        target.lock.acquire("up")
        self._replay(store, target, diffs)

        target.record(wanted)
        target.lock.release()
        return ApplyResult(wanted, MODE_INCREMENTAL, replayed=diffs)

    def _check_diffs(self, store: VersionStore, versions: List[int]) -> None:
        missing = [v for v in versions if not store.has_diff(v)]
        if missing:
            raise BrokenInvariant(
                "Missing diffs in '%s': %s"
                % (store.directory, ", ".join(str(v) for v in missing))
            )

    def _replay(self, store: VersionStore, target: TargetState, versions: List[int]):
        for ver in tqdm(
            versions,
            desc="[up]",
            unit="diff",
            disable=not self.settings.progress or not versions,
        ):
            log.debug("Replaying %s", store.diff_path(ver))
            self.tools.apply_diff(store.diff_path(ver), target.directory)
