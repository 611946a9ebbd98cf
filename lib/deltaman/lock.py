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
Contains the lock marker used to guard source and target directories.

A lock is a plain file created with O_CREAT | O_EXCL. It is not an OS level
lock: it survives the death of the process that created it, and a marker
found on disk when no operation is running is the signal that an earlier
operation was interrupted and recovery is needed. Only release() removes it.
"""

import os
import time
from typing import Dict

from deltaman import util
from deltaman.errors import IOFailure, LockConflict, LockReleaseError
from deltaman.logger import log


class LockManager(object):
    """Crash-persistent lock marker for one directory."""

    def __init__(self, path: str, hint: str = ""):
        """Initializes the lock manager.

        :param path: path of the marker file.
        :param hint: remediation text included in LockConflict errors.
        """
        self.path = str(path)
        self.hint = hint
        self.held = False

    def __repr__(self):
        return f"<LockManager {self.path}>"

    def is_locked(self) -> bool:
        """Returns True if the marker exists."""
        return os.path.lexists(self.path)

    def holder(self) -> Dict[str, str]:
        """Returns the details written into the marker, empty if the marker
        is missing or was left empty by a crash."""
        return util.read_info(self.path)

    def acquire(self, operation: str = "", steal: bool = False) -> None:
        """Creates the marker in one atomic call.

        :param operation: name of the guarded operation, for diagnostics.
        :param steal: take over an existing marker instead of failing.
        :raises LockConflict: if the marker exists and steal is False.
        :raises IOFailure: on any other filesystem error.
        """
        if steal and self.is_locked():
            log.warning("Taking over lock %s %s", self.path, self._describe())
            self.held = True
            return

        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockConflict(self.path, self.hint)
        except OSError as e:
            raise IOFailure(f"Cannot create lock '{self.path}': {e}")

        self.held = True
        details = {
            "operation": operation or "-",
            "user": util.get_user(),
            "host": util.get_host(),
            "pid": os.getpid(),
            "time": time.strftime("%Y-%m-%d %H:%M:%S"),
        }
        try:
            with os.fdopen(fd, "w") as f:
                for key, value in details.items():
                    f.write(f"{key}: {value}\n")
        except OSError as e:
            # the marker exists, which is all that matters for exclusion
            log.warning("Cannot write lock details to %s: %s", self.path, e)
        log.debug("Acquired lock %s", self.path)

    def release(self) -> None:
        """Removes the marker.

        :raises LockReleaseError: if the marker cannot be removed.
        """
        try:
            os.remove(self.path)
        except OSError as e:
            raise LockReleaseError(
                f"Failed to release lock '{self.path}': {e}\n"
                "The operation completed but the lock is still present; "
                "remove it by hand once the state has been verified."
            )
        self.held = False
        log.debug("Released lock %s", self.path)

    def _describe(self) -> str:
        info = self.holder()
        if not info:
            return "(no details)"
        return "(%s by %s@%s pid %s at %s)" % (
            info.get("operation", "?"),
            info.get("user", "?"),
            info.get("host", "?"),
            info.get("pid", "?"),
            info.get("time", "?"),
        )
