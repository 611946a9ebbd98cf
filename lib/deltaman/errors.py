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
Contains exception classes. Every error is fatal to the command that raised
it; the cli maps each class to its own exit code.
"""

from typing import Optional, Sequence


class DeltamanError(Exception):
    """Base class for all deltaman errors."""

    exit_code = 1


class ConfigurationError(DeltamanError):
    """Raised on bad arguments, settings or missing directories."""

    exit_code = 2


class LockConflict(DeltamanError):
    """Raised when a lock marker already exists."""

    exit_code = 3

    def __init__(self, path: str, hint: str = ""):
        """Initialize the error.

        :param path: path of the lock marker.
        :param hint: remediation text for the operator.
        """
        self.path = path
        self.hint = hint
        message = f"Lock already held: {path}"
        if hint:
            message += f"\n{hint}"
        super().__init__(message)


AlreadyLocked = LockConflict


class InconsistentState(DeltamanError):
    """Raised when lock marker and recorded state disagree."""

    exit_code = 4


class InconsistentTarget(InconsistentState):
    """Raised when a target was left locked by an interrupted update."""


class SubprocessFailure(DeltamanError):
    """Raised when an external tool exits nonzero or is killed by a signal."""

    exit_code = 5

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int] = None,
        signal: Optional[int] = None,
        stderr: str = "",
    ):
        """Initialize the error.

        :param command: argument list of the failed command.
        :param returncode: exit code, if the process exited.
        :param signal: signal number, if the process was killed.
        :param stderr: captured standard error.
        """
        self.command = list(command)
        self.returncode = returncode
        self.signal = signal
        self.stderr = stderr
        if signal is not None:
            status = f"killed by signal {signal}"
        else:
            status = f"exit code {returncode}"
        message = f"Command failed ({status}): {' '.join(self.command)}"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class BrokenInvariant(DeltamanError):
    """Raised when an artifact that must exist is missing."""

    exit_code = 6


class IOFailure(DeltamanError):
    """Raised when a filesystem operation fails."""

    exit_code = 7


class LockReleaseError(DeltamanError):
    """Raised when a lock marker cannot be removed. The guarded operation
    may have succeeded, but the protocol state is ambiguous until an
    operator intervenes."""

    exit_code = 8
