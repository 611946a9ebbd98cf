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
Contains the external command runner.
"""

import shlex
import subprocess
from typing import IO, Optional, Sequence

from deltaman.errors import ConfigurationError, SubprocessFailure
from deltaman.logger import log


def run(
    command: Sequence[str],
    stdout: Optional[IO[bytes]] = None,
    cwd: Optional[str] = None,
) -> None:
    """Runs an external command and waits for it to finish. Commands are
    never run through a shell.

    :param command: argument list, executable first.
    :param stdout: optional binary file object receiving standard output,
        otherwise output is captured and discarded.
    :param cwd: optional working directory.
    :raises ConfigurationError: if the executable cannot be found.
    :raises SubprocessFailure: on nonzero exit or termination by a signal.
    """
    command = [str(c) for c in command]
    log.debug("Running: '%s'", " ".join(shlex.quote(c) for c in command))
    try:
        subprocess.run(
            command,
            check=True,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=stdout if stdout is not None else subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError:
        raise ConfigurationError(f"Executable not found: {command[0]}")
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors="replace") if e.stderr else ""
        # negative return codes mean the child was killed by a signal
        if e.returncode < 0:
            raise SubprocessFailure(command, signal=-e.returncode, stderr=stderr)
        raise SubprocessFailure(command, returncode=e.returncode, stderr=stderr)
