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
Contains tests for the runner module.
"""

import sys

import pytest

from deltaman.errors import ConfigurationError, SubprocessFailure
from deltaman.runner import run


def test_run_success():
    run([sys.executable, "-c", "pass"])


def test_run_writes_stdout(tmp_path):
    out = tmp_path / "out"
    with open(out, "wb") as f:
        run([sys.executable, "-c", "print('hello')"], stdout=f)
    assert out.read_text().strip() == "hello"


def test_run_exit_code():
    """Test that a nonzero exit is reported with its code and stderr."""
    with pytest.raises(SubprocessFailure) as exc:
        run(
            [
                sys.executable,
                "-c",
                "import sys; sys.stderr.write('boom'); sys.exit(3)",
            ]
        )
    assert exc.value.returncode == 3
    assert exc.value.signal is None
    assert "boom" in str(exc.value)


@pytest.mark.skipif(sys.platform == "win32", reason="posix signals")
def test_run_signal():
    """Test that a child killed by a signal is reported with the signal."""
    with pytest.raises(SubprocessFailure) as exc:
        run([sys.executable, "-c", "import os, signal; os.kill(os.getpid(), signal.SIGKILL)"])
    assert exc.value.signal == 9
    assert exc.value.returncode is None
    assert "signal 9" in str(exc.value)


def test_run_missing_executable(tmp_path):
    with pytest.raises(ConfigurationError):
        run([str(tmp_path / "no-such-tool")])
