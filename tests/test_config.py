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
Contains tests for the config module.
"""

import dataclasses

import pytest

from deltaman import config
from deltaman.config import Settings
from deltaman.errors import ConfigurationError


def test_defaults():
    settings = Settings.from_env({})
    assert settings.full_interval == 100
    assert settings.rsync_options == config.RSYNC_OPTIONS
    assert settings.tar_options == config.TAR_OPTIONS
    assert settings.progress is True


def test_from_env():
    settings = Settings.from_env(
        {
            "DELTAMAN_FULL_INTERVAL": "5",
            "DELTAMAN_RSYNC": "/opt/bin/rsync",
            "DELTAMAN_RSYNC_OPTS": "--checksum --bwlimit=100",
            "DELTAMAN_TAR_OPTS": "--gzip",
        }
    )
    assert settings.full_interval == 5
    assert settings.rsync == "/opt/bin/rsync"
    assert settings.rsync_options[-2:] == ("--checksum", "--bwlimit=100")
    assert settings.tar_options[-1] == "--gzip"


def test_overrides_win():
    settings = Settings.from_env({"DELTAMAN_FULL_INTERVAL": "5"}, full_interval=9)
    assert settings.full_interval == 9


@pytest.mark.parametrize("value", ["abc", "0", "-3", "1.5"])
def test_invalid_interval(value):
    with pytest.raises(ConfigurationError):
        Settings.from_env({"DELTAMAN_FULL_INTERVAL": value})


def test_settings_are_immutable():
    settings = Settings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.full_interval = 3


def test_with_options():
    settings = Settings()
    layered = settings.with_options(["--checksum"], ["--gzip"])
    assert layered.rsync_options == config.RSYNC_OPTIONS + ("--checksum",)
    assert layered.tar_options == config.TAR_OPTIONS + ("--gzip",)
    assert settings.rsync_options == config.RSYNC_OPTIONS


def test_is_full_version():
    settings = Settings(full_interval=2)
    assert settings.is_full_version(1)
    assert not settings.is_full_version(2)
    assert settings.is_full_version(3)
