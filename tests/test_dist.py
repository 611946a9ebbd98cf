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
Contains tests for the dist module.
"""

import pytest

from deltaman import Distributor, config
from deltaman.errors import ConfigurationError

from conftest import tree_contents, write_tree


@pytest.fixture
def distributor(tmp_path, settings, tools):
    return Distributor(str(tmp_path / "dist"), settings, tools=tools)


def test_init_creates_working_image(distributor, tmp_path):
    distributor.init()
    assert (tmp_path / "dist" / config.WORK_DIR).is_dir()
    assert distributor.is_initialized()
    assert distributor.current_version() == 0


def test_init_twice_fails(distributor):
    distributor.init()
    with pytest.raises(ConfigurationError):
        distributor.init()


def test_init_existing_empty_dir(distributor, tmp_path):
    (tmp_path / "dist").mkdir()
    distributor.init()
    assert distributor.is_initialized()


def test_init_non_empty_dir_fails(distributor, tmp_path):
    write_tree(tmp_path / "dist", {"something.txt": "x"})
    with pytest.raises(ConfigurationError):
        distributor.init()


def test_init_file_fails(distributor, tmp_path):
    (tmp_path / "dist").write_text("x")
    with pytest.raises(ConfigurationError):
        distributor.init()


def test_commit_reset_up(distributor, tmp_path):
    """Test the whole cycle through the facade."""
    distributor.init()
    src = tmp_path / "src"
    for n in range(1, 4):
        write_tree(src, {"file.txt": f"version {n}"})
        assert distributor.commit(str(src)) == n
    assert distributor.reset(force=True) == 3
    result = distributor.up(str(tmp_path / "target"))
    assert result.version == 3
    assert tree_contents(tmp_path / "target") == tree_contents(src)


def test_show_reports_problems(distributor, tmp_path):
    distributor.init()
    src = write_tree(tmp_path / "src", {"file.txt": "x"})
    distributor.commit(str(src))
    distributor.commit(str(src))
    assert distributor.show(verbose=True, check=True) == []
    (tmp_path / "dist" / "2.diff").unlink()
    (tmp_path / "dist" / "3.diff").write_text("x")
    assert distributor.show(check=True) == [
        "missing diff for version 2",
        "missing full image for version 3",
    ]


def test_show_locked(distributor, tmp_path):
    """Test that show works on a locked distribution."""
    distributor.init()
    distributor.lock.acquire("commit")
    assert distributor.show(verbose=True) == []


def test_show_missing_dir(distributor):
    with pytest.raises(ConfigurationError):
        distributor.show()


def test_default_settings_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv(config.FULL_INTERVAL_VAR, "7")
    distributor = Distributor(str(tmp_path / "dist"))
    assert distributor.settings.full_interval == 7
    assert distributor.store.full_interval == 7
