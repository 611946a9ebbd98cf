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
Contains tests for the util module.
"""

import os

import pytest

from deltaman import config, util
from deltaman.errors import IOFailure


def test_atomic_file_success(tmp_path):
    """Test that the file appears only once the block completes."""
    dest = tmp_path / "5.diff"
    with util.atomic_file(dest) as tmp:
        assert tmp.parent.name.startswith(config.STAGING_PREFIX)
        tmp.write_text("data")
        assert not dest.exists()
    assert dest.read_text() == "data"
    assert os.listdir(tmp_path) == ["5.diff"]


def test_atomic_file_failure_discards(tmp_path):
    """Test that a failing block leaves nothing behind."""
    dest = tmp_path / "5.diff"
    with pytest.raises(RuntimeError):
        with util.atomic_file(dest) as tmp:
            tmp.write_text("partial")
            raise RuntimeError("tool died")
    assert os.listdir(tmp_path) == []


def test_atomic_file_replaces(tmp_path):
    dest = tmp_path / "marker"
    dest.write_text("1")
    with util.atomic_file(dest) as tmp:
        tmp.write_text("2")
    assert dest.read_text() == "2"


def test_atomic_file_nothing_written(tmp_path):
    with pytest.raises(IOFailure):
        with util.atomic_file(tmp_path / "empty"):
            pass


def test_clear_directory_keeps(tmp_path):
    (tmp_path / "a.txt").write_text("a")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.txt").write_text("b")
    (tmp_path / config.TARGET_LOCK_FILE).write_text("")
    os.symlink("a.txt", tmp_path / "link")
    removed = util.clear_directory(tmp_path, keep=config.PROTECTED_FILES)
    assert removed == 3
    assert os.listdir(tmp_path) == [config.TARGET_LOCK_FILE]


def test_recreate_directory(tmp_path):
    image = tmp_path / "image"
    image.mkdir()
    (image / "junk").write_text("x")
    util.recreate_directory(image)
    assert image.is_dir()
    assert os.listdir(image) == []
    util.recreate_directory(tmp_path / "new")
    assert (tmp_path / "new").is_dir()


def test_remove_object_missing_is_noop(tmp_path):
    util.remove_object(tmp_path / "missing")


def test_info_roundtrip(tmp_path):
    path = tmp_path / "1.info"
    util.write_info(path, {"author": "alice", "source": "/src/a:b"})
    assert util.read_info(path) == {"author": "alice", "source": "/src/a:b"}
    assert util.read_info(tmp_path / "missing") == {}


def test_get_user(monkeypatch):
    monkeypatch.setenv("USER", "bob")
    assert util.get_user() == "bob"
