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
Contains shared fixtures, including an in-process toolchain that stands in
for rsync, tar and xz so the protocol can be tested without them.
"""

import base64
import json
import os
import shutil
from pathlib import Path

import pytest

from deltaman import config
from deltaman.config import Settings
from deltaman.errors import SubprocessFailure


def tree_contents(root) -> dict:
    """Returns {relative path: bytes} for every file under root, leaving out
    the target state files."""
    root = Path(root)
    contents = {}
    for dirpath, dirs, files in os.walk(root):
        for name in files:
            p = Path(dirpath) / name
            rel = p.relative_to(root).as_posix()
            if rel in config.PROTECTED_FILES:
                continue
            contents[rel] = p.read_bytes()
    return contents


def write_tree(root, files: dict) -> Path:
    """Creates root holding exactly the given {relative path: text} files."""
    root = Path(root)
    if root.exists():
        shutil.rmtree(root)
    root.mkdir(parents=True)
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text)
    return root


class FakeToolchain(object):
    """Toolchain double. Artifacts are JSON snapshots of a whole tree, and
    replaying one makes the destination match it, which is how the real
    diffs behave from the point of view of the protocol. Every call is
    recorded as (operation, artifact name)."""

    def __init__(self):
        self.calls = []
        self.settings = []
        self.fail = {}

    def with_settings(self, settings):
        self.settings.append(settings)
        return self

    def _maybe_fail(self, operation, out=None):
        if operation in self.fail:
            self.fail[operation] -= 1
            if self.fail[operation] <= 0:
                del self.fail[operation]
                if out is not None:
                    Path(out).write_text("partial")
                raise SubprocessFailure([operation], returncode=1)

    def _snapshot(self, root):
        return {
            rel: base64.b64encode(data).decode()
            for rel, data in tree_contents(root).items()
        }

    def _write(self, root, snapshot):
        root = Path(root)
        for rel, data in snapshot.items():
            p = root / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(base64.b64decode(data))

    def _mirror(self, root, snapshot):
        root = Path(root)
        for rel in tree_contents(root):
            if rel not in snapshot:
                (root / rel).unlink()
        self._write(root, snapshot)

    def make_diff(self, source_dir, image_dir, out):
        self.calls.append(("make_diff", None))
        self._maybe_fail("make_diff", out)
        snapshot = self._snapshot(source_dir)
        Path(out).write_text(json.dumps({"kind": "diff", "tree": snapshot}))
        self._mirror(image_dir, snapshot)

    def apply_diff(self, artifact, dest_dir):
        self.calls.append(("apply_diff", os.path.basename(artifact)))
        self._maybe_fail("apply_diff")
        data = json.loads(Path(artifact).read_text())
        assert data["kind"] == "diff"
        self._mirror(dest_dir, data["tree"])

    def make_full(self, source_dir, out):
        self.calls.append(("make_full", None))
        self._maybe_fail("make_full", out)
        Path(out).write_text(
            json.dumps({"kind": "full", "tree": self._snapshot(source_dir)})
        )

    def apply_full(self, artifact, dest_dir):
        self.calls.append(("apply_full", os.path.basename(artifact)))
        self._maybe_fail("apply_full")
        data = json.loads(Path(artifact).read_text())
        assert data["kind"] == "full"
        self._write(dest_dir, data["tree"])

    def applied(self):
        """Names of artifacts applied so far, in order."""
        return [name for op, name in self.calls if op.startswith("apply_")]


@pytest.fixture
def settings():
    """Settings with a full image every other version and no progress bars."""
    return Settings(full_interval=2, progress=False)


@pytest.fixture
def tools():
    return FakeToolchain()


@pytest.fixture
def dist_dir(tmp_path):
    """An initialized, empty distribution directory."""
    path = tmp_path / "dist"
    (path / config.WORK_DIR).mkdir(parents=True)
    return path


@pytest.fixture(autouse=True)
def no_git_provenance(mocker):
    """Keeps provenance records independent of any enclosing git repo."""
    mocker.patch("deltaman.source.read_git_info", return_value={})
