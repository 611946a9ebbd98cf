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
Contains wrappers for the external diff engine, archiver and compressor.

Diff artifacts are rsync batch files compressed with xz. A batch is
generated by syncing the source tree onto the working image, which also
brings the working image up to date, and is replayed with --read-batch onto
any tree holding the previous version. Full image artifacts are tar files.
"""

import os
import tempfile
from pathlib import Path
from typing import Callable, List

from deltaman import config
from deltaman.config import Settings
from deltaman.errors import IOFailure
from deltaman.logger import log
from deltaman.runner import run


def dir_arg(path) -> str:
    """Returns a directory argument with a trailing slash, so rsync copies
    the contents rather than the directory itself."""
    return os.path.join(str(path), "")


class Toolchain(object):
    """Runs the external tools for one command invocation."""

    def __init__(self, settings: Settings, runner: Callable = run):
        """Initializes the toolchain.

        :param settings: run settings, including tool options.
        :param runner: command runner, see deltaman.runner.run.
        """
        self.settings = settings
        self.runner = runner

    def with_settings(self, settings: Settings) -> "Toolchain":
        """Returns a toolchain for other settings sharing this runner."""
        return Toolchain(settings, runner=self.runner)

    def rsync_excludes(self) -> List[str]:
        return [f"--exclude=/{name}" for name in config.PROTECTED_FILES]

    def tar_excludes(self) -> List[str]:
        return [f"--exclude=./{name}" for name in config.PROTECTED_FILES]

    def compress(self, source: Path, dest: Path) -> None:
        """Compresses one file into dest."""
        with open(dest, "wb") as out:
            self.runner(
                [self.settings.xz, "--compress", "--stdout"]
                + list(self.settings.xz_options)
                + [str(source)],
                stdout=out,
            )

    def decompress(self, source: Path, dest: Path) -> None:
        """Decompresses one file into dest."""
        with open(dest, "wb") as out:
            self.runner(
                [self.settings.xz, "--decompress", "--stdout", str(source)],
                stdout=out,
            )

    def make_diff(self, source_dir, image_dir, out) -> None:
        """Generates a diff artifact from the working image to source_dir and
        updates the working image in place. The intermediate batch file is
        written next to out.

        :param source_dir: new content.
        :param image_dir: working image, holds the previous version.
        :param out: path of the compressed artifact to write.
        """
        out = Path(out)
        batch = out.parent / "batch"
        self.runner(
            [self.settings.rsync]
            + list(self.settings.rsync_options)
            + self.rsync_excludes()
            + [f"--write-batch={batch}", dir_arg(source_dir), dir_arg(image_dir)]
        )
        self.compress(batch, out)

    def apply_diff(self, artifact, dest_dir) -> None:
        """Replays a diff artifact onto dest_dir, which must hold the
        version preceding the artifact.

        :param artifact: path of the compressed artifact.
        :param dest_dir: directory to update.
        """
        try:
            scratch = tempfile.TemporaryDirectory(prefix="deltaman-")
        except OSError as e:
            raise IOFailure(f"Cannot create temporary directory: {e}")
        with scratch as tmpdir:
            batch = Path(tmpdir) / "batch"
            self.decompress(Path(artifact), batch)
            self.runner(
                [self.settings.rsync]
                + list(self.settings.rsync_options)
                + self.rsync_excludes()
                + [f"--read-batch={batch}", dir_arg(dest_dir)]
            )

    def make_full(self, source_dir, out) -> None:
        """Archives source_dir into a full image artifact.

        :param source_dir: content to archive.
        :param out: path of the archive to write.
        """
        self.runner(
            [self.settings.tar, "--create", f"--file={out}"]
            + list(self.settings.tar_options)
            + self.tar_excludes()
            + [f"--directory={source_dir}", "."]
        )

    def apply_full(self, artifact, dest_dir) -> None:
        """Extracts a full image artifact into dest_dir.

        :param artifact: path of the archive.
        :param dest_dir: existing directory to extract into.
        """
        log.debug("Extracting %s into %s", artifact, dest_dir)
        self.runner(
            [self.settings.tar, "--extract", f"--file={artifact}"]
            + list(self.settings.tar_options)
            + self.tar_excludes()
            + [f"--directory={dest_dir}"]
        )
