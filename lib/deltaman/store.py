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
Contains version arithmetic over the artifacts of a distribution directory.
"""

import os
import re
from typing import List, Optional, Tuple

from deltaman import config
from deltaman.errors import BrokenInvariant, IOFailure

# matches committed artifact names, e.g. 12.full or 13.diff
ARTIFACT_PATTERN = re.compile(
    r"^(\d+)(%s|%s)$" % (re.escape(config.FULL_EXT), re.escape(config.DIFF_EXT))
)


def parse_artifact_name(name: str) -> Optional[Tuple[int, str]]:
    """Parses an artifact file name.

    :param name: file name, without directory.
    :return: tuple of (version, extension), or None if not an artifact.
    """
    m = ARTIFACT_PATTERN.match(name)
    if not m:
        return None
    return int(m.group(1)), m.group(2)


class VersionStore(object):
    """Derives versions from the artifact names in a distribution
    directory. Nothing is cached: every call reads the directory, so a
    store can be shared with a process that is committing."""

    def __init__(self, directory: str, full_interval: int = config.FULL_INTERVAL_DEFAULT):
        """Initializes the version store.

        :param directory: distribution directory.
        :param full_interval: full image cadence.
        """
        self.directory = str(directory)
        self.full_interval = full_interval

    def __repr__(self):
        return f"<VersionStore {self.directory}>"

    def _scan(self) -> List[Tuple[int, str]]:
        try:
            names = os.listdir(self.directory)
        except OSError as e:
            raise IOFailure(f"Cannot list '{self.directory}': {e}")
        return [p for p in (parse_artifact_name(n) for n in names) if p]

    def full_path(self, version: int) -> str:
        return os.path.join(self.directory, f"{version}{config.FULL_EXT}")

    def diff_path(self, version: int) -> str:
        return os.path.join(self.directory, f"{version}{config.DIFF_EXT}")

    def info_path(self, version: int) -> str:
        return os.path.join(self.directory, f"{version}{config.INFO_EXT}")

    def has_full(self, version: int) -> bool:
        return os.path.isfile(self.full_path(version))

    def has_diff(self, version: int) -> bool:
        return os.path.isfile(self.diff_path(version))

    def is_full_version(self, version: int) -> bool:
        """Returns True if version must carry a full image artifact."""
        return version == 1 or version % self.full_interval == 1

    def current_version(self) -> int:
        """Returns the highest committed version, 0 if nothing is committed.

        :return: current version.
        """
        return max((v for v, _ in self._scan()), default=0)

    def find_latest_full_version(self, upto: Optional[int] = None) -> int:
        """Returns the most recent version with a full image artifact, at or
        below upto (default the current version).

        :param upto: highest version to consider.
        :raises BrokenInvariant: if no full image exists.
        :return: version number.
        """
        if upto is None:
            upto = self.current_version()
        for version in range(upto, 0, -1):
            if self.has_full(version):
                return version
        raise BrokenInvariant(
            f"No full image found in '{self.directory}' at or below version {upto}"
        )

    def artifact_versions(self) -> List[Tuple[int, bool, bool]]:
        """Lists versions that have any artifact.

        :return: sorted list of (version, has_full, has_diff).
        """
        found = {}
        for version, ext in self._scan():
            full, diff = found.get(version, (False, False))
            if ext == config.FULL_EXT:
                full = True
            else:
                diff = True
            found[version] = (full, diff)
        return [(v, f, d) for v, (f, d) in sorted(found.items())]

    def check(self) -> List[str]:
        """Verifies version contiguity and full image cadence.

        :return: list of problems, empty when consistent.
        """
        problems = []
        current = self.current_version()
        versions = {v: (f, d) for v, f, d in self.artifact_versions()}
        if 0 in versions:
            problems.append("artifact found for version 0")
        for version in range(1, current + 1):
            full, diff = versions.get(version, (False, False))
            if version > 1 and not diff:
                problems.append(f"missing diff for version {version}")
            if self.is_full_version(version) and not full:
                problems.append(f"missing full image for version {version}")
            if full and not self.is_full_version(version):
                problems.append(f"unexpected full image for version {version}")
        if current and versions.get(1, (False, False))[1]:
            problems.append("unexpected diff for version 1")
        return problems
