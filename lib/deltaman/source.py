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
Contains provenance functions: who committed a version, and from what.
"""

import os
import time
from collections import OrderedDict
from typing import Dict

import git

from deltaman import config, util
from deltaman.logger import log


def get_remote_url(repo: git.Repo) -> str:
    """Returns the origin url of a repo, or its first remote, or ''."""
    if not repo.remotes:
        return ""
    if "origin" in [r.name for r in repo.remotes]:
        url = repo.remotes.origin.url
    else:
        url = repo.remotes[0].url
    # drop credentials from the url
    if "@" in url:
        url = url.split("@", 1)[-1]
    return url


def read_git_info(directory: str) -> Dict[str, object]:
    """Reads git metadata for a directory inside a git work tree.

    :param directory: directory to inspect.
    :return: dictionary with origin, branch, head and dirty keys, empty if
        the directory is not in a git work tree.
    """
    info: Dict[str, object] = OrderedDict()
    try:
        repo = git.Repo(directory, search_parent_directories=True)
    except (git.InvalidGitRepositoryError, git.NoSuchPathError):
        log.debug("Not in a git repository: %s", directory)
        return info

    try:
        info[config.TAG_ORIGIN] = get_remote_url(repo) or repo.working_tree_dir
        try:
            info[config.TAG_BRANCH] = repo.active_branch.name
        except (TypeError, AttributeError):
            log.warning("Warning: Detached HEAD or no active branch")
        info[config.TAG_HEAD] = repo.head.commit.hexsha
        info[config.TAG_DIRTY] = repo.is_dirty(untracked_files=True)
    except Exception as e:
        log.warning("Error reading git repo: %s", str(e))
    finally:
        repo.close()

    return info


def read_provenance(source_dir: str) -> Dict[str, object]:
    """Builds the provenance record of a commit from source_dir.

    :param source_dir: committed content directory.
    :return: ordered mapping of record values.
    """
    info: Dict[str, object] = OrderedDict()
    info[config.TAG_SOURCEPATH] = os.path.abspath(source_dir)
    info[config.TAG_AUTHOR] = util.get_user()
    info[config.TAG_TIME] = time.strftime("%Y-%m-%d %H:%M:%S")
    info.update(read_git_info(source_dir))
    return info


def describe(info: Dict[str, str]) -> str:
    """One line summary of a provenance record."""
    if not info:
        return "(no provenance)"
    text = f"{info.get(config.TAG_TIME, '?')} - {info.get(config.TAG_AUTHOR, '?')}"
    head = info.get(config.TAG_HEAD)
    if head:
        text += f" - {info.get(config.TAG_BRANCH, '?')}@{head[: config.LEN_HASH]}"
        if info.get(config.TAG_DIRTY) == "True":
            text += " (dirty)"
    return text
