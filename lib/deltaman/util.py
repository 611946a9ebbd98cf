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
Contains utility functions and classes.
"""

import os
import shutil
import socket
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Iterable, Union

from deltaman import config
from deltaman.errors import IOFailure
from deltaman.logger import log

PathLike = Union[str, Path]


def get_user() -> str:
    """Returns the current user name.

    :return: username from environment variables.
    """
    return os.getenv("USER", os.getenv("USERNAME", "unknown"))


def get_host() -> str:
    """Returns the short host name."""
    return socket.gethostname().split(".")[0]


def ensure_dir(p: PathLike) -> None:
    """Ensure that directory p exists.

    :param p: directory path to ensure.
    :raises IOFailure: if the directory cannot be created.
    """
    try:
        Path(p).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOFailure(f"Failed to create directory '{p}': {e}")


def remove_object(path: PathLike) -> None:
    """Deletes a file, link or directory tree.

    :param path: file system path.
    :raises IOFailure: if the object cannot be removed.
    """
    path = str(path)
    try:
        if os.path.islink(path) or os.path.isfile(path):
            os.remove(path)
        elif os.path.isdir(path):
            shutil.rmtree(path)
    except OSError as e:
        raise IOFailure(f"Error removing '{path}': {e}")


def clear_directory(path: PathLike, keep: Iterable[str] = ()) -> int:
    """Deletes everything inside a directory except the top level entries
    named in keep. The directory itself is left in place.

    :param path: directory to clear.
    :param keep: names of top level entries to preserve.
    :raises IOFailure: if the directory cannot be listed or cleared.
    :return: number of top level entries removed.
    """
    keep = set(keep)
    try:
        entries = list(os.scandir(path))
    except OSError as e:
        raise IOFailure(f"Cannot list '{path}': {e}")
    removed = 0
    for entry in entries:
        if entry.name in keep:
            continue
        remove_object(entry.path)
        removed += 1
    return removed


def recreate_directory(path: PathLike) -> None:
    """Removes a directory tree entirely and creates it again, empty.

    :param path: directory path.
    """
    if os.path.lexists(path):
        remove_object(path)
    ensure_dir(path)


@contextmanager
def staging_dir(parent: PathLike) -> Generator[Path, None, None]:
    """Context manager yielding a hidden scratch directory inside parent,
    removed on exit whatever happens. Files staged there are on the same
    filesystem as parent, so they can be renamed into place atomically.

    :param parent: directory to create the scratch directory in.
    """
    try:
        path = Path(tempfile.mkdtemp(prefix=config.STAGING_PREFIX, dir=str(parent)))
    except OSError as e:
        raise IOFailure(f"Cannot create staging directory in '{parent}': {e}")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@contextmanager
def atomic_file(dest: PathLike) -> Generator[Path, None, None]:
    """Context manager yielding a temporary path for dest. When the block
    completes the temporary file replaces dest in one rename; when it raises,
    the temporary file is discarded and dest is left untouched:

        with atomic_file("/dist/4.diff") as tmp:
            write_something(tmp)

    :param dest: final path of the file.
    """
    dest = Path(dest)
    with staging_dir(dest.parent) as staging:
        tmp = staging / dest.name
        yield tmp
        if not tmp.exists():
            raise IOFailure(f"Nothing was written for '{dest}'")
        try:
            os.replace(tmp, dest)
        except OSError as e:
            raise IOFailure(f"Failed to move '{tmp}' to '{dest}': {e}")


def write_info(dest: PathLike, info: Dict[str, object]) -> None:
    """Atomically writes a record of key: value lines.

    :param dest: file path.
    :param info: ordered mapping of values.
    """
    log.debug("Writing info to %s", dest)
    with atomic_file(dest) as tmp:
        with open(tmp, "w") as outFile:
            for key, value in info.items():
                outFile.write(f"{key}: {value}\n")


def read_info(path: PathLike) -> Dict[str, str]:
    """Reads a record written by write_info. Missing files read as empty.

    :param path: file path.
    :return: dictionary of string values.
    """
    info = {}
    try:
        with open(path, "r") as inFile:
            for line in inFile:
                key, sep, value = line.partition(":")
                if sep:
                    info[key.strip()] = value.strip()
    except FileNotFoundError:
        pass
    except OSError as e:
        raise IOFailure(f"Cannot read '{path}': {e}")
    return info
