"""Working-directory resolution for new sessions.

A terminal must always start somewhere valid: every failure here falls
back to the home directory instead of raising.
"""

from __future__ import annotations

import logging
import ntpath
import os
import posixpath
import stat
import sys
from typing import Protocol, runtime_checkable

import aiofiles.os

from termhub.pty.errors import PathRejected

logger = logging.getLogger(__name__)


@runtime_checkable
class FileAccess(Protocol):
    """Boundary-enforcing filesystem access."""

    def resolve(self, path: str) -> str:
        """Return the absolute path, or raise PathRejected if out of bounds."""
        ...

    async def stat(self, path: str) -> os.stat_result: ...


class LocalFileAccess:
    """Local filesystem access, optionally confined to ``root``."""

    def __init__(self, root: str | None = None) -> None:
        self._root = os.path.realpath(root) if root else None

    def resolve(self, path: str) -> str:
        resolved = os.path.realpath(path)
        if self._root is not None:
            if os.path.commonpath([self._root, resolved]) != self._root:
                raise PathRejected(f"{path} is outside {self._root}")
        return resolved

    async def stat(self, path: str) -> os.stat_result:
        return await aiofiles.os.stat(path)


class WorkingDirectoryResolver:
    def __init__(
        self,
        files: FileAccess | None = None,
        home: str | None = None,
        platform: str | None = None,
    ) -> None:
        self._files = files or LocalFileAccess()
        self.home = home or os.path.expanduser("~")
        self._windows = (platform or sys.platform) == "win32"
        self._path = ntpath if self._windows else posixpath

    def normalize(self, requested: str) -> str:
        """Make ``requested`` absolute and collapse a doubled leading separator.

        A Windows UNC prefix (``\\\\server\\share``) is kept as is.
        """
        if self._windows and requested.startswith("\\\\"):
            return requested
        path = self._path.expanduser(requested)
        sep = self._path.sep
        if self._windows:
            path = path.replace("/", sep)
        while path.startswith(sep * 2):
            path = path[1:]
        return self._path.normpath(self._path.abspath(path))

    async def resolve(self, requested: str | None = None) -> str:
        if not requested:
            return self.home

        if "\x00" in requested:
            logger.warning("Rejected working directory containing a null byte")
            return self.home

        try:
            target = self._files.resolve(self.normalize(requested))
            st = await self._files.stat(target)
        except Exception as e:
            logger.info("Working directory %r unusable (%s), using home", requested, e)
            return self.home

        if not stat.S_ISDIR(st.st_mode):
            logger.info("Working directory %r is not a directory, using home", requested)
            return self.home
        return target
