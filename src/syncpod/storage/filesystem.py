"""Filesystem access for both ends of a transfer.

Upload and download run the same pipeline with the roles of the local and
remote filesystems swapped, so both are exposed through one interface. All
methods block and are meant to be called from worker threads.
"""

from __future__ import annotations

import errno
import hashlib
import os
import stat
from abc import ABCMeta, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path, PurePath, PurePosixPath
from typing import IO, override

import paramiko

from ..constants import HASH_CHUNK_SIZE
from ..models.domain.transfer import EntryKind

__all__ = [
    "FileInfo",
    "Filesystem",
    "LocalFilesystem",
    "SFTPFilesystem",
]


@dataclass(frozen=True, slots=True)
class FileInfo:
    """Metadata about one filesystem entry, without following links."""

    name: str
    """Base name of the entry."""

    path: PurePath
    """Full path of the entry."""

    kind: EntryKind | None
    """Kind of entry, or `None` for symlinks and special files."""

    mode: int
    """Permission bits of the entry."""

    @classmethod
    def from_mode(cls, path: PurePath, st_mode: int) -> FileInfo:
        """Build from a path and a raw ``st_mode``."""
        if stat.S_ISDIR(st_mode):
            kind: EntryKind | None = EntryKind.DIRECTORY
        elif stat.S_ISREG(st_mode):
            kind = EntryKind.FILE
        else:
            kind = None
        return cls(
            name=path.name, path=path, kind=kind, mode=stat.S_IMODE(st_mode)
        )


class Filesystem(metaclass=ABCMeta):
    """Blocking operations needed to plan and execute a transfer."""

    @abstractmethod
    def path(self, path: str | PurePath) -> PurePath:
        """Convert a path to the flavor used by this filesystem."""

    @abstractmethod
    def stat(self, path: PurePath) -> FileInfo | None:
        """Get metadata for a path without following links.

        Returns
        -------
        FileInfo or None
            Metadata, or `None` if nothing exists at that path.

        Raises
        ------
        OSError
            Raised for any error other than the path not existing.
        """

    @abstractmethod
    def listdir(self, path: PurePath) -> list[FileInfo]:
        """List a directory, in no particular order."""

    @abstractmethod
    def open_read(self, path: PurePath) -> IO[bytes]:
        """Open a file for reading."""

    @abstractmethod
    def open_write(self, path: PurePath) -> IO[bytes]:
        """Create or truncate a file for writing."""

    @abstractmethod
    def mkdir(self, path: PurePath) -> None:
        """Create a single directory."""

    @abstractmethod
    def chmod(self, path: PurePath, mode: int) -> None:
        """Set the permission bits of a path."""

    @abstractmethod
    def chown(self, path: PurePath, uid: int, gid: int) -> None:
        """Set the numeric owner and group of a path."""

    def close(self) -> None:
        """Release any resources held by this filesystem."""
        return

    def digest(self, path: PurePath) -> str:
        """Compute the SHA-256 of a file, reading it in chunks.

        Returns
        -------
        str
            Hex digest of the file contents.

        Raises
        ------
        OSError
            Raised if the file could not be read.
        """
        sha = hashlib.sha256()
        with self.open_read(path) as f:
            while chunk := f.read(HASH_CHUNK_SIZE):
                sha.update(chunk)
        return sha.hexdigest()

    def makedirs(self, path: PurePath) -> None:
        """Create a directory and any missing parents.

        Existing directories are left alone. Another worker creating the
        same directory concurrently is not an error.

        Raises
        ------
        NotADirectoryError
            Raised if the path or one of its parents is not a directory.
        OSError
            Raised if a directory could not be created.
        """
        missing = []
        current = path
        while True:
            info = self.stat(current)
            if info is not None:
                if info.kind != EntryKind.DIRECTORY:
                    msg = "Not a directory"
                    raise NotADirectoryError(errno.ENOTDIR, msg, str(current))
                break
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent
        for directory in reversed(missing):
            try:
                self.mkdir(directory)
            except OSError:
                info = self.stat(directory)
                if info is None or info.kind != EntryKind.DIRECTORY:
                    raise

    def walk(self, root: PurePath) -> Iterator[tuple[PurePath, FileInfo]]:
        """Walk a tree depth-first.

        Entries within a directory are sorted by name, and each directory is
        returned before its contents. Links are returned but not followed.

        Parameters
        ----------
        root
            Directory to walk. It is not itself returned.

        Yields
        ------
        tuple of PurePath and FileInfo
            Path of the entry relative to ``root`` and its metadata.
        """
        yield from self._walk(root, PurePosixPath())

    def _walk(
        self, directory: PurePath, relative: PurePosixPath
    ) -> Iterator[tuple[PurePath, FileInfo]]:
        for entry in sorted(self.listdir(directory), key=lambda e: e.name):
            path = relative / entry.name
            yield path, entry
            if entry.kind == EntryKind.DIRECTORY:
                yield from self._walk(entry.path, path)


class LocalFilesystem(Filesystem):
    """The filesystem of the machine running syncpod."""

    @override
    def path(self, path: str | PurePath) -> Path:
        return Path(path)

    @override
    def stat(self, path: PurePath) -> FileInfo | None:
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            return None
        return FileInfo.from_mode(Path(path), st.st_mode)

    @override
    def listdir(self, path: PurePath) -> list[FileInfo]:
        directory = Path(path)
        with os.scandir(directory) as entries:
            return [
                FileInfo.from_mode(
                    directory / e.name, e.stat(follow_symlinks=False).st_mode
                )
                for e in entries
            ]

    @override
    def open_read(self, path: PurePath) -> IO[bytes]:
        return Path(path).open("rb")

    @override
    def open_write(self, path: PurePath) -> IO[bytes]:
        return Path(path).open("wb")

    @override
    def mkdir(self, path: PurePath) -> None:
        Path(path).mkdir()

    @override
    def chmod(self, path: PurePath, mode: int) -> None:
        Path(path).chmod(mode)

    @override
    def chown(self, path: PurePath, uid: int, gid: int) -> None:
        os.chown(path, uid, gid, follow_symlinks=False)


class SFTPFilesystem(Filesystem):
    """The volume as seen through an SFTP channel to the helper.

    Parameters
    ----------
    sftp
        SFTP client to use. Closed by `close`.
    """

    def __init__(self, sftp: paramiko.SFTPClient) -> None:
        self._sftp = sftp

    @override
    def path(self, path: str | PurePath) -> PurePosixPath:
        return PurePosixPath(path)

    @override
    def stat(self, path: PurePath) -> FileInfo | None:
        try:
            attrs = self._sftp.lstat(str(path))
        except FileNotFoundError:
            return None
        return FileInfo.from_mode(PurePosixPath(path), attrs.st_mode or 0)

    @override
    def listdir(self, path: PurePath) -> list[FileInfo]:
        directory = PurePosixPath(path)
        return [
            FileInfo.from_mode(directory / a.filename, a.st_mode or 0)
            for a in self._sftp.listdir_attr(str(directory))
        ]

    @override
    def open_read(self, path: PurePath) -> IO[bytes]:
        return self._sftp.open(str(path), "rb")

    @override
    def open_write(self, path: PurePath) -> IO[bytes]:
        return self._sftp.open(str(path), "wb")

    @override
    def mkdir(self, path: PurePath) -> None:
        self._sftp.mkdir(str(path))

    @override
    def chmod(self, path: PurePath, mode: int) -> None:
        self._sftp.chmod(str(path), mode)

    @override
    def chown(self, path: PurePath, uid: int, gid: int) -> None:
        self._sftp.chown(str(path), uid, gid)

    @override
    def close(self) -> None:
        self._sftp.close()
