"""Mock SSH connector and SFTP server backed by a local directory.

The mock SFTP client implements the subset of `paramiko.SFTPClient` that
`~syncpod.storage.filesystem.SFTPFilesystem` uses, mapping paths under the
mount path of the helper onto a directory on local disk.
"""

from __future__ import annotations

import errno
import os
import threading
from datetime import timedelta
from pathlib import Path, PurePosixPath
from typing import IO, cast
from unittest.mock import Mock

import paramiko
from structlog.stdlib import BoundLogger

from syncpod.exceptions import SSHConnectionError
from syncpod.storage.ssh import SSHConnector, SSHSession
from syncpod.timeout import Timeout

__all__ = [
    "MockSFTPClient",
    "MockSFTPServer",
    "MockSSHConnector",
    "MockSSHSession",
]


class MockSFTPServer:
    """Shared state of the volume as seen by every mock SFTP channel.

    Parameters
    ----------
    root
        Local directory holding the contents of the volume.
    mount_path
        Path at which the helper mounts the volume.

    Attributes
    ----------
    owners
        Numeric owner and group set through ``chown``, by remote path.
    fail_paths
        Remote paths for which ``open`` fails with a permission error.
    clients
        Every client opened so far.
    """

    def __init__(self, root: Path, mount_path: str = "/data") -> None:
        self.root = root
        self.mount_path = PurePosixPath(mount_path)
        self.owners: dict[str, tuple[int, int]] = {}
        self.fail_paths: set[str] = set()
        self.clients: list[MockSFTPClient] = []
        self._lock = threading.Lock()
        root.mkdir(parents=True, exist_ok=True)

    def client(self) -> MockSFTPClient:
        """Open a new channel."""
        sftp = MockSFTPClient(self)
        with self._lock:
            self.clients.append(sftp)
        return sftp

    def local_path(self, path: str) -> Path:
        """Map a remote path to the local directory.

        Raises
        ------
        PermissionError
            Raised if the path is outside the mount path.
        """
        remote = PurePosixPath(path)
        if not remote.is_relative_to(self.mount_path):
            msg = "Permission denied"
            raise PermissionError(errno.EACCES, msg, path)
        return self.root / remote.relative_to(self.mount_path)

    def set_owner(self, path: str, uid: int, gid: int) -> None:
        with self._lock:
            self.owners[path] = (uid, gid)


class MockSFTPClient:
    """Mock of one SFTP channel."""

    def __init__(self, server: MockSFTPServer) -> None:
        self._server = server
        self.closed = False

    def chmod(self, path: str, mode: int) -> None:
        self._server.local_path(path).chmod(mode)

    def chown(self, path: str, uid: int, gid: int) -> None:
        self._server.local_path(path).lstat()
        self._server.set_owner(path, uid, gid)

    def close(self) -> None:
        self.closed = True

    def listdir_attr(self, path: str = ".") -> list[paramiko.SFTPAttributes]:
        directory = self._server.local_path(path)
        return [
            paramiko.SFTPAttributes.from_stat(
                os.lstat(directory / name), filename=name
            )
            for name in os.listdir(directory)
        ]

    def lstat(self, path: str) -> paramiko.SFTPAttributes:
        st = os.lstat(self._server.local_path(path))
        return paramiko.SFTPAttributes.from_stat(st)

    def mkdir(self, path: str, mode: int = 0o777) -> None:
        self._server.local_path(path).mkdir(mode)

    def open(self, filename: str, mode: str = "r") -> IO[bytes]:
        if filename in self._server.fail_paths:
            raise PermissionError(errno.EACCES, "Permission denied", filename)
        return cast("IO[bytes]", self._server.local_path(filename).open(mode))


class MockSSHSession(SSHSession):
    """SSH session whose SFTP channels come from a mock server."""

    def __init__(self, server: MockSFTPServer, logger: BoundLogger) -> None:
        super().__init__(Mock(spec=paramiko.Transport), logger)
        self._server = server
        self.closed = False

    def open_sftp(self) -> paramiko.SFTPClient:
        sftp = cast("paramiko.SFTPClient", self._server.client())
        with self._lock:
            self._channels.append(sftp)
        return sftp

    def close(self) -> None:
        super().close()
        self.closed = True


class MockSSHConnector(SSHConnector):
    """SSH connector that hands out sessions to a mock SFTP server.

    Attributes
    ----------
    connections
        Host and port of every successful connection.
    sessions
        Every session handed out.
    fail
        If set, `connect` raises `~syncpod.exceptions.SSHConnectionError`.
    """

    def __init__(self, server: MockSFTPServer, logger: BoundLogger) -> None:
        super().__init__(retry_interval=timedelta(seconds=0), logger=logger)
        self._server = server
        self._mock_logger = logger
        self.connections: list[tuple[str, int]] = []
        self.sessions: list[MockSSHSession] = []
        self.fail = False

    async def wait_ready(
        self, host: str, port: int, key: paramiko.PKey, timeout: Timeout
    ) -> None:
        assert isinstance(key, paramiko.Ed25519Key)
        timeout.left()

    async def connect(
        self, host: str, port: int, key: paramiko.PKey, timeout: Timeout
    ) -> SSHSession:
        if self.fail:
            raise SSHConnectionError(f"Cannot connect to {host}:{port}")
        self.connections.append((host, port))
        session = MockSSHSession(self._server, self._mock_logger)
        self.sessions.append(session)
        return session
