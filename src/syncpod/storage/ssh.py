"""SSH and SFTP access to the helper pod."""

from __future__ import annotations

import asyncio
import socket
import threading
from datetime import timedelta

import paramiko
from structlog.stdlib import BoundLogger

from ..constants import SSH_USER
from ..exceptions import SSHConnectionError
from ..timeout import Timeout

__all__ = ["SSHConnector", "SSHSession"]

_TRANSPORT_ERRORS = (EOFError, OSError, paramiko.SSHException)
"""Exceptions paramiko raises for refused or broken connections."""


class SSHSession:
    """An authenticated SSH connection to the helper.

    Each SFTP channel opened through this session is independent, so
    separate threads can each use their own channel over the one
    authenticated transport.

    Parameters
    ----------
    transport
        Authenticated transport.
    logger
        Logger to use.
    """

    def __init__(
        self, transport: paramiko.Transport, logger: BoundLogger
    ) -> None:
        self._transport = transport
        self._logger = logger
        self._channels: list[paramiko.SFTPClient] = []
        self._lock = threading.Lock()

    def open_sftp(self) -> paramiko.SFTPClient:
        """Open a new SFTP channel.

        This blocks, so call it from a worker thread.

        Returns
        -------
        paramiko.SFTPClient
            New SFTP client, closed when the session is closed.

        Raises
        ------
        SSHConnectionError
            Raised if the channel could not be opened.
        """
        try:
            sftp = paramiko.SFTPClient.from_transport(self._transport)
        except _TRANSPORT_ERRORS as e:
            raise SSHConnectionError(f"Cannot open SFTP channel: {e}") from e
        if sftp is None:
            raise SSHConnectionError("Cannot open SFTP channel")
        with self._lock:
            self._channels.append(sftp)
        return sftp

    def close(self) -> None:
        """Close all SFTP channels and then the transport."""
        with self._lock:
            channels = self._channels
            self._channels = []
        for channel in channels:
            try:
                channel.close()
            except _TRANSPORT_ERRORS as e:
                self._logger.debug("Error closing SFTP channel", error=str(e))
        self._transport.close()


class SSHConnector:
    """Establish SSH sessions to the helper SSH daemon.

    Authentication is by public key as root only. Host keys are not
    verified, since every helper generates fresh host keys and lives only
    for the duration of one job.

    Parameters
    ----------
    retry_interval
        Delay between connection attempts while waiting for the daemon.
    logger
        Logger to use.
    """

    def __init__(
        self, *, retry_interval: timedelta, logger: BoundLogger
    ) -> None:
        self._retry_interval = retry_interval
        self._logger = logger

    async def wait_ready(
        self, host: str, port: int, key: paramiko.PKey, timeout: Timeout
    ) -> None:
        """Wait until the SSH daemon accepts an authenticated login.

        The pod reports running as soon as its container starts, which is
        before the daemon listens or has read the authorized key, so a full
        handshake is the only reliable readiness check.

        Parameters
        ----------
        host
            Host to connect to.
        port
            Port to connect to.
        key
            Private key to authenticate with.
        timeout
            How long to wait. Construct it with
            `~syncpod.exceptions.SSHTimeoutError` as the error class.

        Raises
        ------
        OperationTimeoutError
            Raised if no login succeeded before the timeout expired.
        """
        logger = self._logger.bind(host=host, port=port)
        attempt = 0
        async with timeout.enforce():
            while True:
                attempt += 1
                try:
                    transport = await self._open_transport(
                        host, port, key, timeout.left()
                    )
                except _TRANSPORT_ERRORS as e:
                    msg = "SSH daemon not ready"
                    logger.debug(msg, attempt=attempt, error=str(e))
                    await asyncio.sleep(self._retry_interval.total_seconds())
                    continue
                transport.close()
                logger.debug("SSH daemon is ready", attempts=attempt)
                return

    async def connect(
        self, host: str, port: int, key: paramiko.PKey, timeout: Timeout
    ) -> SSHSession:
        """Open an authenticated session.

        Parameters
        ----------
        host
            Host to connect to.
        port
            Port to connect to.
        key
            Private key to authenticate with.
        timeout
            Timeout on the handshake.

        Returns
        -------
        SSHSession
            Authenticated session. The caller must close it.

        Raises
        ------
        SSHConnectionError
            Raised if the connection or authentication failed.
        OperationTimeoutError
            Raised if the timeout expired.
        """
        try:
            async with timeout.enforce():
                transport = await self._open_transport(
                    host, port, key, timeout.left()
                )
        except _TRANSPORT_ERRORS as e:
            msg = f"Cannot connect to {SSH_USER}@{host}:{port}: {e}"
            raise SSHConnectionError(msg) from e
        self._logger.info("Connected to helper", host=host, port=port)
        return SSHSession(transport, self._logger)

    async def _open_transport(
        self, host: str, port: int, key: paramiko.PKey, timeout: float
    ) -> paramiko.Transport:
        """Run the handshake in a thread.

        The thread cannot be interrupted, so if the caller is cancelled, a
        transport the thread completes afterwards is closed when it
        arrives.
        """
        handshake = asyncio.ensure_future(
            asyncio.to_thread(self._handshake, host, port, key, timeout)
        )
        try:
            return await asyncio.shield(handshake)
        except asyncio.CancelledError:
            handshake.add_done_callback(_close_late_transport)
            raise

    def _handshake(
        self, host: str, port: int, key: paramiko.PKey, timeout: float
    ) -> paramiko.Transport:
        sock = socket.create_connection((host, port), timeout=timeout)
        try:
            transport = paramiko.Transport(sock)
        except _TRANSPORT_ERRORS:
            sock.close()
            raise
        transport.banner_timeout = timeout
        transport.handshake_timeout = timeout
        transport.auth_timeout = timeout
        try:
            transport.connect(username=SSH_USER, pkey=key)
        except _TRANSPORT_ERRORS:
            transport.close()
            raise
        return transport


def _close_late_transport(future: asyncio.Future[paramiko.Transport]) -> None:
    """Close a transport whose handshake finished after cancellation."""
    if future.cancelled() or future.exception():
        return
    future.result().close()
