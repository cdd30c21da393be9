"""Upload and download jobs."""

from __future__ import annotations

import asyncio
import posixpath
from dataclasses import dataclass
from pathlib import Path, PurePath, PurePosixPath

from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import (
    InvalidPathError,
    OwnershipError,
    PlanningError,
    SSHTimeoutError,
    TransferCancelledError,
    TransferFailedError,
)
from ..models.domain.helper import HelperResource
from ..models.domain.transfer import Direction, Ownership, TransferOutcome
from ..storage.filesystem import Filesystem, LocalFilesystem, SFTPFilesystem
from ..storage.ssh import SSHConnector, SSHSession
from ..timeout import Timeout
from .endpoint import EndpointManager
from .executor import FilesystemFactory, TransferExecutor
from .keys import KeyPair
from .planner import SyncPlanner
from .resolver import NodeResolver

__all__ = ["SyncJob", "TransferRequest", "resolve_remote_path"]


@dataclass(frozen=True)
class TransferRequest:
    """Parameters of one upload or download job."""

    direction: Direction
    """Whether to copy into or out of the volume."""

    pvc: str
    """Name of the PersistentVolumeClaim."""

    namespace: str
    """Namespace of the claim."""

    mount_path: str
    """Absolute path at which the helper mounts the volume."""

    source: str
    """Local directory for uploads, path inside the volume for downloads."""

    destination: str
    """Path inside the volume for uploads, local directory for downloads."""

    workers: int
    """Number of concurrent transfer workers."""

    allow_overwrite: bool = False
    """Whether an upload may replace existing entries."""

    owner: Ownership | None = None
    """Owner to apply to the uploaded tree."""


def resolve_remote_path(mount_path: str, path: str) -> PurePosixPath:
    """Map a path inside the volume to a path inside the helper.

    Parameters
    ----------
    mount_path
        Absolute mount path of the volume.
    path
        Path relative to the root of the volume. A leading ``/`` is
        ignored.

    Returns
    -------
    PurePosixPath
        Normalized path under the mount path.

    Raises
    ------
    InvalidPathError
        Raised if the mount path is not absolute or the path would escape
        it.
    """
    if not posixpath.isabs(mount_path):
        msg = f"Mount path must be absolute: {mount_path}"
        raise InvalidPathError(msg)
    mount = PurePosixPath(posixpath.normpath(mount_path))
    relative = posixpath.normpath(path.lstrip("/") or ".")
    if relative == ".." or relative.startswith("../"):
        msg = f"Path {path} is outside the volume mounted at {mount}"
        raise InvalidPathError(msg)
    return mount if relative == "." else mount / relative


class SyncJob:
    """Run one upload or download against a volume.

    The job resolves the node holding the volume, starts a helper pinned
    to it, connects over SSH, plans and executes the transfer, and always
    deletes the helper afterwards.

    Parameters
    ----------
    config
        syncpod configuration.
    node_resolver
        Finds the node holding the volume.
    endpoint_manager
        Creates and deletes the helper.
    ssh_connector
        Connects to the helper SSH daemon.
    planner
        Plans the transfer.
    executor
        Executes the transfer.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config: Config,
        node_resolver: NodeResolver,
        endpoint_manager: EndpointManager,
        ssh_connector: SSHConnector,
        planner: SyncPlanner,
        executor: TransferExecutor,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._resolver = node_resolver
        self._endpoint = endpoint_manager
        self._connector = ssh_connector
        self._planner = planner
        self._executor = executor
        self._logger = logger

    async def run(
        self, request: TransferRequest, cancel: asyncio.Event | None = None
    ) -> TransferOutcome:
        """Run the job.

        Parameters
        ----------
        request
            What to transfer.
        cancel
            Event that, when set, stops the job. Before copying starts, the
            job is abandoned at once and the helper deleted. Once copying
            has started, workers stop taking new items. The job timeout, if
            configured, sets it as well.

        Returns
        -------
        TransferOutcome
            Outcome of a transfer in which every planned item succeeded.

        Raises
        ------
        SyncPodError
            Raised for any failure. `TransferFailedError` reports items that
            could not be transferred and `TransferCancelledError` a transfer
            that was stopped early.
        """
        cancel = cancel if cancel is not None else asyncio.Event()
        if request.direction == Direction.UPLOAD:
            remote_path = resolve_remote_path(
                request.mount_path, request.destination
            )
        else:
            remote_path = resolve_remote_path(
                request.mount_path, request.source
            )
        logger = self._logger.bind(
            direction=request.direction.value,
            pvc=request.pvc,
            namespace=request.namespace,
        )

        deadline = None
        if self._config.job_timeout:
            loop = asyncio.get_running_loop()
            delay = self._config.job_timeout.total_seconds()
            deadline = loop.call_later(delay, cancel.set)
        copying = asyncio.Event()
        job = asyncio.create_task(
            self._run(request, remote_path, cancel, copying, logger)
        )
        cancelled = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait(
                {job, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
            if not job.done() and not copying.is_set():
                logger.warning("Cancelling job before copying started")
                job.cancel()
                await asyncio.wait({job})
                raise TransferCancelledError
            outcome = await job
        finally:
            cancelled.cancel()
            if not job.done():
                job.cancel()
                await asyncio.wait({job})
            if deadline:
                deadline.cancel()

        if outcome.failed:
            raise TransferFailedError(outcome)
        if outcome.cancelled:
            raise TransferCancelledError(outcome)
        logger.info(
            "Transfer complete",
            transferred=outcome.completed,
        )
        return outcome

    async def _run(
        self,
        request: TransferRequest,
        remote_path: PurePosixPath,
        cancel: asyncio.Event,
        copying: asyncio.Event,
        logger: BoundLogger,
    ) -> TransferOutcome:
        key_pair = KeyPair.generate()
        timeout = Timeout("Node resolution", self._config.startup_timeout)
        binding = await self._resolver.resolve(
            request.pvc, request.namespace, timeout
        )
        endpoint = self._endpoint.endpoint(
            pvc=request.pvc,
            namespace=request.namespace,
            mount_path=request.mount_path,
            key_pair=key_pair,
            binding=binding,
        )
        async with endpoint as helper:
            session = await self._connect(helper, key_pair)
            try:
                return await self._transfer(
                    request, remote_path, session, cancel, copying, logger
                )
            finally:
                await asyncio.to_thread(session.close)

    async def _connect(
        self, helper: HelperResource, key_pair: KeyPair
    ) -> SSHSession:
        host = helper.host or helper.binding.address
        port = helper.external_port or helper.port
        key = key_pair.to_paramiko()
        timeout = Timeout(
            "SSH readiness", self._config.ssh_timeout, error=SSHTimeoutError
        )
        await self._connector.wait_ready(host, port, key, timeout)
        timeout = Timeout("SSH connection", self._config.ssh_timeout)
        return await self._connector.connect(host, port, key, timeout)

    async def _transfer(
        self,
        request: TransferRequest,
        remote_path: PurePosixPath,
        session: SSHSession,
        cancel: asyncio.Event,
        copying: asyncio.Event,
        logger: BoundLogger,
    ) -> TransferOutcome:
        def remote_factory() -> Filesystem:
            return SFTPFilesystem(session.open_sftp())

        remote = await asyncio.to_thread(remote_factory)
        local = LocalFilesystem()
        upload = request.direction == Direction.UPLOAD
        # A source of "." or "/" copies its contents, not the directory.
        contents_only = upload and Path(request.source).name == ""
        try:
            if upload:
                source_root: PurePath = Path(request.source).resolve()
                dest_root: PurePath = remote_path
                source_fs, dest_fs = local, remote
                factories: tuple[FilesystemFactory, FilesystemFactory] = (
                    LocalFilesystem,
                    remote_factory,
                )
            else:
                source_root = remote_path
                dest_root = Path(request.destination).resolve()
                source_fs, dest_fs = remote, local
                factories = (remote_factory, LocalFilesystem)

            try:
                await asyncio.to_thread(dest_fs.makedirs, dest_root)
            except OSError as e:
                reason = e.strerror or str(e)
                raise PlanningError(str(dest_root), reason) from e
            items = await self._planner.plan(
                source_fs=source_fs,
                source_root=source_root,
                dest_fs=dest_fs,
                dest_root=dest_root,
                direction=request.direction,
                allow_overwrite=request.allow_overwrite,
                contents_only=contents_only,
                cancel=cancel,
            )
            copying.set()
            outcome = await self._executor.execute(
                items,
                source_fs_factory=factories[0],
                dest_fs_factory=factories[1],
                workers=request.workers,
                cancel=cancel,
            )
            if upload and request.owner and outcome.success:
                top = dest_root
                if not contents_only:
                    top = dest_root / source_root.name
                logger.info(
                    "Changing owner",
                    path=str(top),
                    uid=request.owner.uid,
                    gid=request.owner.gid,
                )
                await asyncio.to_thread(
                    self._change_owner, dest_fs, top, request.owner
                )
            return outcome
        finally:
            await asyncio.to_thread(remote.close)

    def _change_owner(
        self, fs: Filesystem, root: PurePath, owner: Ownership
    ) -> None:
        """Change the owner of a tree, including its root."""
        path = root
        try:
            fs.chown(root, owner.uid, owner.gid)
            for _, info in fs.walk(root):
                if info.kind is None:
                    continue
                path = info.path
                fs.chown(path, owner.uid, owner.gid)
        except OSError as e:
            raise OwnershipError(str(path), e.strerror or str(e)) from e
