"""Execute a transfer plan with a fixed pool of workers."""

from __future__ import annotations

import asyncio
import stat
from collections.abc import Callable
from dataclasses import dataclass

import paramiko
from structlog.stdlib import BoundLogger

from ..exceptions import SyncPodError
from ..models.domain.transfer import (
    TransferFailure,
    TransferOutcome,
    WorkItem,
)
from ..storage.filesystem import Filesystem

__all__ = ["FilesystemFactory", "TransferExecutor"]

type FilesystemFactory = Callable[[], Filesystem]
"""Blocking callable returning a new filesystem handle for one worker."""

_ITEM_ERRORS = (EOFError, OSError, paramiko.SSHException, SyncPodError)
"""Exceptions that fail a single item without affecting the others."""

_OWNER_RWX = stat.S_IRWXU


@dataclass
class _WorkerFilesystems:
    """Filesystem handles owned by one worker."""

    source: Filesystem
    destination: Filesystem

    def close(self) -> None:
        self.source.close()
        self.destination.close()


class TransferExecutor:
    """Run work items through a bounded pool of concurrent workers.

    Each worker opens its own source and destination filesystems, so with
    SFTP each worker has its own channel. Blocking I/O runs in threads.

    A failed item never stops other items. By default every item is
    attempted; with ``fail_fast``, the first failure stops workers from
    starting new items, although items already in progress still finish.

    Parameters
    ----------
    chunk_size
        Size of each read while copying a file.
    max_reported_errors
        Maximum number of failures kept in the outcome. The count of
        failures is always exact.
    fail_fast
        Whether to stop starting new items after the first failure.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        chunk_size: int,
        max_reported_errors: int,
        fail_fast: bool = False,
        logger: BoundLogger,
    ) -> None:
        self._chunk_size = chunk_size
        self._max_errors = max_reported_errors
        self._fail_fast = fail_fast
        self._logger = logger

    async def execute(
        self,
        items: list[WorkItem],
        *,
        source_fs_factory: FilesystemFactory,
        dest_fs_factory: FilesystemFactory,
        workers: int,
        cancel: asyncio.Event,
    ) -> TransferOutcome:
        """Transfer all items.

        Parameters
        ----------
        items
            Work items, in the order they should be started.
        source_fs_factory
            Opens a handle to the source filesystem.
        dest_fs_factory
            Opens a handle to the destination filesystem.
        workers
            Number of concurrent workers. Values below one mean one.
        cancel
            When set, workers stop before their next item.

        Returns
        -------
        TransferOutcome
            Result of the transfer once all workers have finished.
        """
        outcome = TransferOutcome(planned=len(items))
        if not items:
            return outcome
        queue: asyncio.Queue[WorkItem] = asyncio.Queue(maxsize=len(items))
        for item in items:
            queue.put_nowait(item)
        stop = asyncio.Event()
        count = max(workers, 1)
        self._logger.info("Starting transfer", items=len(items), workers=count)

        tasks = [
            asyncio.create_task(
                self._worker(
                    n,
                    queue,
                    outcome,
                    factories=(source_fs_factory, dest_fs_factory),
                    cancel=cancel,
                    stop=stop,
                )
            )
            for n in range(count)
        ]
        await asyncio.gather(*tasks)

        restricted = [
            i
            for i in items
            if i.is_dir
            and i.mode is not None
            and i.mode & _OWNER_RWX != _OWNER_RWX
        ]
        if restricted and not cancel.is_set():
            await asyncio.to_thread(
                self._restrict_directories, restricted, dest_fs_factory
            )

        outcome.cancelled = cancel.is_set() and outcome.attempted < len(items)
        self._logger.info(
            "Transfer finished",
            planned=outcome.planned,
            completed=outcome.completed,
            failed=outcome.failed,
            cancelled=outcome.cancelled,
        )
        return outcome

    async def _worker(
        self,
        worker_id: int,
        queue: asyncio.Queue[WorkItem],
        outcome: TransferOutcome,
        *,
        factories: tuple[FilesystemFactory, FilesystemFactory],
        cancel: asyncio.Event,
        stop: asyncio.Event,
    ) -> None:
        logger = self._logger.bind(worker=worker_id)
        filesystems: _WorkerFilesystems | None = None
        try:
            while not cancel.is_set() and not stop.is_set():
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcome.attempted += 1
                try:
                    if filesystems is None:
                        filesystems = await asyncio.to_thread(
                            self._open, factories
                        )
                    await asyncio.to_thread(self._transfer, item, filesystems)
                except _ITEM_ERRORS as e:
                    self._record_failure(outcome, item, e, logger)
                    if self._fail_fast:
                        stop.set()
                else:
                    outcome.completed += 1
                    logger.debug("Transferred", path=str(item.destination))
                finally:
                    queue.task_done()
        finally:
            if filesystems is not None:
                await asyncio.to_thread(filesystems.close)

    def _open(
        self, factories: tuple[FilesystemFactory, FilesystemFactory]
    ) -> _WorkerFilesystems:
        source_factory, dest_factory = factories
        source = source_factory()
        try:
            destination = dest_factory()
        except BaseException:
            source.close()
            raise
        return _WorkerFilesystems(source=source, destination=destination)

    def _record_failure(
        self,
        outcome: TransferOutcome,
        item: WorkItem,
        error: BaseException,
        logger: BoundLogger,
    ) -> None:
        message = str(error) or type(error).__name__
        outcome.failed += 1
        if len(outcome.failures) < self._max_errors:
            failure = TransferFailure(path=str(item.source), message=message)
            outcome.failures.append(failure)
        logger.warning("Transfer failed", path=str(item.source), error=message)

    def _restrict_directories(
        self, items: list[WorkItem], dest_fs_factory: FilesystemFactory
    ) -> None:
        """Apply directory modes that would have blocked writing contents.

        Deepest directories are handled first so that a parent never loses
        write permission before its children are updated.
        """
        fs = dest_fs_factory()
        try:
            for item in reversed(items):
                try:
                    fs.chmod(item.destination, item.mode or 0)
                except _ITEM_ERRORS as e:
                    msg = "Unable to set directory permissions"
                    self._logger.warning(
                        msg, path=str(item.destination), error=str(e)
                    )
        finally:
            fs.close()

    def _transfer(
        self, item: WorkItem, filesystems: _WorkerFilesystems
    ) -> None:
        source = filesystems.source
        destination = filesystems.destination
        if item.is_dir:
            destination.makedirs(item.destination)
            if item.mode is not None:
                mode = item.mode | _OWNER_RWX
                destination.chmod(item.destination, mode)
            return
        destination.makedirs(item.destination.parent)
        with (
            source.open_read(item.source) as src,
            destination.open_write(item.destination) as dst,
        ):
            while chunk := src.read(self._chunk_size):
                dst.write(chunk)
        if item.mode is not None:
            destination.chmod(item.destination, item.mode)
