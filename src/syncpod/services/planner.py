"""Decide which entries of a tree need to be transferred."""

from __future__ import annotations

import asyncio
from pathlib import PurePath

from structlog.stdlib import BoundLogger

from ..exceptions import (
    ConflictError,
    InvalidSourceError,
    PlanningError,
    SourceNotFoundError,
    TransferCancelledError,
)
from ..models.domain.transfer import Direction, EntryKind, WorkItem
from ..storage.filesystem import FileInfo, Filesystem

__all__ = ["SyncPlanner"]


class SyncPlanner:
    """Build the list of work items for a transfer.

    The source tree is mirrored under the destination root, keeping the
    name of the top-level source directory. Every directory becomes a work
    item so that empty directories are recreated. Files whose SHA-256
    matches the existing destination file are skipped.

    Parameters
    ----------
    logger
        Logger to use.
    """

    def __init__(self, logger: BoundLogger) -> None:
        self._logger = logger

    async def plan(
        self,
        *,
        source_fs: Filesystem,
        source_root: PurePath,
        dest_fs: Filesystem,
        dest_root: PurePath,
        direction: Direction,
        allow_overwrite: bool,
        contents_only: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> list[WorkItem]:
        """Plan a transfer.

        Walking the trees and computing digests blocks, so this runs in a
        thread.

        Parameters
        ----------
        source_fs
            Filesystem holding the source tree.
        source_root
            Directory to transfer.
        dest_fs
            Filesystem to transfer to.
        dest_root
            Directory under which the source directory is recreated.
        direction
            Direction of the transfer. Overwrite protection only applies
            to uploads.
        allow_overwrite
            Whether existing destination entries may be replaced.
        contents_only
            Copy the contents of the source directly into ``dest_root``
            instead of recreating the source directory under it. The
            destination root itself is then never a conflict.
        cancel
            If set while planning, stop walking the source tree.

        Returns
        -------
        list of WorkItem
            Work items in walk order, with each directory before its
            contents.

        Raises
        ------
        ConflictError
            Raised on upload if a destination entry of the same kind exists
            and overwriting is not allowed.
        InvalidSourceError
            Raised if the source is not a directory.
        PlanningError
            Raised if either tree could not be read.
        SourceNotFoundError
            Raised if the source does not exist.
        TransferCancelledError
            Raised if ``cancel`` was set before planning finished.
        """
        return await asyncio.to_thread(
            self._plan,
            source_fs,
            source_root,
            dest_fs,
            dest_root,
            direction=direction,
            allow_overwrite=allow_overwrite,
            contents_only=contents_only,
            cancel=cancel,
        )

    def _plan(
        self,
        source_fs: Filesystem,
        source_root: PurePath,
        dest_fs: Filesystem,
        dest_root: PurePath,
        *,
        direction: Direction,
        allow_overwrite: bool,
        contents_only: bool,
        cancel: asyncio.Event | None,
    ) -> list[WorkItem]:
        try:
            root = source_fs.stat(source_root)
        except OSError as e:
            raise PlanningError(str(source_root), str(e)) from e
        if root is None:
            raise SourceNotFoundError(str(source_root))
        if root.kind != EntryKind.DIRECTORY:
            raise InvalidSourceError(str(source_root))

        check_conflicts = direction == Direction.UPLOAD and not allow_overwrite
        dest_top = dest_fs.path(dest_root)
        if not contents_only:
            dest_top = dest_top / source_root.name
        entries: list[tuple[PurePath, FileInfo]] = [(PurePath(), root)]
        items = []
        skipped = 0
        try:
            entries.extend(source_fs.walk(source_root))
            for relative, info in entries:
                if cancel and cancel.is_set():
                    raise TransferCancelledError
                if info.kind is None:
                    msg = "Skipping link or special file"
                    self._logger.debug(msg, path=str(info.path))
                    continue
                destination = dest_fs.path(dest_top / relative)
                conflicts = check_conflicts
                if contents_only and relative == PurePath():
                    conflicts = False
                item = self._plan_entry(
                    info,
                    destination,
                    source_fs,
                    dest_fs,
                    check_conflicts=conflicts,
                )
                if item:
                    items.append(item)
                else:
                    skipped += 1
        except OSError as e:
            path = e.filename or str(source_root)
            raise PlanningError(str(path), e.strerror or str(e)) from e

        self._logger.info(
            "Planned transfer",
            source=str(source_root),
            destination=str(dest_top),
            items=len(items),
            unchanged=skipped,
        )
        return items

    def _plan_entry(
        self,
        info: FileInfo,
        destination: PurePath,
        source_fs: Filesystem,
        dest_fs: Filesystem,
        *,
        check_conflicts: bool,
    ) -> WorkItem | None:
        """Plan a single entry, returning `None` if it can be skipped."""
        existing = dest_fs.stat(destination)
        if check_conflicts and existing and existing.kind == info.kind:
            raise ConflictError(str(destination))
        if info.kind == EntryKind.DIRECTORY:
            return WorkItem(
                source=info.path,
                destination=destination,
                kind=EntryKind.DIRECTORY,
                mode=info.mode,
            )

        source_digest = self._digest(source_fs, info.path)
        dest_digest = None
        if existing and existing.kind == EntryKind.FILE:
            dest_digest = self._digest(dest_fs, destination)
        if source_digest and source_digest == dest_digest:
            self._logger.debug("File unchanged", path=str(info.path))
            return None
        return WorkItem(
            source=info.path,
            destination=destination,
            kind=EntryKind.FILE,
            source_digest=source_digest,
            destination_digest=dest_digest,
            mode=info.mode,
        )

    def _digest(self, fs: Filesystem, path: PurePath) -> str | None:
        """Compute a digest, returning `None` if the file cannot be read."""
        try:
            return fs.digest(path)
        except OSError as e:
            msg = "Cannot compute digest"
            self._logger.debug(msg, path=str(path), error=str(e))
            return None
