"""Models for planning and executing a transfer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath

__all__ = [
    "Direction",
    "EntryKind",
    "Ownership",
    "TransferFailure",
    "TransferOutcome",
    "WorkItem",
]


class Direction(Enum):
    """Direction of a transfer relative to the volume."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


class EntryKind(Enum):
    """Kind of filesystem entry a work item acts on."""

    DIRECTORY = "directory"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class Ownership:
    """Numeric owner and group to apply to an uploaded tree."""

    uid: int
    """User ID."""

    gid: int
    """Group ID."""

    @classmethod
    def parse(cls, value: str) -> Ownership:
        """Parse a ``uid[:gid]`` string.

        If the group is omitted, it is the same as the user ID.

        Raises
        ------
        ValueError
            Raised if the string is not one or two non-negative integers.
        """
        uid, _, gid = value.partition(":")
        if not uid.isdigit() or (gid and not gid.isdigit()):
            raise ValueError(f"Invalid owner {value}, expected uid[:gid]")
        return cls(uid=int(uid), gid=int(gid or uid))


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One planned filesystem action.

    Directory items never carry digests. File items are only planned when
    the digests differ or one of them could not be computed.
    """

    source: PurePath
    """Path of the entry on the source side."""

    destination: PurePath
    """Path of the entry on the destination side."""

    kind: EntryKind
    """Whether to create a directory or copy a file."""

    source_digest: str | None = None
    """SHA-256 of the source file, if known."""

    destination_digest: str | None = None
    """SHA-256 of the existing destination file, if known."""

    mode: int | None = None
    """Permission bits of the source entry, applied to the destination."""

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY


@dataclass(frozen=True, slots=True)
class TransferFailure:
    """A single item that could not be transferred."""

    path: str
    """Source path of the failed item."""

    message: str
    """Description of the error."""


@dataclass
class TransferOutcome:
    """Aggregate result of executing a plan.

    Built incrementally by the executor workers and finalized once all of
    them have finished.
    """

    planned: int = 0
    """Number of items handed to the executor."""

    attempted: int = 0
    """Number of items a worker started on."""

    completed: int = 0
    """Number of items transferred successfully."""

    failed: int = 0
    """Number of items that failed. Always exact."""

    failures: list[TransferFailure] = field(default_factory=list)
    """Recorded failures, capped at the configured maximum."""

    cancelled: bool = False
    """Whether the transfer stopped before all items were attempted."""

    @property
    def success(self) -> bool:
        """Whether every planned item was transferred."""
        return not self.failed and self.completed == self.planned
