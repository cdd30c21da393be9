"""Tests for the local and SFTP filesystem implementations."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path, PurePosixPath
from typing import cast

import paramiko
import pytest

from syncpod.models.domain.transfer import EntryKind
from syncpod.storage.filesystem import (
    Filesystem,
    LocalFilesystem,
    SFTPFilesystem,
)

from ..support.ssh import MockSFTPServer


def _make_tree(root: Path) -> None:
    (root / "b").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha")
    (root / "b" / "c.bin").write_bytes(os.urandom(200 * 1024))
    (root / "b" / "empty").mkdir()
    (root / "link").symlink_to("a.txt")


def _sftp(server: MockSFTPServer) -> SFTPFilesystem:
    return SFTPFilesystem(cast("paramiko.SFTPClient", server.client()))


def test_local_walk(tmp_path: Path) -> None:
    _make_tree(tmp_path)
    fs = LocalFilesystem()

    entries = [(str(p), i.kind) for p, i in fs.walk(tmp_path)]
    assert entries == [
        ("a.txt", EntryKind.FILE),
        ("b", EntryKind.DIRECTORY),
        ("b/c.bin", EntryKind.FILE),
        ("b/empty", EntryKind.DIRECTORY),
        ("link", None),
    ]


def test_sftp_walk(mock_sftp: MockSFTPServer) -> None:
    _make_tree(mock_sftp.root / "tree")
    fs = _sftp(mock_sftp)

    root = PurePosixPath("/data/tree")
    entries = [(str(p), i.kind) for p, i in fs.walk(root)]
    assert entries == [
        ("a.txt", EntryKind.FILE),
        ("b", EntryKind.DIRECTORY),
        ("b/c.bin", EntryKind.FILE),
        ("b/empty", EntryKind.DIRECTORY),
        ("link", None),
    ]
    info = fs.stat(root / "b" / "c.bin")
    assert info
    assert info.path == root / "b" / "c.bin"
    assert info.name == "c.bin"
    assert fs.stat(root / "missing") is None


@pytest.mark.parametrize("kind", ["local", "sftp"])
def test_digest(
    kind: str, tmp_path: Path, mock_sftp: MockSFTPServer
) -> None:
    data = os.urandom(300 * 1024)
    (mock_sftp.root / "file").write_bytes(data)
    fs: Filesystem
    if kind == "local":
        fs = LocalFilesystem()
        path = fs.path(mock_sftp.root / "file")
    else:
        fs = _sftp(mock_sftp)
        path = fs.path("/data/file")
    assert fs.digest(path) == hashlib.sha256(data).hexdigest()
    with pytest.raises(FileNotFoundError):
        fs.digest(path.parent / "missing")


def test_makedirs(tmp_path: Path, mock_sftp: MockSFTPServer) -> None:
    fs = _sftp(mock_sftp)
    fs.makedirs(PurePosixPath("/data/a/b/c"))
    assert (mock_sftp.root / "a" / "b" / "c").is_dir()

    # Existing directories are fine.
    fs.makedirs(PurePosixPath("/data/a/b"))

    (mock_sftp.root / "a" / "file").write_text("x")
    with pytest.raises(NotADirectoryError):
        fs.makedirs(PurePosixPath("/data/a/file/d"))

    local = LocalFilesystem()
    local.makedirs(tmp_path / "x" / "y")
    assert (tmp_path / "x" / "y").is_dir()


def test_modes(mock_sftp: MockSFTPServer) -> None:
    fs = _sftp(mock_sftp)
    path = PurePosixPath("/data/script")
    with fs.open_write(path) as f:
        f.write(b"#!/bin/sh\n")
    fs.chmod(path, 0o750)
    info = fs.stat(path)
    assert info
    assert info.kind == EntryKind.FILE
    assert info.mode == 0o750

    fs.chown(path, 1000, 1001)
    assert mock_sftp.owners["/data/script"] == (1000, 1001)

    fs.close()
    assert mock_sftp.clients[0].closed
