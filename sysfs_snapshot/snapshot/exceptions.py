"""Custom exceptions for snapshot operations.

This module defines a hierarchy of exceptions for the clone, pack and unpack
steps so callers can tell a fatal I/O failure from a refused overwrite or a
tolerated gap in the captured topology.

Exception Hierarchy:
    SnapshotError (base)
        ├── SnapshotIOError
        ├── ArchiveExistsError
        ├── GlobPatternError
        ├── PartialTopologyError
        └── ArchiveMemberError

Only PartialTopologyError is non-fatal: the PCI scanner and the block device
builder log it and carry on with reduced coverage. Everything else aborts the
current operation and is surfaced to the caller.

Usage:
    from sysfs_snapshot.snapshot.exceptions import ArchiveExistsError

    if size > 0:
        raise ArchiveExistsError(path, size)
"""

from __future__ import annotations


class SnapshotError(Exception):
    """Base exception for all snapshot operations."""



class SnapshotIOError(SnapshotError):
    """A stat/read/write/mkdir/symlink call failed against the source or mirror."""

    def __init__(self, message: str, path: str | None = None, stage: str | None = None):
        self.message = message
        self.path = path
        self.stage = stage
        super().__init__(message)

    def __str__(self) -> str:
        msg = self.message
        if self.path:
            msg = f"{msg}: {self.path}"
        if self.stage:
            msg = f"[{self.stage}] {msg}"
        return msg


class ArchiveExistsError(SnapshotError):
    """Destination archive already exists and is not empty."""

    def __init__(self, path: str, size: int):
        self.path = path
        self.size = size
        super().__init__(f"File {path} already exists and is of size {size} > 0")


class GlobPatternError(SnapshotError):
    """A file spec is not a usable glob pattern."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid file spec {pattern!r}: {reason}")


class PartialTopologyError(SnapshotError):
    """A PCI or block device subtree could not be listed."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Cannot list {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ArchiveMemberError(SnapshotError):
    """An archive member cannot be restored safely."""

    def __init__(self, member_name: str, reason: str):
        self.member_name = member_name
        self.reason = reason
        super().__init__(f"Refusing archive member {member_name!r}: {reason}")
