"""Pack a mirrored tree into a (optionally gzip-compressed) tar archive.

The archive is a plain POSIX tar stream, so operators can inspect it with
standard tools. Entry names are relative to the mirror root and symlink
targets are stored verbatim, which keeps extraction location-independent.
Directories are always written before their contents.
"""

from __future__ import annotations

import os
import stat
import tarfile
from typing import BinaryIO, Optional

from sysfs_snapshot.logging import LoggerFactory

from .copier import LogDebug, _io_error, _noop_logger
from .exceptions import ArchiveExistsError, SnapshotIOError

log = LoggerFactory.for_archive()


def open_snapshot_destination(snapshot_name: str) -> BinaryIO:
    """Open the archive destination for writing, refusing to clobber data.

    A missing path is created and an existing empty file is reused.

    Raises:
        ArchiveExistsError: If the path holds a non-empty file
        SnapshotIOError: If the path cannot be inspected or opened
    """
    try:
        info = os.stat(snapshot_name)
    except FileNotFoundError:
        try:
            return open(snapshot_name, "xb")
        except OSError as error:
            raise _io_error("create", snapshot_name, error) from error
    except OSError as error:
        raise _io_error("stat", snapshot_name, error) from error

    if stat.S_ISDIR(info.st_mode):
        raise SnapshotIOError("archive destination is a directory", path=snapshot_name)
    if info.st_size > 0:
        raise ArchiveExistsError(snapshot_name, info.st_size)
    try:
        return open(snapshot_name, "wb")
    except OSError as error:
        raise _io_error("open", snapshot_name, error) from error


def pack_from(
    snapshot_name: str,
    source_root: str,
    compress: bool = True,
    log_debug: Optional[LogDebug] = None,
) -> None:
    """Write every entry below source_root into the archive snapshot_name."""
    log_debug = log_debug or _noop_logger
    handle = open_snapshot_destination(snapshot_name)
    with handle:
        if compress:
            log_debug("using gzip compression")
        mode = "w:gz" if compress else "w"
        try:
            with tarfile.open(fileobj=handle, mode=mode) as tar:
                count = create_snapshot(tar, source_root, log_debug)
        except (OSError, tarfile.TarError) as error:
            raise SnapshotIOError(f"writing archive failed ({error})", path=snapshot_name) from error
    log.info(f"Packed {count} entries from {source_root} into {snapshot_name}")


def _raise_walk_error(error: OSError) -> None:
    raise _io_error("walk", error.filename or "", error) from error


def create_snapshot(tar: tarfile.TarFile, build_dir: str, log_debug: LogDebug) -> int:
    """Add the tree below build_dir to tar, parents first; returns the entry count."""
    count = 0
    for dirpath, dirnames, filenames in os.walk(build_dir, onerror=_raise_walk_error):
        dirnames.sort()
        for name in sorted(dirnames + filenames):
            path = os.path.join(dirpath, name)
            arcname = os.path.relpath(path, build_dir).replace(os.sep, "/")
            add_entry(tar, path, arcname, log_debug)
            count += 1
    return count


def add_entry(tar: tarfile.TarFile, path: str, arcname: str, log_debug: LogDebug) -> None:
    try:
        tarinfo = tar.gettarinfo(path, arcname=arcname)
    except OSError as error:
        raise _io_error("stat", path, error) from error
    if tarinfo is None:
        raise SnapshotIOError("unsupported file type in mirror", path=path)

    if tarinfo.issym():
        log_debug(f"processing symlink {path}")
    elif tarinfo.islnk():
        # hard links are stored as independent copies
        tarinfo.type = tarfile.REGTYPE
        tarinfo.linkname = ""
        tarinfo.size = os.lstat(path).st_size

    if tarinfo.isreg():
        try:
            with open(path, "rb") as source:
                tar.addfile(tarinfo, source)
        except OSError as error:
            raise _io_error("read", path, error) from error
    else:
        tar.addfile(tarinfo)
