"""Restore a snapshot archive into a working directory.

The restored tree is a drop-in pseudo-filesystem root for the hardware
parsers. Members are recreated one by one while streaming through the
archive, so gzip and plain tar archives are handled the same way.

Safety:
    Only directories, regular files and symlinks are restored. Member names
    that are absolute, contain ".." or would be written through a symlink
    pointing outside the target are rejected. Symlink targets themselves are
    restored verbatim, absolute ones included.
"""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
import tempfile
from typing import Optional

from sysfs_snapshot.config.settings import DEFAULT_SCRATCH_PREFIX
from sysfs_snapshot.logging import LoggerFactory

from .copier import LogDebug, _io_error, _noop_logger
from .exceptions import ArchiveMemberError, SnapshotIOError

log = LoggerFactory.for_archive()


def unpack(snapshot_name: str, log_debug: Optional[LogDebug] = None) -> str:
    """Unpack snapshot_name into a fresh temporary directory.

    Returns:
        The directory path; the caller removes it with cleanup()
    """
    try:
        target_root = tempfile.mkdtemp(prefix=DEFAULT_SCRATCH_PREFIX)
    except OSError as error:
        raise _io_error("mkdtemp", tempfile.gettempdir(), error) from error
    unpack_into(snapshot_name, target_root, log_debug=log_debug)
    return target_root


def is_empty_dir(path: str) -> bool:
    try:
        with os.scandir(path) as entries:
            return next(entries, None) is None
    except FileNotFoundError:
        return True


def unpack_into(
    snapshot_name: str,
    target_root: str,
    own_target_directory: bool = False,
    log_debug: Optional[LogDebug] = None,
) -> bool:
    """Unpack snapshot_name below target_root.

    Args:
        snapshot_name: Archive path (compressed or not)
        target_root: Directory to restore into, created if missing
        own_target_directory: Leave a non-empty target_root untouched
        log_debug: Per-entry trace callback

    Returns:
        True if the archive was unpacked, False if it was skipped
    """
    log_debug = log_debug or _noop_logger
    try:
        if own_target_directory and not is_empty_dir(target_root):
            log.debug(f"{target_root} is not empty - unpack skipped")
            return False
        os.makedirs(target_root, exist_ok=True)
    except OSError as error:
        raise _io_error("mkdir", target_root, error) from error

    directories: list[tuple[str, int]] = []
    count = 0
    try:
        with tarfile.open(snapshot_name, mode="r:*") as tar:
            for member in tar:
                restored = restore_member(tar, member, target_root, log_debug)
                if member.isdir():
                    directories.append((restored, stat.S_IMODE(member.mode)))
                count += 1
    except tarfile.TarError as error:
        raise SnapshotIOError(f"reading archive failed ({error})", path=snapshot_name) from error
    except OSError as error:
        raise _io_error("unpack", snapshot_name, error) from error

    # Directory modes last, a read-only directory would block its children
    for path, mode in reversed(directories):
        try:
            os.chmod(path, mode)
        except OSError as error:
            raise _io_error("chmod", path, error) from error
    log.info(f"Unpacked {count} entries from {snapshot_name} into {target_root}")
    return True


def member_path(target_root: str, member_name: str) -> str:
    """Map an archive member name to a path below target_root."""
    name = member_name.rstrip("/")
    if not name or name.startswith("/"):
        raise ArchiveMemberError(member_name, "absolute or empty name")
    parts = name.split("/")
    if os.pardir in parts:
        raise ArchiveMemberError(member_name, "name escapes the target directory")
    return os.path.join(target_root, *parts)


def _check_parent_inside(target_root: str, path: str, member_name: str) -> None:
    parent = os.path.realpath(os.path.dirname(path))
    root = os.path.realpath(target_root)
    if parent != root and not parent.startswith(root + os.sep):
        raise ArchiveMemberError(member_name, "parent directory resolves outside the target")


def restore_member(
    tar: tarfile.TarFile, member: tarfile.TarInfo, target_root: str, log_debug: LogDebug
) -> str:
    """Recreate one archive member below target_root and return its path."""
    path = member_path(target_root, member.name)
    _check_parent_inside(target_root, path, member.name)
    os.makedirs(os.path.dirname(path), exist_ok=True)

    if member.isdir():
        log_debug(f"creating directory {path}")
        os.makedirs(path, exist_ok=True)
    elif member.isreg():
        log_debug(f"creating {path}")
        source = tar.extractfile(member)
        if source is None:
            raise ArchiveMemberError(member.name, "missing file payload")
        if os.path.islink(path):
            os.unlink(path)
        with source, open(path, "wb") as handle:
            shutil.copyfileobj(source, handle)
        os.chmod(path, stat.S_IMODE(member.mode))
    elif member.issym():
        log_debug(f"linking {path} -> {member.linkname}")
        if os.path.lexists(path):
            os.unlink(path)
        os.symlink(member.linkname, path)
    else:
        raise ArchiveMemberError(member.name, f"unsupported member type {member.type!r}")
    return path


def cleanup(target_root: str) -> None:
    """Remove an unpacked tree; a missing directory is not an error."""
    if not os.path.lexists(target_root):
        return
    try:
        shutil.rmtree(target_root)
    except OSError as error:
        raise _io_error("remove", target_root, error) from error
