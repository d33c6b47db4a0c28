"""Walk a mirrored tree into comparable entries."""

from __future__ import annotations

import os
import stat

from sysfs_snapshot.domain import EntryKind, TreeEntry

from .copier import _io_error


def _raise_walk_error(error: OSError) -> None:
    raise _io_error("walk", error.filename or "", error) from error


def scan_tree(root: str) -> dict[str, TreeEntry]:
    """Return every entry below root keyed by its root-relative path.

    Symlinks are recorded with their verbatim target and never followed.
    """
    entries: dict[str, TreeEntry] = {}
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        dirnames.sort()
        for name in sorted(dirnames + filenames):
            path = os.path.join(dirpath, name)
            relative = os.path.relpath(path, root).replace(os.sep, "/")
            try:
                info = os.lstat(path)
                if stat.S_ISLNK(info.st_mode):
                    entry = TreeEntry(
                        relative,
                        EntryKind.SYMLINK,
                        stat.S_IMODE(info.st_mode),
                        link_target=os.readlink(path),
                    )
                elif stat.S_ISDIR(info.st_mode):
                    entry = TreeEntry(relative, EntryKind.DIRECTORY, stat.S_IMODE(info.st_mode))
                else:
                    with open(path, "rb") as handle:
                        content = handle.read()
                    entry = TreeEntry(
                        relative,
                        EntryKind.FILE,
                        stat.S_IMODE(info.st_mode),
                        content=content,
                    )
            except OSError as error:
                raise _io_error("scan", path, error) from error
            entries[relative] = entry
    return entries
