"""Copy pseudo-files and glob-selected paths into a mirror tree.

Attempting to archive pseudo-files like /proc/cpuinfo directly is an exercise
in futility: the kernel reports a size of zero (or one page) for them, so any
copy that trusts the declared length produces empty files. Every copy in this
module reads the whole source first and then writes a genuine regular file.

Operations:
    - copy_pseudo_file(): read-all/write-all copy of one file
    - copy_link(): recreate a symlink with its verbatim target
    - expand_file_spec(): validate and expand one glob pattern
    - copy_files_into(): mirror every path matched by a list of patterns
"""

from __future__ import annotations

import glob
import os
import stat
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .exceptions import GlobPatternError, SnapshotIOError

LogDebug = Callable[[str], None]


def _noop_logger(message: str) -> None:
    return None


def _io_error(action: str, path: str, error: OSError) -> SnapshotIOError:
    reason = error.strerror or str(error)
    return SnapshotIOError(f"{action} failed ({reason})", path=path)


def _is_symlink(path: str, info: os.stat_result) -> bool:
    return stat.S_ISLNK(info.st_mode)


@dataclass
class CopyFileOptions:
    """Knobs for copy_files_into().

    is_symlink decides, from the lstat() result, whether a matched path is
    recreated as a link rather than content-copied.
    """

    is_symlink: Callable[[str, os.stat_result], bool] = field(default=_is_symlink)


def copy_pseudo_file(src: str, dst: str, log_debug: Optional[LogDebug] = None) -> None:
    """Copy src to dst by reading the entire content in one go.

    The declared size of src is never consulted.
    """
    log_debug = log_debug or _noop_logger
    try:
        with open(src, "rb") as handle:
            content = handle.read()
    except OSError as error:
        raise _io_error("read", src, error) from error
    log_debug(f"creating {dst}")
    try:
        with open(dst, "wb") as handle:
            handle.write(content)
    except OSError as error:
        raise _io_error("write", dst, error) from error


def copy_link(src: str, dst: str, log_debug: Optional[LogDebug] = None) -> None:
    """Recreate the symlink src at dst with the original, unresolved target."""
    log_debug = log_debug or _noop_logger
    try:
        target = os.readlink(src)
    except OSError as error:
        raise _io_error("readlink", src, error) from error
    log_debug(f"linking {dst} -> {target}")
    try:
        if os.path.islink(dst):
            # duplicate specs are harmless
            if os.readlink(dst) == target:
                return
            os.unlink(dst)
        os.symlink(target, dst)
    except OSError as error:
        raise _io_error("symlink", dst, error) from error


def mirror_path(dest_root: str, path: str, source_root: str = "/") -> str:
    """Map a source path to its location under dest_root."""
    relative = os.path.relpath(path, source_root)
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise SnapshotIOError("path is outside the source root", path=path)
    return os.path.join(dest_root, relative)


def expand_file_spec(file_spec: str) -> list[str]:
    """Expand one glob pattern into the sorted list of matching paths.

    A pattern matching nothing is not an error.

    Raises:
        GlobPatternError: If the pattern is empty or relative
    """
    if not file_spec:
        raise GlobPatternError(file_spec, "empty pattern")
    if not os.path.isabs(file_spec):
        raise GlobPatternError(file_spec, "pattern must be an absolute path")
    return sorted(glob.glob(file_spec))


def copy_files_into(
    file_specs: Iterable[str],
    dest_root: str,
    options: Optional[CopyFileOptions] = None,
    *,
    source_root: str = "/",
    log_debug: Optional[LogDebug] = None,
) -> None:
    """Mirror every path matched by file_specs into dest_root.

    Paths keep their location relative to source_root. The first failure
    aborts the whole copy.
    """
    options = options or CopyFileOptions()
    log_debug = log_debug or _noop_logger
    for file_spec in file_specs:
        log_debug(f"copying spec: {file_spec!r}")
        matches = expand_file_spec(file_spec)
        copy_file_tree_into(
            matches,
            dest_root,
            options,
            source_root=source_root,
            log_debug=log_debug,
        )


def copy_file_tree_into(
    paths: Iterable[str],
    dest_root: str,
    options: CopyFileOptions,
    *,
    source_root: str = "/",
    log_debug: Optional[LogDebug] = None,
) -> None:
    log_debug = log_debug or _noop_logger
    for path in paths:
        log_debug(f"  copying path: {path!r}")
        target = mirror_path(dest_root, path, source_root)
        parent = os.path.dirname(target)
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as error:
            raise _io_error("mkdir", parent, error) from error

        try:
            info = os.lstat(path)
        except OSError as error:
            raise _io_error("stat", path, error) from error

        if options.is_symlink(path, info):
            log_debug(f"    copying link: {path!r}")
            copy_link(path, target, log_debug=log_debug)
        elif stat.S_ISDIR(info.st_mode):
            # Nested PCI device entries below a bridge are real directories
            log_debug(f"    creating directory: {path!r}")
            try:
                os.makedirs(target, exist_ok=True)
            except OSError as error:
                raise _io_error("mkdir", target, error) from error
        else:
            log_debug(f"    copying file: {path!r}")
            copy_pseudo_file(path, target, log_debug=log_debug)
