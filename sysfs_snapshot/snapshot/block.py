"""Mirror the /sys/block indirection into a scratch tree.

Every entry under /sys/block is a symlink into the bus hierarchy, e.g.
``sda -> ../devices/pci0000:00/0000:00:1f.2/ata1/host0/.../block/sda``. The
mirror recreates that link with its original relative target and builds the
target directory next to it, so the link still resolves once the archive is
unpacked somewhere else.

Only the information the block parsers read is captured: the device's own
attribute files, its partition directories (top-level files only) and
queue/rotational. Symlinks inside device and partition directories
(``subsystem``, ``bdi``, ``holders``...) point back into the hierarchy and are
skipped to avoid cycles.
"""

from __future__ import annotations

import os
import stat
from typing import Optional

from sysfs_snapshot.logging import LoggerFactory

from .copier import LogDebug, _io_error, _noop_logger, copy_pseudo_file
from .exceptions import PartialTopologyError, SnapshotIOError

log = LoggerFactory.for_block()

SYS_BLOCK = "sys/block"
LOOP_DEVICE_PREFIX = "loop"


def join_link_target(root: str, link_target: str) -> str:
    """Locate a /sys/block link target below root.

    Relative targets are resolved from <root>/sys/block, absolute ones from
    root itself.
    """
    if os.path.isabs(link_target):
        joined = os.path.join(root, link_target.lstrip(os.sep))
    else:
        joined = os.path.join(root, SYS_BLOCK, link_target)
    resolved = os.path.normpath(joined)
    relative = os.path.relpath(resolved, root)
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise SnapshotIOError(
            f"block device link target {link_target!r} escapes the tree", path=root
        )
    return resolved


def _list_dir(path: str) -> list[str]:
    try:
        return sorted(os.listdir(path))
    except OSError as error:
        raise _io_error("listdir", path, error) from error


def _lstat(path: str) -> os.stat_result:
    try:
        return os.lstat(path)
    except OSError as error:
        raise _io_error("stat", path, error) from error


def _makedirs(path: str) -> None:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as error:
        raise _io_error("mkdir", path, error) from error


class BlockDeviceMirrorBuilder:
    """Rebuild <source_root>/sys/block (minus loop devices) under a mirror root."""

    def __init__(self, source_root: str = "/", log_debug: Optional[LogDebug] = None):
        self.source_root = source_root
        self.log_debug = log_debug or _noop_logger

    def build(self, dest_root: str) -> None:
        src_block_dir = os.path.join(self.source_root, SYS_BLOCK)
        try:
            device_names = sorted(os.listdir(src_block_dir))
        except OSError as error:
            problem = PartialTopologyError(src_block_dir, error.strerror or str(error))
            log.warning(f"{problem} - no block devices captured")
            return

        _makedirs(os.path.join(dest_root, SYS_BLOCK))
        for device_name in device_names:
            if device_name.startswith(LOOP_DEVICE_PREFIX):
                continue
            self.build_device(dest_root, device_name)

    def build_device(self, dest_root: str, device_name: str) -> None:
        dev_path = os.path.join(self.source_root, SYS_BLOCK, device_name)
        self.log_debug(f"processing block device {dev_path!r}")

        # from the sysfs layout, we know this is always a symlink
        if not stat.S_ISLNK(_lstat(dev_path).st_mode):
            raise SnapshotIOError("block device entry is not a symlink", path=dev_path)
        try:
            link_target = os.readlink(dev_path)
        except OSError as error:
            raise _io_error("readlink", dev_path, error) from error
        self.log_debug(f"link target for block device {dev_path!r} is {link_target!r}")

        build_device_dir = join_link_target(dest_root, link_target)
        src_device_dir = join_link_target(self.source_root, link_target)
        self.log_debug(f"creating device directory {build_device_dir}")
        _makedirs(build_device_dir)

        # The target must stay exactly as found: rewriting it to an absolute
        # path under dest_root breaks the link once the archive is unpacked
        link_path = os.path.join(dest_root, SYS_BLOCK, device_name)
        self.log_debug(f"linking device directory {link_path} to {link_target}")
        try:
            os.symlink(link_target, link_path)
        except OSError as error:
            raise _io_error("symlink", link_path, error) from error

        self.create_block_device_dir(build_device_dir, src_device_dir)

    def create_block_device_dir(self, build_device_dir: str, src_device_dir: str) -> None:
        """Populate a mirrored device directory from its source directory."""
        device_name = os.path.basename(src_device_dir)
        for file_name in _list_dir(src_device_dir):
            src_path = os.path.join(src_device_dir, file_name)
            mode = _lstat(src_path).st_mode
            if stat.S_ISLNK(mode):
                continue
            if stat.S_ISDIR(mode):
                # Partition directories are named after the device (sda1, nvme0n1p1)
                if file_name.startswith(device_name):
                    build_partition_dir = os.path.join(build_device_dir, file_name)
                    self.log_debug(f"creating partition directory {build_partition_dir}")
                    _makedirs(build_partition_dir)
                    self.create_partition_dir(build_partition_dir, src_path)
            elif stat.S_ISREG(mode):
                copy_pseudo_file(
                    src_path,
                    os.path.join(build_device_dir, file_name),
                    log_debug=self.log_debug,
                )

        # queue/rotational tells spinning disks apart; it must be present
        build_queue_dir = os.path.join(build_device_dir, "queue")
        _makedirs(build_queue_dir)
        copy_pseudo_file(
            os.path.join(src_device_dir, "queue", "rotational"),
            os.path.join(build_queue_dir, "rotational"),
            log_debug=self.log_debug,
        )

    def create_partition_dir(self, build_partition_dir: str, src_partition_dir: str) -> None:
        """Copy the top-level attribute files of a partition directory.

        Subdirectories only carry power and trace information and are skipped.
        """
        for file_name in _list_dir(src_partition_dir):
            src_path = os.path.join(src_partition_dir, file_name)
            mode = _lstat(src_path).st_mode
            if stat.S_ISREG(mode):
                copy_pseudo_file(
                    src_path,
                    os.path.join(build_partition_dir, file_name),
                    log_debug=self.log_debug,
                )


def create_block_devices(
    dest_root: str, source_root: str = "/", log_debug: Optional[LogDebug] = None
) -> None:
    BlockDeviceMirrorBuilder(source_root, log_debug).build(dest_root)
