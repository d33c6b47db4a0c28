"""Build a self-contained mirror of the hardware pseudo-filesystems.

Attempting to tar up pseudo-files like /proc/cpuinfo is an exercise in
futility: read syscalls on them do not report the number of bytes available,
so an archiver writes zero-length entries. Instead the cloner builds a
directory structure in a scratch directory holding real files with copies of
the pseudo-file contents, and that directory is what gets packed.

Stages (in order, any failure aborts the clone):
    1. skeleton       - proc/, etc/, sys/block/
    2. pseudofiles    - /proc/cpuinfo, /proc/meminfo, /etc/mtab
    3. block-devices  - the /sys/block indirection
    4. sysfs-globs    - CPU, memory, NUMA and generic PCI attributes
    5. pci-topology   - every PCI device below nested bridges

The scratch directory is owned by the caller; a failed clone leaves it as is.
"""

from __future__ import annotations

import glob
import os
from contextlib import contextmanager
from typing import Optional

from sysfs_snapshot.logging import LoggerFactory

from .block import BlockDeviceMirrorBuilder
from .copier import (
    CopyFileOptions,
    LogDebug,
    _io_error,
    _noop_logger,
    copy_files_into,
    copy_pseudo_file,
)
from .exceptions import SnapshotIOError
from .pci import PCITopologyScanner

CREATE_PATHS = (
    "proc",
    "etc",
    "sys/block",
)

PSEUDO_FILE_PATHS = (
    "/proc/cpuinfo",
    "/proc/meminfo",
    "/etc/mtab",
)

SYSFS_FILE_SPECS = (
    "/sys/bus/pci/devices/*",
    "/sys/devices/pci*/*/irq",
    "/sys/devices/pci*/*/local_cpulist",
    "/sys/devices/pci*/*/modalias",
    "/sys/devices/pci*/*/numa_node",
    "/sys/devices/pci*/pci_bus/*/cpulistaffinity",
    "/sys/devices/system/cpu/cpu*/cache/index*/*",
    "/sys/devices/system/cpu/cpu*/topology/*",
    "/sys/devices/system/memory/block_size_bytes",
    "/sys/devices/system/memory/memory*/online",
    "/sys/devices/system/memory/memory*/state",
    "/sys/devices/system/node/has_*",
    "/sys/devices/system/node/online",
    "/sys/devices/system/node/possible",
    "/sys/devices/system/node/node*/cpu*",
    "/sys/devices/system/node/node*/distance",
)


class TreeCloner:
    """Clone the hardware pseudo-files below source_root into a scratch tree."""

    def __init__(
        self,
        source_root: str = "/",
        log_debug: Optional[LogDebug] = None,
        copy_options: Optional[CopyFileOptions] = None,
    ):
        self.source_root = source_root
        self.log_debug = log_debug or _noop_logger
        self.copy_options = copy_options or CopyFileOptions()
        self.log = LoggerFactory.for_clone()

    def clone_into(self, scratch_root: str) -> None:
        with self._stage("skeleton"):
            self.create_skeleton(scratch_root)
        with self._stage("pseudofiles"):
            self.create_pseudo_files(scratch_root)
        with self._stage("block-devices"):
            BlockDeviceMirrorBuilder(self.source_root, self.log_debug).build(scratch_root)
        with self._stage("sysfs-globs"):
            self._copy(self.sysfs_file_specs(), scratch_root)
        with self._stage("pci-topology"):
            scanner = PCITopologyScanner(self.source_root, self.log_debug)
            self._copy(scanner.discover_file_specs(), scratch_root)

    def create_skeleton(self, scratch_root: str) -> None:
        for path in CREATE_PATHS:
            target = os.path.join(scratch_root, path)
            try:
                os.makedirs(target, exist_ok=True)
            except OSError as error:
                raise _io_error("mkdir", target, error) from error

    def create_pseudo_files(self, scratch_root: str) -> None:
        for path in PSEUDO_FILE_PATHS:
            copy_pseudo_file(
                self.source_path(path),
                os.path.join(scratch_root, path.lstrip("/")),
                log_debug=self.log_debug,
            )

    def sysfs_file_specs(self) -> list[str]:
        """The fixed glob list, rebased onto source_root."""
        prefix = glob.escape(self.source_root)
        return [os.path.join(prefix, spec.lstrip("/")) for spec in SYSFS_FILE_SPECS]

    def source_path(self, path: str) -> str:
        return os.path.join(self.source_root, path.lstrip("/"))

    def _copy(self, file_specs: list[str], scratch_root: str) -> None:
        copy_files_into(
            file_specs,
            scratch_root,
            self.copy_options,
            source_root=self.source_root,
            log_debug=self.log_debug,
        )

    @contextmanager
    def _stage(self, stage: str):
        self.log.debug(f"Clone stage {stage} started")
        try:
            yield
        except SnapshotIOError as error:
            if error.stage is None:
                error.stage = stage
            self.log.error(f"Clone stage {stage} failed: {error}")
            raise


def clone_tree_into(
    scratch_dir: str, source_root: str = "/", log_debug: Optional[LogDebug] = None
) -> None:
    """Clone the live pseudo-filesystems (or source_root) into scratch_dir."""
    TreeCloner(source_root, log_debug).clone_into(scratch_dir)
