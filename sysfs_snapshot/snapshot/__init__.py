"""Hardware pseudo-filesystem snapshots: clone, pack and unpack.

This package captures the parts of /proc and /sys that describe CPUs, memory,
PCI topology and block devices into a portable tar archive, and restores such
an archive into a directory the hardware parsers can use as their root.

Main Functions:
    - clone_tree_into(): Build a self-contained mirror in a scratch directory
    - pack_from(): Pack a mirror into a (gzip) tar archive
    - unpack(): Restore an archive into a fresh temporary directory
    - unpack_into(): Restore an archive into a given directory
    - cleanup(): Remove a restored tree

Building Blocks:
    - copy_files_into(): Mirror glob-selected paths
    - copy_pseudo_file(): Read-all/write-all copy of one pseudo-file
    - PCITopologyScanner: File specs for every device behind PCI bridges
    - BlockDeviceMirrorBuilder: The /sys/block symlink indirection
    - scan_tree(): Comparable view of a mirrored tree
"""

from .block import BlockDeviceMirrorBuilder, create_block_devices
from .clonetree import (
    CREATE_PATHS,
    PSEUDO_FILE_PATHS,
    SYSFS_FILE_SPECS,
    TreeCloner,
    clone_tree_into,
)
from .copier import CopyFileOptions, copy_files_into, copy_pseudo_file
from .exceptions import (
    ArchiveExistsError,
    ArchiveMemberError,
    GlobPatternError,
    PartialTopologyError,
    SnapshotError,
    SnapshotIOError,
)
from .pack import pack_from
from .pci import (
    PCI_BRIDGE_PCI,
    PCI_DEVICE_ATTRIBUTES,
    PCITopologyScanner,
    pci_devices_clone_content,
)
from .tree import scan_tree
from .unpack import cleanup, unpack, unpack_into


__all__ = [
    # Main operations
    "clone_tree_into",
    "pack_from",
    "unpack",
    "unpack_into",
    "cleanup",
    # Components
    "TreeCloner",
    "BlockDeviceMirrorBuilder",
    "PCITopologyScanner",
    "CopyFileOptions",
    "copy_files_into",
    "copy_pseudo_file",
    "create_block_devices",
    "pci_devices_clone_content",
    "scan_tree",
    # Constants
    "CREATE_PATHS",
    "PSEUDO_FILE_PATHS",
    "SYSFS_FILE_SPECS",
    "PCI_BRIDGE_PCI",
    "PCI_DEVICE_ATTRIBUTES",
    # Errors
    "SnapshotError",
    "SnapshotIOError",
    "ArchiveExistsError",
    "GlobPatternError",
    "PartialTopologyError",
    "ArchiveMemberError",
]
