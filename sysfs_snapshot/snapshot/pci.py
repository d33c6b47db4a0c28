"""PCI topology discovery for the snapshot file list.

The PCI topology is host specific: a CPU package usually exposes one or more
PCI(e) roots, bridges hang off those roots and further devices (and further
bridges) hang off the bridges, forming trees of unpredictable depth. The
generic glob list only reaches the first level, so this module walks the
topology and produces the glob patterns that cover every device.

The walk uses an explicit FIFO worklist plus a set of visited canonical roots,
so deep bridge chains never grow the call stack and aliased bridge
directories are scanned once.
"""

from __future__ import annotations

import glob
import os
from collections import deque
from typing import Iterable, Optional

from sysfs_snapshot.domain import PCIAddress
from sysfs_snapshot.logging import LoggerFactory

from .copier import LogDebug, _noop_logger
from .exceptions import PartialTopologyError

log = LoggerFactory.for_pci()

PCI_DEVICES_ROOT = "sys/bus/pci/devices"

#        subclass ---++
# class -----------++||
#                  VVVV
PCI_BRIDGE_PCI = "0x060400"

PCI_DEVICE_ATTRIBUTES = (
    "class",
    "device",
    "irq",
    "local_cpulist",
    "modalias",
    "numa_node",
    "revision",
    "vendor",
)


def find_pci_entry_from_path(
    root: str, entry_name: str, log_debug: Optional[LogDebug] = None
) -> str:
    """Resolve one level of symlink for a device entry under root.

    Falls back to the unresolved path when the entry cannot be inspected; a
    stale link must not stop the scan.
    """
    log_debug = log_debug or _noop_logger
    entry_path = os.path.join(root, entry_name)
    try:
        is_link = os.path.islink(entry_path)
        if not is_link:
            return entry_path
        target = os.readlink(entry_path)
    except OSError as error:
        log_debug(f"readlink({entry_path}) failed: {error} - using unresolved path")
        return entry_path
    log_debug(f"entry {entry_path!r} is symlink resolved to {target!r}")
    return os.path.normpath(os.path.join(root, target))


def is_pci_bridge(device_path: str, log_debug: Optional[LogDebug] = None) -> bool:
    """Check whether the device at device_path is a PCI-to-PCI bridge."""
    log_debug = log_debug or _noop_logger
    try:
        with open(os.path.join(device_path, "class"), "rb") as handle:
            device_class = handle.read().decode("ascii", errors="replace").strip()
    except OSError:
        return False
    # add more bridge classes once they matter to the parsers
    if device_class == PCI_BRIDGE_PCI:
        log_debug(f"pci device {device_path!r} is a pci bridge")
        return True
    return False


class PCITopologyScanner:
    """Discover the file specs for every PCI device reachable from the roots."""

    def __init__(self, source_root: str = "/", log_debug: Optional[LogDebug] = None):
        self.source_root = source_root
        self.log_debug = log_debug or _noop_logger

    @property
    def default_roots(self) -> list[str]:
        return [os.path.join(self.source_root, PCI_DEVICES_ROOT)]

    def discover_file_specs(self, initial_roots: Optional[Iterable[str]] = None) -> list[str]:
        """Walk the PCI topology breadth-first and collect glob patterns.

        Args:
            initial_roots: Directories to start from (defaults to
                <source_root>/sys/bus/pci/devices)

        Returns:
            Glob patterns in discovery order; duplicates are possible
        """
        roots = list(initial_roots) if initial_roots is not None else self.default_roots
        worklist = deque(roots)
        visited: set[str] = set()
        file_specs: list[str] = []
        while worklist:
            pci_root = worklist.popleft()
            canonical = os.path.realpath(pci_root)
            if canonical in visited:
                self.log_debug(f"PCI root {pci_root!r} already scanned - skipped")
                continue
            visited.add(canonical)
            specs, new_roots = self.scan_root(pci_root)
            file_specs.extend(specs)
            worklist.extend(new_roots)
        log.debug(f"Discovered {len(file_specs)} PCI file specs from {len(visited)} roots")
        return file_specs

    def scan_root(self, root: str) -> tuple[list[str], list[str]]:
        """Scan one PCI root.

        Returns:
            (file_specs, bridge_roots) for the devices directly under root
        """
        self.log_debug(f"scanning PCI device root {root!r}")
        try:
            entry_names = sorted(os.listdir(root))
        except OSError as error:
            problem = PartialTopologyError(root, error.strerror or str(error))
            log.warning(f"{problem} - PCI devices below it are not captured")
            return [], []

        file_specs: list[str] = []
        bridge_roots: list[str] = []
        for entry_name in entry_names:
            if PCIAddress.from_string(entry_name) is None:
                # doesn't look like an entry we care about
                continue
            entry_path = os.path.join(root, entry_name)
            device_path = find_pci_entry_from_path(root, entry_name, self.log_debug)
            self.log_debug(f"PCI entry is {device_path!r}")
            file_specs.append(glob.escape(entry_path))
            for attribute in PCI_DEVICE_ATTRIBUTES:
                file_specs.append(glob.escape(os.path.join(device_path, attribute)))
            if is_pci_bridge(device_path, self.log_debug):
                self.log_debug(f"adding new PCI root {device_path!r}")
                bridge_roots.append(device_path)
        return file_specs, bridge_roots


def pci_devices_clone_content(
    source_root: str = "/", log_debug: Optional[LogDebug] = None
) -> list[str]:
    """Return the glob patterns for every PCI device on the host.

    Beware: the content is host specific, the topology is unpredictable.
    """
    return PCITopologyScanner(source_root, log_debug).discover_file_specs()
