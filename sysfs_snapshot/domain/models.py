"""Minimal domain model for snapshot operations.

This module holds the value objects passed between the snapshot components
instead of raw strings and tuples: parsed PCI bus addresses and the entries
of a mirrored pseudo-filesystem tree.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


# ==============================================================================
# PCI Domain
# ==============================================================================

#        domain        bus           device        function
PCI_ADDRESS_PATTERN = re.compile(
    r"^(?:([0-9a-f]{0,4}):)?([0-9a-f]{2}):([0-9a-f]{2})\.([0-9a-f])$"
)


@dataclass(frozen=True)
class PCIAddress:
    """A PCI bus address token (domain:bus:device.function).

    Device directories under /sys/bus/pci/devices are named after these
    tokens, e.g. "0000:00:1f.2".
    """

    domain: str  # e.g., "0000"
    bus: str  # e.g., "00"
    device: str  # e.g., "1f"
    function: str  # e.g., "2"

    def __str__(self) -> str:
        return f"{self.domain}:{self.bus}:{self.device}.{self.function}"

    @classmethod
    def from_string(cls, text: str) -> PCIAddress | None:
        """Parse a bus address token.

        The domain part is optional and defaults to "0000". Hex digits are
        accepted in either case and normalized to lower case.

        Returns:
            PCIAddress, or None if the text is not a PCI address
        """
        match = PCI_ADDRESS_PATTERN.match(text.strip().lower())
        if not match:
            return None
        domain, bus, device, function = match.groups()
        if not domain:
            domain = "0000"
        return cls(
            domain=domain.zfill(4),
            bus=bus,
            device=device,
            function=function,
        )


# ==============================================================================
# Mirror Tree Domain
# ==============================================================================


class EntryKind(Enum):
    """Kind of an entry in a mirrored tree or archive."""

    FILE = "file"
    SYMLINK = "symlink"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a mirrored tree, addressed relative to the tree root.

    Two trees are equivalent when they hold the same set of entries: same
    relative paths, kinds, file bytes and (unresolved) link targets.
    """

    path: str  # forward-slash separated, relative to the root
    kind: EntryKind
    mode: int  # permission bits only
    content: bytes | None = None  # regular files
    link_target: str | None = None  # symlinks, verbatim
