"""Domain models for snapshot operations.

This package contains small type-safe value objects shared by the snapshot
components: PCI bus addresses and the entries of a mirrored tree.
"""

from __future__ import annotations

from .models import EntryKind, PCIAddress, TreeEntry


__all__ = [
    "EntryKind",
    "PCIAddress",
    "TreeEntry",
]
