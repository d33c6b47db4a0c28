"""Portable snapshots of the Linux hardware pseudo-filesystems (/proc, /sys)."""

from .__version__ import __version__

__all__ = ["__version__"]
