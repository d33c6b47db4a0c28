"""Operator configuration for sysfs-snapshot."""
