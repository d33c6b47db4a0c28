"""Tests for domain models."""

import pytest

from sysfs_snapshot.domain import EntryKind, PCIAddress, TreeEntry


class TestPCIAddress:
    def test_parse_full_address(self):
        address = PCIAddress.from_string("0000:00:1f.2")
        assert address == PCIAddress("0000", "00", "1f", "2")
        assert str(address) == "0000:00:1f.2"

    def test_domain_defaults(self):
        assert str(PCIAddress.from_string("00:1f.2")) == "0000:00:1f.2"

    def test_upper_case_normalized(self):
        assert str(PCIAddress.from_string("0000:3A:00.0")) == "0000:3a:00.0"

    @pytest.mark.parametrize(
        "text", ["pci0000:00", "power", "uevent", "0000:00:1f", "0000:00:1f.2.1", ""]
    )
    def test_non_addresses(self, text):
        assert PCIAddress.from_string(text) is None

    def test_frozen(self):
        address = PCIAddress.from_string("0000:00:02.0")
        with pytest.raises(AttributeError):
            address.bus = "01"


class TestTreeEntry:
    def test_link_entries_compare_on_target(self):
        link = TreeEntry("sys/block/sda", EntryKind.SYMLINK, 0o777, link_target="../devices/sda")
        moved = TreeEntry("sys/block/sda", EntryKind.SYMLINK, 0o777, link_target="/sys/devices/sda")
        assert link != moved
        assert link.content is None

    def test_equality_includes_content(self):
        first = TreeEntry("proc/cpuinfo", EntryKind.FILE, 0o644, content=b"a")
        second = TreeEntry("proc/cpuinfo", EntryKind.FILE, 0o644, content=b"b")
        assert first != second
        assert first == TreeEntry("proc/cpuinfo", EntryKind.FILE, 0o644, content=b"a")
