"""Tests for snapshot/pci.py (PCI topology discovery)."""

import glob
import os

import pytest

from conftest import PCI_ATTRIBUTES, add_pci_device, make_link, write_file
from sysfs_snapshot.snapshot.copier import copy_files_into
from sysfs_snapshot.snapshot.pci import (
    PCI_BRIDGE_PCI,
    PCITopologyScanner,
    find_pci_entry_from_path,
    is_pci_bridge,
    pci_devices_clone_content,
)


def _bridge_chain(root, depth):
    """Create a chain of `depth` nested bridges ending with a NIC.

    Returns the list of device directories from the top bridge down.
    """
    device_dirs = []
    current = "pci"
    for level in range(depth):
        current = f"{current}/0000:{level:02x}:00.0"
        add_pci_device(root, current, PCI_BRIDGE_PCI)
        device_dirs.append(root / current)
    current = f"{current}/0000:{depth:02x}:00.0"
    add_pci_device(root, current, "0x020000")
    device_dirs.append(root / current)
    return device_dirs


class TestFindPCIEntryFromPath:
    def test_regular_directory_is_returned_as_is(self, tmp_path):
        add_pci_device(tmp_path, "root/0000:00:02.0")
        assert find_pci_entry_from_path(str(tmp_path / "root"), "0000:00:02.0") == str(
            tmp_path / "root" / "0000:00:02.0"
        )

    def test_symlink_is_resolved_one_level(self, fake_host_root):
        root = str(fake_host_root / "sys/bus/pci/devices")
        resolved = find_pci_entry_from_path(root, "0000:00:1f.2")
        assert resolved == str(fake_host_root / "sys/devices/pci0000:00/0000:00:1f.2")

    def test_readlink_failure_falls_back_to_entry(self, fake_host_root, mocker):
        root = str(fake_host_root / "sys/bus/pci/devices")
        mocker.patch("os.readlink", side_effect=PermissionError(13, "denied"))
        assert find_pci_entry_from_path(root, "0000:00:1f.2") == os.path.join(
            root, "0000:00:1f.2"
        )


class TestIsPCIBridge:
    def test_bridge_class(self, tmp_path):
        device = add_pci_device(tmp_path, "dev", PCI_BRIDGE_PCI)
        assert is_pci_bridge(str(device)) is True

    def test_other_class(self, tmp_path):
        device = add_pci_device(tmp_path, "dev", "0x030000")
        assert is_pci_bridge(str(device)) is False

    def test_missing_class_file(self, tmp_path):
        assert is_pci_bridge(str(tmp_path)) is False


class TestPCITopologyScanner:
    def test_emits_entry_and_attribute_specs(self, fake_host_root):
        specs = PCITopologyScanner(str(fake_host_root)).discover_file_specs()

        bus_dir = fake_host_root / "sys/bus/pci/devices"
        sata_dir = fake_host_root / "sys/devices/pci0000:00/0000:00:1f.2"
        assert str(bus_dir / "0000:00:1f.2") in specs
        for attribute in PCI_ATTRIBUTES:
            assert str(sata_dir / attribute) in specs

    def test_devices_behind_bridge_are_discovered(self, fake_host_root):
        specs = PCITopologyScanner(str(fake_host_root)).discover_file_specs()

        nested = fake_host_root / "sys/devices/pci0000:00/0000:00:01.0/0000:01:00.0"
        assert str(nested) in specs
        assert str(nested / "class") in specs

    def test_non_address_entries_are_ignored(self, tmp_path):
        add_pci_device(tmp_path, "pci/0000:00:02.0")
        write_file(tmp_path, "pci/uevent", "")
        write_file(tmp_path, "pci/power/control", "auto\n")

        specs = PCITopologyScanner().discover_file_specs([str(tmp_path / "pci")])

        assert len(specs) == 1 + len(PCI_ATTRIBUTES)
        assert all("0000:00:02.0" in spec for spec in specs)

    @pytest.mark.parametrize("depth", [1, 3, 6])
    def test_nested_bridge_chain_is_fully_discovered(self, tmp_path, depth):
        device_dirs = _bridge_chain(tmp_path, depth)

        specs = PCITopologyScanner().discover_file_specs([str(tmp_path / "pci")])

        assert len(device_dirs) == depth + 1
        for device_dir in device_dirs:
            for attribute in PCI_ATTRIBUTES:
                assert str(device_dir / attribute) in specs

    def test_aliased_bridges_terminate(self, tmp_path):
        """Test two bridges resolving to the same directory are scanned once."""
        device_dirs = _bridge_chain(tmp_path, 2)
        bottom_bridge = device_dirs[1]
        # an entry below the last bridge that points back at the top bridge
        make_link(tmp_path, f"{bottom_bridge.relative_to(tmp_path)}/0000:09:00.0", "..")
        make_link(tmp_path, "pci/0000:0a:00.0", os.path.basename(device_dirs[0]))

        specs = PCITopologyScanner().discover_file_specs([str(tmp_path / "pci")])

        assert str(device_dirs[-1] / "vendor") in specs

    def test_self_referencing_bridge_terminates(self, tmp_path):
        bridge = add_pci_device(tmp_path, "pci/0000:00:01.0", PCI_BRIDGE_PCI)
        make_link(tmp_path, "pci/0000:00:01.0/0000:01:00.0", ".")

        specs = PCITopologyScanner().discover_file_specs([str(tmp_path / "pci")])

        assert str(bridge / "class") in specs

    def test_unlistable_root_contributes_nothing(self, tmp_path, captured_logs):
        specs = PCITopologyScanner(str(tmp_path)).discover_file_specs()

        assert specs == []
        warnings = [record for record in captured_logs if record["level"].name == "WARNING"]
        assert warnings
        assert "sys/bus/pci/devices" in warnings[0]["message"]

    def test_unlistable_bridge_does_not_stop_scan(self, tmp_path, mocker):
        add_pci_device(tmp_path, "pci/0000:00:01.0", PCI_BRIDGE_PCI)
        add_pci_device(tmp_path, "pci/0000:00:02.0", "0x030000")
        real_listdir = os.listdir

        def listdir(path):
            if path.endswith("0000:00:01.0"):
                raise PermissionError(13, "Permission denied")
            return real_listdir(path)

        mocker.patch("sysfs_snapshot.snapshot.pci.os.listdir", side_effect=listdir)

        specs = PCITopologyScanner().discover_file_specs([str(tmp_path / "pci")])

        assert str(tmp_path / "pci" / "0000:00:02.0" / "class") in specs

    def test_specs_are_glob_escaped(self, tmp_path, scratch_root):
        """Test paths with glob metacharacters still match themselves."""
        root = tmp_path / "odd[1]"
        add_pci_device(root, "pci/0000:00:02.0")

        specs = PCITopologyScanner().discover_file_specs([str(root / "pci")])
        copy_files_into(specs, str(scratch_root), source_root=str(root))

        assert (scratch_root / "pci" / "0000:00:02.0" / "vendor").read_text() == "0x8086\n"
        assert glob.escape(str(root / "pci" / "0000:00:02.0")) in specs

    def test_log_debug_receives_trace(self, fake_host_root, mock_log_debug):
        PCITopologyScanner(str(fake_host_root), mock_log_debug).discover_file_specs()
        mock_log_debug.assert_any_call(
            f"scanning PCI device root {str(fake_host_root / 'sys/bus/pci/devices')!r}"
        )

    def test_module_helper(self, fake_host_root):
        assert pci_devices_clone_content(str(fake_host_root)) == PCITopologyScanner(
            str(fake_host_root)
        ).discover_file_specs()
