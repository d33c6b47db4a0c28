"""
Pytest configuration and shared fixtures for sysfs-snapshot tests.

The fixtures build small synthetic /proc and /sys trees under tmp_path so the
snapshot components can run against them instead of the live host.
"""

import os
from pathlib import Path
from typing import Dict, List
from unittest.mock import MagicMock, Mock

import pytest
from loguru import logger


SDA_DEVICE_DIR = (
    "sys/devices/pci0000:00/0000:00:1f.2/ata1/host0/target0:0:0/0:0:0:0/block/sda"
)
SDA_LINK_TARGET = (
    "../devices/pci0000:00/0000:00:1f.2/ata1/host0/target0:0:0/0:0:0:0/block/sda"
)
LOOP0_LINK_TARGET = "../devices/virtual/block/loop0"

PCI_ATTRIBUTES = (
    "class",
    "device",
    "irq",
    "local_cpulist",
    "modalias",
    "numa_node",
    "revision",
    "vendor",
)


# ==============================================================================
# Tree Building Helpers
# ==============================================================================


def write_file(root: Path, relative: str, content: str = "") -> Path:
    """Create root/relative (and its parents) holding content."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def make_link(root: Path, relative: str, target: str) -> Path:
    """Create root/relative as a symlink to target (verbatim)."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(target, path)
    return path


def add_pci_device(
    root: Path, device_dir: str, device_class: str = "0x010601", vendor: str = "0x8086"
) -> Path:
    """Create a PCI device directory with the usual attribute files."""
    values: Dict[str, str] = {
        "class": device_class,
        "device": "0xa102",
        "irq": "16",
        "local_cpulist": "0-3",
        "modalias": f"pci:v0000{vendor[2:].upper()}d0000A102sv00001028sd000007A1bc01sc06i01",
        "numa_node": "-1",
        "revision": "0x31",
        "vendor": vendor,
    }
    for name, value in values.items():
        write_file(root, f"{device_dir}/{name}", value + "\n")
    return root / device_dir


def add_bus_link(root: Path, address: str, device_dir: str) -> Path:
    """Link sys/bus/pci/devices/<address> to a device directory under sys/."""
    relative_target = "../../../" + device_dir[len("sys/"):]
    return make_link(root, f"sys/bus/pci/devices/{address}", relative_target)


# ==============================================================================
# Synthetic Host Fixtures
# ==============================================================================


@pytest.fixture
def fake_host_root(tmp_path) -> Path:
    """
    Fixture providing a synthetic host root with /proc, /etc and /sys content.

    Layout highlights:
        - sys/block/sda -> ../devices/pci0000:00/.../block/sda (with sda1)
        - sys/block/loop0 -> ../devices/virtual/block/loop0
        - PCI bridge 0000:00:01.0 with 0000:01:00.0 behind it
        - CPU, memory and NUMA node attribute files

    Returns:
        Path to the root directory, to be passed as source_root.
    """
    root = tmp_path / "host"

    write_file(root, "proc/cpuinfo", "processor\t: 0\nvendor_id\t: GenuineIntel\n")
    write_file(root, "proc/meminfo", "MemTotal:       16303428 kB\n")
    write_file(root, "etc/mtab", "/dev/sda1 / ext4 rw,relatime 0 0\n")

    # Block devices
    write_file(root, f"{SDA_DEVICE_DIR}/size", "500118192\n")
    write_file(root, f"{SDA_DEVICE_DIR}/ro", "0\n")
    write_file(root, f"{SDA_DEVICE_DIR}/removable", "0\n")
    write_file(root, f"{SDA_DEVICE_DIR}/queue/rotational", "1\n")
    write_file(root, f"{SDA_DEVICE_DIR}/queue/scheduler", "[mq-deadline] none\n")
    write_file(root, f"{SDA_DEVICE_DIR}/trace/enable", "0\n")
    write_file(root, f"{SDA_DEVICE_DIR}/sda1/size", "1048576\n")
    write_file(root, f"{SDA_DEVICE_DIR}/sda1/start", "2048\n")
    write_file(root, f"{SDA_DEVICE_DIR}/sda1/power/control", "auto\n")
    make_link(root, f"{SDA_DEVICE_DIR}/subsystem", "../../../../../../../../../class/block")
    make_link(root, f"{SDA_DEVICE_DIR}/sda1/subsystem", "../../../../../../../../../../class/block")
    make_link(root, "sys/block/sda", SDA_LINK_TARGET)

    write_file(root, "sys/devices/virtual/block/loop0/size", "0\n")
    write_file(root, "sys/devices/virtual/block/loop0/queue/rotational", "0\n")
    make_link(root, "sys/block/loop0", LOOP0_LINK_TARGET)

    # CPU, memory and NUMA topology
    write_file(root, "sys/devices/system/cpu/cpu0/topology/core_id", "0\n")
    write_file(root, "sys/devices/system/cpu/cpu0/topology/physical_package_id", "0\n")
    write_file(root, "sys/devices/system/cpu/cpu0/cache/index0/level", "1\n")
    write_file(root, "sys/devices/system/cpu/cpu0/cache/index0/size", "32K\n")
    write_file(root, "sys/devices/system/cpu/cpu0/online", "1\n")
    write_file(root, "sys/devices/system/memory/block_size_bytes", "8000000\n")
    write_file(root, "sys/devices/system/memory/memory0/online", "1\n")
    write_file(root, "sys/devices/system/memory/memory0/state", "online\n")
    write_file(root, "sys/devices/system/memory/memory0/phys_device", "0\n")
    write_file(root, "sys/devices/system/node/online", "0\n")
    write_file(root, "sys/devices/system/node/possible", "0\n")
    write_file(root, "sys/devices/system/node/has_cpu", "0\n")
    write_file(root, "sys/devices/system/node/node0/distance", "10\n")
    make_link(root, "sys/devices/system/node/node0/cpu0", "../../cpu/cpu0")

    # PCI topology: SATA controller, a root port bridge and a NIC behind it
    add_pci_device(root, "sys/devices/pci0000:00/0000:00:1f.2", "0x010601")
    add_pci_device(root, "sys/devices/pci0000:00/0000:00:01.0", "0x060400")
    add_pci_device(root, "sys/devices/pci0000:00/0000:00:01.0/0000:01:00.0", "0x020000")
    write_file(root, "sys/devices/pci0000:00/pci_bus/0000:00/cpulistaffinity", "0-3\n")
    add_bus_link(root, "0000:00:1f.2", "sys/devices/pci0000:00/0000:00:1f.2")
    add_bus_link(root, "0000:00:01.0", "sys/devices/pci0000:00/0000:00:01.0")
    add_bus_link(
        root, "0000:01:00.0", "sys/devices/pci0000:00/0000:00:01.0/0000:01:00.0"
    )

    return root


@pytest.fixture
def scratch_root(tmp_path) -> Path:
    """Fixture providing an empty scratch directory for a mirror."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return scratch


@pytest.fixture
def ghw_test_tree(tmp_path) -> Path:
    """
    Fixture providing a small tree of files, links and nested directories.

    Returns:
        Path to the tree root.
    """
    root = tmp_path / "ghw-tree"
    write_file(root, "ghw-test-a", "X")
    write_file(root, "ghw-test-b", "Y")
    write_file(root, "different/subtree/ghw-test-c", "Z")
    make_link(root, "nested/ghw-test-b", "../ghw-test-a")
    write_file(
        root,
        "nested/tree/of/subdirectories/forming/deep/unbalanced/tree/ghw-test-3",
        "deep",
    )
    return root


# ==============================================================================
# Logging Fixtures
# ==============================================================================


@pytest.fixture
def mock_log_debug() -> Mock:
    """
    Fixture providing a mock log_debug callback.

    Returns:
        Mock callable for debug logging.
    """
    return MagicMock()


@pytest.fixture
def captured_logs() -> List[dict]:
    """
    Fixture capturing loguru records emitted during the test.

    Returns:
        List that receives every record (level TRACE and above).
    """
    records: List[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """
    Fixture providing a temporary settings file path.

    Returns:
        Path to a temporary settings file.
    """
    settings_dir = tmp_path / ".config" / "sysfs-snapshot"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"
