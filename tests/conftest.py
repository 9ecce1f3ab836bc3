"""Shared fixtures for the hostinsight test suite."""

import os
import tempfile

# Keep the log file and reports out of the real home directory. Must run
# before hostinsight.config is imported.
os.environ.setdefault("HOSTINSIGHT_DATA_DIR", tempfile.mkdtemp(prefix="hostinsight-tests-"))

import pytest  # noqa: E402

from hostinsight.models import (  # noqa: E402
    CpuMetrics,
    DiskMetrics,
    MemoryMetrics,
    ProcessRecord,
    SystemSnapshot,
)
from hostinsight.monitor import DiskStore, RawProcess  # noqa: E402


class FakeProvider:
    """Scripted metrics provider; each cpu_ticks() call adds 100 ticks, 25 idle."""

    def __init__(self, processes=None, disk=True, fail_on=()):
        self.calls = 0
        self._processes = processes if processes is not None else [
            RawProcess(pid=1, name="init", cpu_percent=0.5, memory_rss=4096),
            RawProcess(pid=42, name="python", cpu_percent=35.0, memory_rss=50 * 1024**2),
            RawProcess(pid=7, name="chrome", cpu_percent=120.0, memory_rss=2 * 1024**3),
        ]
        self._disk = disk
        self._fail_on = set(fail_on)

    def cpu_ticks(self):
        self.calls += 1
        if self.calls in self._fail_on:
            raise OSError("sensor unavailable")
        n = self.calls
        # user, nice, system, idle, iowait, irq, softirq, steal
        return [50.0 * n, 0.0, 25.0 * n, 20.0 * n, 5.0 * n, 0.0, 0.0, 0.0]

    def memory_bytes(self):
        return 16 * 1024**3, 4 * 1024**3

    def disk_store(self, mount):
        if not self._disk:
            return None
        return DiskStore(label="/dev/sda1", mountpoint=mount, total=500 * 1024**3, free=125 * 1024**3)

    def processes(self):
        return list(self._processes)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def snapshot():
    """A realistic, valid snapshot."""
    return SystemSnapshot(
        cpu=CpuMetrics(load=87.3),
        memory=MemoryMetrics(used_bytes=12 * 1024**3, total_bytes=16 * 1024**3),
        disk=DiskMetrics(drive_label="/dev/sda1", used_bytes=375 * 1024**3, total_bytes=500 * 1024**3),
        processes=(
            ProcessRecord(pid=7, name="chrome", cpu_percent=120.0, memory_label="2.0 GB"),
            ProcessRecord(pid=42, name="python", cpu_percent=35.0, memory_label="50.0 MB"),
        ),
        process_count=213,
    )
