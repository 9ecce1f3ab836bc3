"""System sampling engine for hostinsight."""

from __future__ import annotations

import platform
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from typing import NamedTuple, TypeVar

import psutil

from hostinsight.errors import SensorReadError
from hostinsight.log import logger
from hostinsight.models import (
    CpuMetrics,
    DiskMetrics,
    MemoryMetrics,
    ProcessRecord,
    SystemSnapshot,
    format_bytes,
)

# Order of the raw CPU tick vector handed to CpuLoadEstimator.
TICK_FIELDS = ("user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal")
IDLE_FIELDS = ("idle", "iowait")

DEFAULT_INTERVAL = 2.0
MIN_INTERVAL = 0.1
DEFAULT_PROCESS_LIMIT = 10

_P = TypeVar("_P")


class DiskStore(NamedTuple):
    """Raw reading of one mounted file system."""

    label: str
    mountpoint: str
    total: int
    free: int


class RawProcess(NamedTuple):
    """Raw reading of one OS process, before ranking."""

    pid: int
    name: str
    cpu_percent: float
    memory_rss: int


class CpuLoadEstimator:
    """
    Turns successive raw CPU tick vectors into a load percentage.

    The previous vector is kept between calls, so one estimator must be
    driven by a single caller. The first call compares against an all-zero
    baseline and therefore reports the average load since boot.
    """

    def __init__(self, size: int = len(TICK_FIELDS), idle_indices: Iterable[int] | None = None) -> None:
        if idle_indices is None:
            idle_indices = [TICK_FIELDS.index(field) for field in IDLE_FIELDS]
        self._idle_indices = tuple(idle_indices)
        self._prev_ticks: list[float] = [0.0] * size

    def estimate(self, ticks: Sequence[float]) -> float:
        """Return the load (0-100) since the previous call and remember ``ticks``."""
        if len(ticks) != len(self._prev_ticks):
            raise ValueError(f"expected {len(self._prev_ticks)} tick counters, got {len(ticks)}")

        deltas = [cur - prev for cur, prev in zip(ticks, self._prev_ticks)]
        self._prev_ticks = list(ticks)

        total = sum(deltas)
        idle = sum(deltas[i] for i in self._idle_indices)
        if total <= 0:
            return 0.0
        load = (1.0 - idle / total) * 100.0
        return min(100.0, max(0.0, load))


def rank_processes(processes: Iterable[_P], limit: int) -> list[_P]:
    """
    Return the ``limit`` busiest processes, highest ``cpu_percent`` first.

    The sort is stable, so processes with equal usage keep their
    enumeration order.
    """
    if limit < 0:
        raise ValueError("limit must be non-negative")
    ranked = sorted(processes, key=lambda p: p.cpu_percent, reverse=True)
    return ranked[:limit]


def assemble_snapshot(
    cpu: CpuMetrics,
    memory: MemoryMetrics,
    disk: DiskMetrics,
    processes: Iterable[ProcessRecord],
    process_count: int | None = None,
) -> SystemSnapshot:
    """Bundle already-collected readings into one immutable snapshot."""
    processes = tuple(processes)
    return SystemSnapshot(
        cpu=cpu,
        memory=memory,
        disk=disk,
        processes=processes,
        process_count=len(processes) if process_count is None else process_count,
    )


class PsutilMetricsProvider:
    """Raw host readings backed by psutil."""

    def cpu_ticks(self) -> list[float]:
        times = psutil.cpu_times()
        # Fields missing on this platform (e.g. iowait on Windows) count as zero.
        return [float(getattr(times, field, 0.0)) for field in TICK_FIELDS]

    def memory_bytes(self) -> tuple[int, int]:
        """Return ``(total, available)`` physical memory in bytes."""
        mem = psutil.virtual_memory()
        return mem.total, mem.available

    def disk_store(self, mount: str) -> DiskStore | None:
        """Return the file system mounted at ``mount``, or None if there is none."""
        try:
            usage = psutil.disk_usage(mount)
        except FileNotFoundError:
            return None

        label = mount
        for part in psutil.disk_partitions(all=True):
            if part.mountpoint == mount:
                label = part.device or mount
                break
        return DiskStore(label=label, mountpoint=mount, total=usage.total, free=usage.free)

    def processes(self) -> list[RawProcess]:
        """
        Enumerate all processes with their cumulative CPU usage.

        Cumulative usage is CPU seconds divided by process age, so a
        multi-threaded process can exceed 100%. Processes that vanish or
        deny access mid-iteration are skipped.
        """
        now = time.time()
        processes: list[RawProcess] = []

        for proc in psutil.process_iter(attrs=["pid", "name", "cpu_times", "create_time", "memory_info"]):
            try:
                info = proc.info
                cpu_times = info.get("cpu_times")
                create_time = info.get("create_time")
                mem_info = info.get("memory_info")

                cpu_percent = 0.0
                if cpu_times is not None and create_time:
                    age = now - create_time
                    if age > 0:
                        cpu_percent = (cpu_times.user + cpu_times.system) / age * 100.0

                processes.append(
                    RawProcess(
                        pid=info.get("pid", 0),
                        name=info.get("name") or "",
                        cpu_percent=max(0.0, cpu_percent),
                        memory_rss=mem_info.rss if mem_info else 0,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return processes


def describe_host() -> str:
    """Return a one-line description of the OS and CPU."""
    cpu_model = platform.processor() or platform.machine() or "unknown CPU"
    physical = psutil.cpu_count(logical=False) or 1
    logical = psutil.cpu_count(logical=True) or 1
    return (
        f"{platform.system()} {platform.release()} | {cpu_model} | "
        f"{physical} physical / {logical} logical cores"
    )


class SystemMonitor:
    """
    Fixed-rate poller that builds a SystemSnapshot on every tick.

    Runs in a separate daemon thread and hands each snapshot to the consumer
    registered with ``start()``. The consumer is called on the sampling
    thread; moving the snapshot onto a UI thread is the consumer's job.
    """

    def __init__(
        self,
        provider: PsutilMetricsProvider | None = None,
        *,
        process_limit: int = DEFAULT_PROCESS_LIMIT,
        disk_mount: str = "/",
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            provider: Source of raw readings. Defaults to psutil.
            process_limit: How many top processes each snapshot keeps.
            disk_mount: Mount point reported as the primary disk.
        """
        self._provider = provider or PsutilMetricsProvider()
        self._process_limit = process_limit
        self._disk_mount = disk_mount
        self._estimator = CpuLoadEstimator()
        self._interval = DEFAULT_INTERVAL
        self._consumer: Callable[[SystemSnapshot], None] | None = None
        self._on_error: Callable[[SensorReadError], None] | None = None
        self._stop_event = threading.Event()
        self._delivery_lock = threading.RLock()
        self._lifecycle_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        # Last stopped thread; it may still be finishing its final tick.
        self._retired: threading.Thread | None = None

    @property
    def interval(self) -> float:
        """Get the current poll interval in seconds."""
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if the sampling thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(
        self,
        consumer: Callable[[SystemSnapshot], None],
        interval: float = DEFAULT_INTERVAL,
        on_error: Callable[[SensorReadError], None] | None = None,
    ) -> None:
        """
        Start polling. The first snapshot is taken immediately.

        Raises:
            RuntimeError: If the monitor is already running, or a previously
                stopped thread is still inside a tick.
        """
        with self._lifecycle_lock:
            if self.is_running:
                raise RuntimeError("SystemMonitor is already running")
            previous = self._retired
            # A restart from inside the consumer is fine: that thread
            # delivers nothing more once its own event is set.
            if (
                previous is not None
                and previous.is_alive()
                and previous is not threading.current_thread()
            ):
                raise RuntimeError("previous SystemMonitor thread has not exited yet")

            self._interval = max(MIN_INTERVAL, interval)
            self._consumer = consumer
            self._on_error = on_error
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._poll_loop,
                args=(stop_event,),
                daemon=True,
                name="SystemMonitor",
            )
            self._thread.start()
        logger.info("Polling started (interval=%.2fs, limit=%d)", self._interval, self._process_limit)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop polling. No consumer call begins after this returns.

        Safe to call repeatedly, concurrently and from inside the consumer.

        Args:
            timeout: How long to wait for the thread to exit (seconds).
        """
        with self._lifecycle_lock:
            thread, self._thread = self._thread, None
            self._stop_event.set()
            if thread is not None:
                self._retired = thread

        # Wait out a delivery that is already in progress.
        with self._delivery_lock:
            pass

        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Polling thread did not exit within %ss", timeout)
        logger.info("Polling stopped")

    def _poll_loop(self, stop_event: threading.Event) -> None:
        """Main polling loop running in the background thread."""
        deadline = time.monotonic()
        while not stop_event.is_set():
            self._tick(stop_event)
            # Fixed rate: an overrunning tick makes the next one fire at once.
            deadline += self._interval
            stop_event.wait(timeout=max(0.0, deadline - time.monotonic()))

    def _tick(self, stop_event: threading.Event) -> None:
        try:
            snapshot = self.sample()
        except SensorReadError as exc:
            logger.warning("Poll tick failed: %s", exc)
            if self._on_error is not None and not stop_event.is_set():
                try:
                    self._on_error(exc)
                except Exception:
                    logger.exception("Error callback raised")
            return

        with self._delivery_lock:
            if stop_event.is_set() or self._consumer is None:
                return
            try:
                self._consumer(snapshot)
            except Exception:
                logger.exception("Snapshot consumer raised")

    def sample(self) -> SystemSnapshot:
        """
        Take one consistent set of readings and assemble a snapshot.

        Raises:
            SensorReadError: If any raw read fails; nothing partial is returned.
        """
        try:
            cpu = CpuMetrics(load=self._estimator.estimate(self._provider.cpu_ticks()))
            memory = self._read_memory()
            disk = self._read_disk()
            raw_processes = self._provider.processes()
        except (psutil.Error, OSError, ValueError) as exc:
            raise SensorReadError(f"could not read system metrics: {exc}") from exc

        top = rank_processes(raw_processes, self._process_limit)
        records = [
            ProcessRecord(
                pid=proc.pid,
                name=proc.name,
                cpu_percent=proc.cpu_percent,
                memory_label=format_bytes(proc.memory_rss),
            )
            for proc in top
        ]
        return assemble_snapshot(cpu, memory, disk, records, process_count=len(raw_processes))

    def _read_memory(self) -> MemoryMetrics:
        total, available = self._provider.memory_bytes()
        return MemoryMetrics(used_bytes=max(0, total - available), total_bytes=total)

    def _read_disk(self) -> DiskMetrics:
        store = self._provider.disk_store(self._disk_mount)
        if store is None:
            return DiskMetrics(drive_label="N/A", used_bytes=0, total_bytes=0)
        return DiskMetrics(
            drive_label=store.label,
            used_bytes=max(0, store.total - store.free),
            total_bytes=store.total,
        )
