"""Turns a SystemSnapshot into the diagnostic prompt sent to the model."""

from __future__ import annotations

from hostinsight.errors import InvalidMetricsData
from hostinsight.log import logger
from hostinsight.models import SystemSnapshot, format_bytes

NO_PROCESS = "N/A"

# The wording is what the model is tuned against; change it deliberately.
PROMPT_TEMPLATE = (
    "You are a system diagnostics expert. Analyze this system snapshot and provide a concise, "
    "actionable explanation focusing on potential performance issues. "
    "Consider high CPU load (>80%), high memory usage (>90%), high disk usage (>90%), "
    "or unusual process behavior. "
    "DATA: "
    "CPU Load: {cpu_load:.1f}%. "
    "Memory Usage: {mem_used} / {mem_total} ({mem_percent:.1f}%). "
    "Disk Usage: {disk_used} / {disk_total} ({disk_percent:.1f}%). "
    "Top CPU Process: {top_process}. "
    "Total Processes: {process_count}. "
    "Provide the response in markdown format with the following structure:\n"
    "## Title\n"
    "**Likely Causes:**\n* Cause 1\n* Cause 2\n"
    "**Suggested Actions:**\n* Action 1\n* Action 2\n"
    "Keep the response concise (150-300 words) and prioritize actionable insights."
)


def build_prompt(snapshot: SystemSnapshot) -> str:
    """
    Render ``snapshot`` as a natural-language prompt.

    Raises:
        InvalidMetricsData: If the memory or disk total is zero, since the
            usage percentages could not be computed.
    """
    mem = snapshot.memory
    disk = snapshot.disk
    if mem.total_bytes == 0 or disk.total_bytes == 0:
        logger.error(
            "Invalid system metrics: memory total=%d, disk total=%d", mem.total_bytes, disk.total_bytes
        )
        raise InvalidMetricsData(
            f"Invalid system metrics data: memory total={mem.total_bytes}, disk total={disk.total_bytes}"
        )

    top_process = snapshot.processes[0].name if snapshot.processes else NO_PROCESS
    prompt = PROMPT_TEMPLATE.format(
        cpu_load=snapshot.cpu.load,
        mem_used=format_bytes(mem.used_bytes),
        mem_total=format_bytes(mem.total_bytes),
        mem_percent=mem.used_bytes / mem.total_bytes * 100.0,
        disk_used=format_bytes(disk.used_bytes),
        disk_total=format_bytes(disk.total_bytes),
        disk_percent=disk.used_bytes / disk.total_bytes * 100.0,
        top_process=top_process,
        process_count=snapshot.process_count,
    )
    logger.debug("Generated prompt: %s", prompt)
    return prompt
