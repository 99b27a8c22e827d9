"""Collect memory samples of the server's runtime processes and our own limit."""

import logging

from vsmem.models import Installation, ProcessSample
from vsmem.osfacts import OsFacts

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def process_match(identifier: str, nodeapp: str) -> str:
    """Command line substring identifying the installation's runtime processes."""
    return f"{identifier}/server/{nodeapp}"


def inspect_processes(
    facts: OsFacts, installation: Installation, nodeapp: str
) -> list[ProcessSample]:
    """
    Sample the memory counters of every running runtime process of installation.

    Processes are kept in enumeration order. A process that exits between
    listing and reading its counters is left out. An empty list means no
    matching process is running.
    """
    match = process_match(installation.identifier, nodeapp)
    logger.debug("Matching processes on %r", match)

    samples: list[ProcessSample] = []
    for pid, command_line in facts.list_processes(match):
        counters = facts.read_memory_counters(pid)
        if counters is None:
            logger.debug("Process %d vanished before sampling", pid)
            continue
        logger.debug("Sampled %d: %s", pid, command_line)
        samples.append(
            ProcessSample(
                pid=pid,
                vm_peak=counters.vm_peak,
                vm_size=counters.vm_size,
                vm_hwm=counters.vm_hwm,
                vm_rss=counters.vm_rss,
            )
        )
    return samples


def virtual_memory_limit_mb(facts: OsFacts) -> int | None:
    """Get this process' virtual memory limit in MB, or None if unlimited."""
    limit = facts.read_virtual_memory_limit()
    if limit is None:
        return None
    return limit // BYTES_PER_MB
