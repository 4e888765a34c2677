"""Thread stack usage checks with warning and critical thresholds."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

log = logging.getLogger(__name__)

WARNING_THRESHOLD = 70
CRITICAL_THRESHOLD = 95
MONITOR_INTERVAL_SEC = 5


class StackLevel(Enum):
    """How full a thread's stack is."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class StackReport:
    """Stack usage of one thread."""

    name: str
    size: int
    unused: int
    percent: int
    level: StackLevel


def stack_usage_percent(size: int, unused: int) -> int:
    """Whole percent of a stack of ``size`` bytes that is in use."""
    if size <= 0:
        raise ValueError(f"stack size must be positive, got {size}")
    if not 0 <= unused <= size:
        raise ValueError(f"unused bytes {unused} outside stack of {size} bytes")
    return ((size - unused) * 100) // size


def classify_usage(percent: int) -> StackLevel:
    """Level of a usage percentage against the warning and critical thresholds."""
    if percent >= CRITICAL_THRESHOLD:
        return StackLevel.CRITICAL
    if percent >= WARNING_THRESHOLD:
        return StackLevel.WARNING
    return StackLevel.OK


def check_thread_stacks(
    threads: Iterable[Tuple[str, int, Optional[int]]],
) -> List[StackReport]:
    """Check every ``(name, size, unused)`` thread and log high usage.

    A thread whose unused space is None could not be measured; it is logged
    as an error and left out of the reports.
    """
    reports: List[StackReport] = []
    for name, size, unused in threads:
        if unused is None:
            log.error("unable to determine unused stack size for thread %s", name)
            continue
        percent = stack_usage_percent(size, unused)
        level = classify_usage(percent)
        if level is StackLevel.CRITICAL:
            log.error("thread %s stack usage critical: %u%% used", name, percent)
        elif level is StackLevel.WARNING:
            log.warning("thread %s stack usage high: %u%% used", name, percent)
        reports.append(StackReport(name, size, unused, percent, level))
    return reports