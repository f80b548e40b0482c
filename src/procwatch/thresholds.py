"""Reduce matching processes to a count and grade it against thresholds."""

from dataclasses import dataclass
from typing import Iterable, Optional

from procwatch.models import ProcessRecord, Severity

METRIC_FIELDS = ("vsz", "rss", "pcpu")


class MetricUnavailable(Exception):
    """A matching process does not report the requested metric."""


@dataclass(frozen=True)
class Thresholds:
    """Over bounds trigger on strictly greater, under bounds on strictly less.

    The defaults demand exactly one matching process: a second one is
    CRITICAL.
    """
    warn_over: int = 1
    crit_over: int = 1
    warn_under: int = 0
    crit_under: int = 0


def compute_count(records: Iterable[ProcessRecord], metric: Optional[str] = None) -> int:
    """Count *records*, or sum their *metric* field truncated to int."""
    records = list(records)
    if not metric:
        return len(records)

    total = 0
    for record in records:
        value = getattr(record, metric)
        if value is None:
            raise MetricUnavailable(
                f"{metric} is not reported for process {record.pid}"
            )
        total += int(value)
    return total


def classify(count: int, thresholds: Thresholds) -> Severity:
    if count < thresholds.crit_under or count > thresholds.crit_over:
        return Severity.CRITICAL
    if count < thresholds.warn_under or count > thresholds.warn_over:
        return Severity.WARNING
    return Severity.OK
