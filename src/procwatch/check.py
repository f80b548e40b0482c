"""The process count check: enumerate, filter, count, grade."""

import logging
from typing import List, Optional

from procwatch.config import CheckConfig
from procwatch.enumerator import EnumerationError, ProcessLister, detect_lister
from procwatch.filters import Identity, apply_filters, build_filters, unavailable_fields
from procwatch.message import compose_message
from procwatch.models import CheckResult, ProcessRecord, Severity
from procwatch.thresholds import MetricUnavailable, classify, compute_count

_log = logging.getLogger("procwatch")

CHECK_NAME = "procs"


class ProcsCheck:
    """Count the processes matching *config* and grade the count.

    *lister* and *identity* default to the host's lister and the running
    process; tests pass their own.
    """

    def __init__(self, config: CheckConfig,
                 lister: Optional[ProcessLister] = None,
                 identity: Optional[Identity] = None,
                 verbose: bool = False):
        self.config = config
        self.lister = lister
        self.identity = identity or Identity.current()
        self.verbose = verbose

    def matching(self) -> List[ProcessRecord]:
        """Take one snapshot and return the processes that pass every filter."""
        if self.lister is None:
            self.lister = detect_lister()

        filters = build_filters(self.config, self.identity)
        missing = unavailable_fields(filters, self.lister.fields)
        if missing:
            _log.warning("%s listing does not report %s; no process will match those filters",
                         self.lister.name, ", ".join(sorted(missing)))

        records = self.lister.enumerate()
        matched = apply_filters(records, filters)
        _log.info("%s listing: %d processes, %d matching",
                  self.lister.name, len(records), len(matched))
        return matched

    def run(self) -> CheckResult:
        try:
            return self._evaluate()
        except EnumerationError as e:
            _log.error("process listing failed: %s", e)
            return CheckResult(
                name=CHECK_NAME,
                severity=Severity.UNKNOWN,
                message=str(e),
            )
        except MetricUnavailable as e:
            return CheckResult(
                name=CHECK_NAME,
                severity=Severity.UNKNOWN,
                message=str(e),
            )
        except Exception as e:
            _log.exception("check failed")
            return CheckResult(
                name=CHECK_NAME,
                severity=Severity.UNKNOWN,
                message=f"Check failed to run: {e}",
            )

    def _evaluate(self) -> CheckResult:
        matched = self.matching()
        metric = self.config.metric
        count = compute_count(matched, metric)
        severity = classify(count, self.config.thresholds)
        message = compose_message(
            len(matched), self.config, metric_total=count if metric else None,
        )
        _log.info("check complete: count=%d severity=%s", count, severity.value)

        return CheckResult(
            name=CHECK_NAME,
            severity=severity,
            message=message,
            count=count,
            details=self._details(matched) if self.verbose else None,
        )

    @staticmethod
    def _details(matched: List[ProcessRecord]) -> str:
        """List up to 20 matching processes for verbose output."""
        lines = [f"{r.pid} {r.command}" for r in matched[:20]]
        suffix = f"\n  ... and {len(matched) - 20} more" if len(matched) > 20 else ""
        return "  " + "\n  ".join(lines) + suffix if lines else ""
