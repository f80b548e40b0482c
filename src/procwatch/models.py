"""Data models for procwatch process records and check results."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Severity(Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"

    @property
    def exit_code(self) -> int:
        """Plugin exit code: 0 = OK, 1 = WARNING, 2 = CRITICAL, 3 = UNKNOWN."""
        return {
            Severity.OK: 0,
            Severity.WARNING: 1,
            Severity.CRITICAL: 2,
            Severity.UNKNOWN: 3,
        }[self]


@dataclass(frozen=True)
class ProcessRecord:
    """One process as seen in a single listing snapshot.

    ``user``, ``vsz``, ``rss`` and ``pcpu`` are ``None`` when the listing
    tool does not report them (Cygwin), and ``ppid`` is only filled in there.
    """
    pid: int
    state: str
    command: str
    ppid: Optional[int] = None
    user: Optional[str] = None
    vsz: Optional[int] = None
    rss: Optional[int] = None
    pcpu: Optional[float] = None


@dataclass
class CheckResult:
    name: str
    severity: Severity
    message: str
    count: Optional[int] = None
    details: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "name": self.name,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.count is not None:
            d["count"] = self.count
        if self.details:
            d["details"] = self.details
        return d
