"""Process filters built from a CheckConfig.

Each active option becomes one predicate.  A process survives only if every
predicate matches it, so the result never depends on predicate order.
"""

import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Set, Tuple, Union

from procwatch.config import CheckConfig
from procwatch.models import ProcessRecord


@dataclass(frozen=True)
class Identity:
    """The pid and parent pid of the running check."""
    pid: int
    ppid: int

    @classmethod
    def current(cls) -> "Identity":
        return cls(pid=os.getpid(), ppid=os.getppid())


@dataclass(frozen=True)
class PidEquals:
    pid: int

    def matches(self, record: ProcessRecord) -> bool:
        return record.pid == self.pid


@dataclass(frozen=True)
class ExcludePid:
    pid: int

    def matches(self, record: ProcessRecord) -> bool:
        return record.pid != self.pid


@dataclass(frozen=True)
class CommandPattern:
    pattern: str

    def matches(self, record: ProcessRecord) -> bool:
        return re.search(self.pattern, record.command) is not None


@dataclass(frozen=True)
class AtLeast:
    field: str
    minimum: float

    def matches(self, record: ProcessRecord) -> bool:
        value = getattr(record, self.field)
        # Not reported by this listing: the process does not match.
        if value is None:
            return False
        return value >= self.minimum


@dataclass(frozen=True)
class OneOf:
    field: str
    values: Tuple[str, ...]

    def matches(self, record: ProcessRecord) -> bool:
        value = getattr(record, self.field)
        if value is None:
            return False
        return value in self.values


Filter = Union[PidEquals, ExcludePid, CommandPattern, AtLeast, OneOf]


def build_filters(config: CheckConfig, identity: Identity) -> List[Filter]:
    """Build the predicate list for *config*, once per run."""
    filters: List[Filter] = []
    if config.file_pid is not None:
        filters.append(PidEquals(config.file_pid))
    if not config.match_self:
        filters.append(ExcludePid(identity.pid))
    if not config.match_parent:
        filters.append(ExcludePid(identity.ppid))
    if config.cmd_pat:
        filters.append(CommandPattern(config.cmd_pat))
    if config.vsz is not None:
        filters.append(AtLeast("vsz", config.vsz))
    if config.rss is not None:
        filters.append(AtLeast("rss", config.rss))
    if config.pcpu is not None:
        filters.append(AtLeast("pcpu", config.pcpu))
    if config.state is not None:
        filters.append(OneOf("state", config.state))
    if config.user is not None:
        filters.append(OneOf("user", config.user))
    return filters


def apply_filters(records: Iterable[ProcessRecord],
                  filters: List[Filter]) -> List[ProcessRecord]:
    """Return the records every filter matches, in their original order."""
    return [r for r in records if all(f.matches(r) for f in filters)]


def unavailable_fields(filters: List[Filter], available: Iterable[str]) -> Set[str]:
    """Return fields the filters need that the lister does not report."""
    available = set(available)
    needed = {f.field for f in filters if isinstance(f, (AtLeast, OneOf))}
    # state is always reported
    needed.discard("state")
    return needed - available
