"""Process enumeration via ``ps``, with a fallback for Cygwin's ``ps``."""

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import FrozenSet, List, Optional, Tuple

from procwatch.models import ProcessRecord

_log = logging.getLogger("procwatch")

# Cygwin's ps has no -o option and always prints the STIME column, which may
# contain spaces.  Its long format (ps.cc, revision 1.35) is
#   "%c %7d %7d %7d %10u %4s %4u %8s %s\n"
# so once the leading state character is removed, STIME plus its separator
# sits at these offsets.
_CYGWIN_STIME = slice(45, 54)


class EnumerationError(Exception):
    """The process listing could not be obtained."""


def read_lines(argv: List[str]) -> Tuple[List[str], Optional[int]]:
    """Run *argv* to completion and return its output lines and its pid.

    stderr is merged into stdout.  Command lines may hold arbitrary bytes,
    so undecodable ones become U+FFFD instead of failing.  No timeout is
    applied; a hung ``ps`` hangs the check until the caller's own time
    limit kills it.
    """
    try:
        child = subprocess.Popen(
            argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
            encoding="utf-8", errors="replace",
        )
    except OSError as e:
        raise EnumerationError(f"Could not run {argv[0]}: {e}") from e
    output, _ = child.communicate()
    return output.splitlines(), child.pid


def on_cygwin() -> bool:
    """Return True if ``ps`` accepts ``-W``, which only Cygwin's ps does."""
    try:
        result = subprocess.run(
            ["ps", "-W"],
            stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
        )
    except OSError:
        return False
    return result.returncode == 0


class ProcessLister(ABC):
    """One way of turning a process listing tool's output into records."""

    name: str = ""
    argv: List[str] = []
    # Optional ProcessRecord fields this lister fills in.
    fields: FrozenSet[str] = frozenset()

    def enumerate(self) -> List[ProcessRecord]:
        """Take one snapshot of the running processes.

        The listing tool's own process is left out of the result.
        """
        lines, child_pid = read_lines(self.argv)
        records = []
        for line in lines[1:]:
            record = self.parse_line(line)
            if record is None:
                _log.debug("%s: skipped unparsable line %r", self.name, line)
                continue
            if record.pid == child_pid:
                continue
            records.append(record)

        if not records:
            first = lines[0].strip() if lines else "no output"
            raise EnumerationError(
                f"No processes could be read from {' '.join(self.argv)}: {first}"
            )
        return records

    @abstractmethod
    def parse_line(self, line: str) -> Optional[ProcessRecord]:
        """Parse one output line, or return None if it is not a process."""
        ...


class PsLister(ProcessLister):
    name = "ps"
    argv = ["ps", "axwwo", "user,pid,vsz,rss,pcpu,state,command"]
    fields = frozenset({"user", "vsz", "rss", "pcpu"})

    def parse_line(self, line: str) -> Optional[ProcessRecord]:
        # The command is last, so it keeps any whitespace it contains.
        parts = line.strip().split(None, 6)
        if len(parts) < 7:
            return None
        user, pid, vsz, rss, pcpu, state, command = parts
        try:
            return ProcessRecord(
                pid=int(pid),
                state=state,
                command=command,
                user=user,
                vsz=int(vsz),
                rss=int(rss),
                pcpu=float(pcpu),
            )
        except ValueError:
            return None


class CygwinPsLister(ProcessLister):
    """Listing for Cygwin, where ps cannot select columns.

    Only pid, ppid, state and command are available.  The STIME excision
    depends on the exact column widths of Cygwin's ps and is not guaranteed
    across versions.
    """

    name = "cygwin-ps"
    argv = ["ps", "-aWl"]
    fields = frozenset({"ppid"})

    def parse_line(self, line: str) -> Optional[ProcessRecord]:
        if not line.strip():
            return None
        # The state is not a real column and may be blank.
        state = line[0].strip()
        rest = line[1:]
        rest = rest[:_CYGWIN_STIME.start] + rest[_CYGWIN_STIME.stop:]
        parts = rest.strip().split(None, 6)
        if len(parts) < 7:
            return None
        pid, ppid, _pgid, _winpid, _tty, _uid, command = parts
        try:
            return ProcessRecord(
                pid=int(pid),
                ppid=int(ppid),
                state=state,
                command=command,
            )
        except ValueError:
            return None


def detect_lister() -> ProcessLister:
    """Pick the lister for this host."""
    if on_cygwin():
        _log.info("ps -W succeeded, using Cygwin process listing")
        return CygwinPsLister()
    return PsLister()
