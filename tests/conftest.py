"""Shared fixtures for procwatch tests."""

import copy
import logging

import pytest

from procwatch.config import DEFAULT_CONFIG
from procwatch.enumerator import ProcessLister
from procwatch.filters import Identity
from procwatch.models import ProcessRecord

SELF_PID = 4242
PARENT_PID = 4241


class FakeLister(ProcessLister):
    """Lister that returns a canned snapshot instead of running ps."""

    name = "fake"
    fields = frozenset({"user", "vsz", "rss", "pcpu"})

    def __init__(self, records):
        self.records = list(records)

    def enumerate(self):
        return list(self.records)

    def parse_line(self, line):
        return None


def proc(pid, command="/usr/bin/daemon", state="S", user="root",
         vsz=1000, rss=100, pcpu=0.0, ppid=None):
    return ProcessRecord(pid=pid, state=state, command=command, ppid=ppid,
                         user=user, vsz=vsz, rss=rss, pcpu=pcpu)


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path, monkeypatch):
    """Keep config and log files inside tmp_path."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    logger = logging.getLogger("procwatch")
    logger.handlers.clear()
    yield
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)


@pytest.fixture
def default_cfg():
    """Return a deep copy of the default config."""
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def identity():
    return Identity(pid=SELF_PID, ppid=PARENT_PID)


@pytest.fixture
def snapshot():
    """A snapshot holding the check itself, its parent, and a mix of others."""
    return [
        proc(1, "/sbin/init", state="Ss"),
        proc(PARENT_PID, "/bin/sh -c check-procs -p chef", user="sensu"),
        proc(SELF_PID, "/usr/bin/python3 /usr/local/bin/check-procs -p chef",
             user="sensu"),
        proc(100, "/opt/chef/embedded/bin/ruby /usr/bin/chef-client -d",
             vsz=250000, rss=90000, pcpu=12.5),
        proc(200, "[kworker/0:1]", vsz=0, rss=0),
        proc(300, "<defunct>", state="Z", user="www-data", vsz=0, rss=0),
        proc(301, "<defunct>", state="Z", user="www-data", vsz=0, rss=0),
        proc(400, "/usr/sbin/nginx -g daemon off;", user="www-data",
             vsz=50000, rss=8000, pcpu=1.0),
    ]
