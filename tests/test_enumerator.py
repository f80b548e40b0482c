"""Tests for ps and Cygwin ps process enumeration."""

import sys
from unittest.mock import patch, MagicMock

import pytest

from procwatch.enumerator import (
    CygwinPsLister, EnumerationError, PsLister, detect_lister, on_cygwin, read_lines,
)

PS_OUTPUT = """\
USER         PID    VSZ   RSS %CPU STAT COMMAND
root           1 168000 12000  0.0 Ss   /sbin/init splash
sensu       4242  30000  9000  0.5 S+   /usr/bin/python3 /usr/local/bin/check-procs -p chef  client
www-data     300      0     0  0.0 Z    [php-fpm] <defunct>
root        5000   7000  3000  0.0 R+   ps axwwo user,pid,vsz,rss,pcpu,state,command
"""

CYGWIN_HEADER = "      PID    PPID    PGID     WINPID   TTY     UID    STIME COMMAND"


def cygwin_line(state, pid, ppid, command, stime="10:01:02", tty="pty0", uid=1000):
    """Render a line in Cygwin ps's long format."""
    return "%c %7d %7d %7d %10u %4s %4u %8s %s" % (
        state, pid, ppid, pid, pid + 1000, tty, uid, stime, command,
    )


def _popen(output, pid=5000):
    child = MagicMock(pid=pid)
    child.communicate.return_value = (output, None)
    return child


# --- read_lines / probe -----------------------------------------------------

class TestReadLines:
    @patch("procwatch.enumerator.subprocess.Popen")
    def test_returns_lines_and_child_pid(self, mock_popen):
        mock_popen.return_value = _popen("a\nb\n", pid=77)
        lines, pid = read_lines(["ps"])
        assert lines == ["a", "b"]
        assert pid == 77

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_merges_stderr(self, mock_popen):
        import subprocess
        mock_popen.return_value = _popen("")
        read_lines(["ps", "-W"])
        assert mock_popen.call_args[1]["stderr"] == subprocess.STDOUT

    @patch("procwatch.enumerator.subprocess.Popen", side_effect=FileNotFoundError("ps"))
    def test_missing_tool_is_fatal(self, mock_popen):
        with pytest.raises(EnumerationError) as exc:
            read_lines(["ps", "axwwo", "user"])
        assert "Could not run ps" in str(exc.value)

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_decodes_with_replacement(self, mock_popen):
        mock_popen.return_value = _popen("")
        read_lines(["ps"])
        kwargs = mock_popen.call_args[1]
        assert kwargs["encoding"] == "utf-8"
        assert kwargs["errors"] == "replace"

    def test_undecodable_command_line(self):
        script = (
            "import sys; sys.stdout.buffer.write("
            "b'USER PID VSZ RSS %CPU STAT COMMAND\\n'"
            "b'root 10 100 10 0.0 S /usr/bin/caf\\xe9 -d\\n')"
        )
        lines, _ = read_lines([sys.executable, "-c", script])
        record = PsLister().parse_line(lines[1])
        assert record.pid == 10
        assert record.command == "/usr/bin/caf\ufffd -d"


class TestOnCygwin:
    @patch("procwatch.enumerator.subprocess.run")
    def test_ps_w_succeeds(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        assert on_cygwin() is True
        assert mock_run.call_args[0][0] == ["ps", "-W"]

    @patch("procwatch.enumerator.subprocess.run")
    def test_ps_w_rejected(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1)
        assert on_cygwin() is False

    @patch("procwatch.enumerator.subprocess.run", side_effect=FileNotFoundError)
    def test_no_ps_at_all(self, mock_run):
        assert on_cygwin() is False

    @patch("procwatch.enumerator.on_cygwin", return_value=True)
    def test_detect_cygwin(self, mock_probe):
        assert isinstance(detect_lister(), CygwinPsLister)

    @patch("procwatch.enumerator.on_cygwin", return_value=False)
    def test_detect_posix(self, mock_probe):
        assert isinstance(detect_lister(), PsLister)


# --- PsLister ---------------------------------------------------------------

class TestPsLister:
    def test_parse_line(self):
        record = PsLister().parse_line(
            "root           1 168000 12000  0.0 Ss   /sbin/init splash"
        )
        assert record.user == "root"
        assert record.pid == 1
        assert record.vsz == 168000
        assert record.rss == 12000
        assert record.pcpu == 0.0
        assert record.state == "Ss"
        assert record.command == "/sbin/init splash"
        assert record.ppid is None

    def test_command_keeps_inner_whitespace(self):
        record = PsLister().parse_line(
            "sensu 4242 30000 9000 0.5 S+ /usr/bin/ruby check.rb -p 'chef  client'"
        )
        assert record.command == "/usr/bin/ruby check.rb -p 'chef  client'"

    def test_short_line_skipped(self):
        assert PsLister().parse_line("root 1 168000") is None

    def test_non_numeric_pid_skipped(self):
        assert PsLister().parse_line("USER PID VSZ RSS %CPU STAT COMMAND") is None

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_enumerate(self, mock_popen):
        mock_popen.return_value = _popen(PS_OUTPUT, pid=5000)
        records = PsLister().enumerate()
        assert mock_popen.call_args[0][0] == [
            "ps", "axwwo", "user,pid,vsz,rss,pcpu,state,command",
        ]
        assert [r.pid for r in records] == [1, 4242, 300]
        assert records[1].command == (
            "/usr/bin/python3 /usr/local/bin/check-procs -p chef  client"
        )
        assert records[2].state == "Z"

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_listing_child_excluded(self, mock_popen):
        mock_popen.return_value = _popen(PS_OUTPUT, pid=5000)
        assert 5000 not in [r.pid for r in PsLister().enumerate()]

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_no_usable_lines_is_fatal(self, mock_popen):
        mock_popen.return_value = _popen("ps: unknown option -- o\n")
        with pytest.raises(EnumerationError) as exc:
            PsLister().enumerate()
        assert "unknown option" in str(exc.value)

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_empty_output_is_fatal(self, mock_popen):
        mock_popen.return_value = _popen("")
        with pytest.raises(EnumerationError) as exc:
            PsLister().enumerate()
        assert "no output" in str(exc.value)


# --- CygwinPsLister ---------------------------------------------------------

class TestCygwinPsLister:
    def test_parse_line(self):
        record = CygwinPsLister().parse_line(
            cygwin_line("S", 1234, 1, "/usr/bin/bash -l")
        )
        assert record.pid == 1234
        assert record.ppid == 1
        assert record.state == "S"
        assert record.command == "/usr/bin/bash -l"
        assert record.user is None
        assert record.vsz is None
        assert record.rss is None
        assert record.pcpu is None

    def test_stime_with_space_excised(self):
        record = CygwinPsLister().parse_line(
            cygwin_line("O", 88, 87, "/usr/bin/sleep 60", stime="Oct 18")
        )
        assert record.pid == 88
        assert record.command == "/usr/bin/sleep 60"

    def test_blank_state(self):
        record = CygwinPsLister().parse_line(
            cygwin_line(" ", 2048, 1, "/cygdrive/c/Windows/System32/svchost.exe")
        )
        assert record.state == ""
        assert record.pid == 2048

    def test_blank_line_skipped(self):
        assert CygwinPsLister().parse_line("   ") is None

    def test_matches_posix_parse_of_same_process(self):
        posix = PsLister().parse_line(
            "sensu 1234 30000 9000 0.5 S /usr/bin/bash -l"
        )
        cygwin = CygwinPsLister().parse_line(
            cygwin_line("S", 1234, 1, "/usr/bin/bash -l")
        )
        assert (cygwin.pid, cygwin.state, cygwin.command) == (
            posix.pid, posix.state, posix.command,
        )

    @patch("procwatch.enumerator.subprocess.Popen")
    def test_enumerate(self, mock_popen):
        output = "\n".join([
            CYGWIN_HEADER,
            cygwin_line("S", 1234, 1, "/usr/bin/bash -l"),
            cygwin_line(" ", 1300, 1234, "/usr/bin/ps -aWl"),
            cygwin_line("Z", 1400, 1234, "/usr/bin/sleep 5"),
        ]) + "\n"
        mock_popen.return_value = _popen(output, pid=1300)
        records = CygwinPsLister().enumerate()
        assert mock_popen.call_args[0][0] == ["ps", "-aWl"]
        assert [(r.pid, r.state) for r in records] == [(1234, "S"), (1400, "Z")]
