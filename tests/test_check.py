import os
import sys
import time

import pytest

from perl_connector import embedded_perl, multiplexer
from perl_connector.check import Check
from perl_connector.embedded_perl import EmbeddedPerl, EmbeddedPerlError
from perl_connector.result import CheckListener


class Recorder(CheckListener):
    def __init__(self):
        self.results = []

    def on_result(self, result):
        self.results.append(result)


@pytest.fixture
def mux():
    multiplexer.load()
    yield multiplexer.instance()
    multiplexer.unload()


@pytest.fixture
def perl():
    # The helper script is Perl, so running it with Python fails predictably.
    with EmbeddedPerl(interpreter=sys.executable) as runner:
        yield runner


@pytest.fixture
def plugin(tmp_path):
    path = tmp_path / "plugin.pl"
    path.write_text("print 'OK';\n")
    return path


def _reap(pid):
    _, status = os.waitpid(pid, 0)
    return os.waitstatus_to_exitcode(status)


def test_terminated_reports_collected_output(mux, perl, plugin):
    recorder = Recorder()
    with Check(perl=perl) as chk:
        chk.listen(recorder)
        pid = chk.execute(7, f"{plugin} a b", time.time() + 30)
        assert chk.child == pid
        code = _reap(pid)
        chk.terminated(code)
        assert chk.child == -1
        assert chk.command_id == 0
    assert len(recorder.results) == 1
    result = recorder.results[0]
    assert result.command_id == 7
    assert result.executed is True
    assert result.exit_code == code == 1
    assert b"SyntaxError" in result.error


def test_result_is_sent_only_once(mux, perl, plugin):
    recorder = Recorder()
    with Check(perl=perl) as chk:
        chk.listen(recorder)
        pid = chk.execute(8, str(plugin), time.time() + 30)
        chk.terminated(_reap(pid))
        chk.error(None)
        chk.write(None)
    assert len(recorder.results) == 1
    assert recorder.results[0].executed is True


def test_error_reports_not_executed(mux, perl, plugin):
    recorder = Recorder()
    with Check(perl=perl) as chk:
        chk.listen(recorder)
        pid = chk.execute(3, str(plugin), time.time() + 30)
        chk.error(None)
        assert chk.child == -1
        _reap(pid)
    assert len(recorder.results) == 1
    result = recorder.results[0]
    assert result.command_id == 3
    assert result.executed is False
    assert result.exit_code == -1


def test_write_reports_failure(mux, perl, plugin):
    recorder = Recorder()
    with Check(perl=perl) as chk:
        chk.listen(recorder)
        pid = chk.execute(4, str(plugin), time.time() + 30)
        chk.write(None)
        _reap(pid)
    assert [r.command_id for r in recorder.results] == [4]
    assert recorder.results[0].executed is False


def test_unlisten_drops_result(mux, perl, plugin):
    recorder = Recorder()
    with Check(perl=perl) as chk:
        chk.listen(recorder)
        pid = chk.execute(5, str(plugin), time.time() + 30)
        chk.unlisten(recorder)
        chk.error(None)
        assert chk.command_id == 0
        _reap(pid)
    assert recorder.results == []


def test_leaving_context_sends_pending_result(mux, perl, plugin):
    recorder = Recorder()
    with Check(perl=perl) as chk:
        chk.listen(recorder)
        pid = chk.execute(6, str(plugin), time.time() + 30)
    _reap(pid)
    assert len(recorder.results) == 1
    assert recorder.results[0].command_id == 6
    assert recorder.results[0].executed is False


def test_execute_missing_file_raises(mux, perl, tmp_path):
    with Check(perl=perl) as chk:
        with pytest.raises(EmbeddedPerlError):
            chk.execute(9, str(tmp_path / "missing.pl"), time.time() + 30)
        assert chk.command_id == 0
        assert chk.child == -1


def test_execute_without_interpreter_raises(mux, plugin):
    embedded_perl.unload()
    with Check() as chk:
        with pytest.raises(RuntimeError):
            chk.execute(10, str(plugin), time.time() + 30)
        assert chk.command_id == 0


def test_on_timeout_without_child_sends_nothing(mux):
    recorder = Recorder()
    with Check() as chk:
        chk.listen(recorder)
        chk.on_timeout(True)
        chk.on_timeout(False)
        assert chk.child == -1
    assert recorder.results == []


def test_want_read_is_always_true():
    with Check() as chk:
        assert chk.want_read(None) is True