import pytest

from perl_connector.result import CheckListener, CheckResult


def test_defaults():
    r = CheckResult()
    assert r.command_id == 0
    assert r.error == ""
    assert r.executed is False
    assert r.exit_code == -1
    assert r.output == ""


def test_fields_are_set():
    r = CheckResult(command_id=7, error="oops", executed=True, exit_code=2, output="ok")
    assert (r.command_id, r.error, r.executed, r.exit_code, r.output) == (
        7,
        "oops",
        True,
        2,
        "ok",
    )


def test_listener_is_abstract():
    with pytest.raises(TypeError):
        CheckListener()


def test_listener_receives_result():
    class Collector(CheckListener):
        def __init__(self):
            self.seen = []

        def on_result(self, result):
            self.seen.append(result)

    collector = Collector()
    r = CheckResult(command_id=3)
    collector.on_result(r)
    assert collector.seen == [CheckResult(command_id=3)]