import os
from contextlib import suppress

import pytest

from perl_connector import embedded_perl, multiplexer
from perl_connector.policy import Policy
from perl_connector.result import CheckResult


@pytest.fixture
def mux():
    embedded_perl.unload()
    multiplexer.load()
    yield multiplexer.instance()
    multiplexer.unload()
    embedded_perl.unload()


@pytest.fixture
def pipes():
    in_r, in_w = os.pipe()
    out_r, out_w = os.pipe()
    fds = {"in_r": in_r, "in_w": in_w, "out_r": out_r, "out_w": out_w}
    yield fds
    for fd in fds.values():
        with suppress(OSError):
            os.close(fd)


def _policy(pipes):
    return Policy(stdin_fd=pipes["in_r"], stdout_fd=pipes["out_w"])


def test_version_then_quit(mux, pipes):
    os.write(pipes["in_w"], b"0\0\0\0\0" + b"4\0\0\0\0")
    with _policy(pipes) as policy:
        assert policy.run() is True
        assert policy.should_exit is True
    assert os.read(pipes["out_r"], 4096) == b"1\x001\x000\0\0\0\0"


def test_failed_execution_is_reported(mux, pipes):
    order = b"2\x005\x0010\x000\x00/nonexistent/plugin.pl\0\0\0\0"
    os.write(pipes["in_w"], order + b"4\0\0\0\0")
    with _policy(pipes) as policy:
        assert policy.run() is True
    assert os.read(pipes["out_r"], 4096) == b"3\x005\x000\x00-1\x00 \x00 \0\0\0\0"


def test_invalid_order_makes_run_fail(mux, pipes):
    os.write(pipes["in_w"], b"9\0\0\0\0")
    with _policy(pipes) as policy:
        assert policy.run() is False
        assert policy.should_exit is True


def test_eof_stops_without_output(mux, pipes):
    os.close(pipes["in_w"])
    with _policy(pipes) as policy:
        assert policy.run() is True
    os.set_blocking(pipes["out_r"], False)
    with pytest.raises(BlockingIOError):
        os.read(pipes["out_r"], 4096)


def test_direct_version_request_is_flushed(mux, pipes):
    with _policy(pipes) as policy:
        policy.on_version()
        policy.on_quit()
        assert policy.run() is True
    assert os.read(pipes["out_r"], 4096) == b"1\x001\x000\0\0\0\0"


def test_result_is_flushed_to_engine(mux, pipes):
    with _policy(pipes) as policy:
        policy.on_result(
            CheckResult(command_id=9, executed=True, exit_code=0, output="OK")
        )
        policy.on_quit()
        assert policy.run() is True
    assert os.read(pipes["out_r"], 4096) == b"3\x009\x001\x000\x00 \x00OK\0\0\0\0"


def test_on_error_reports_failure_of_next_run(mux, pipes):
    with _policy(pipes) as policy:
        policy.on_error()
        assert policy.should_exit is True
        # run() starts with a clean error flag.
        assert policy.run() is True