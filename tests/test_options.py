import pytest

from perl_connector.options import (
    Options,
    OptionsError,
    help_text,
    parse_options,
    usage_text,
)


def test_empty_command_line():
    assert parse_options([]) == Options()


def test_long_options():
    opts = parse_options(["--debug", "--code", "print 1;", "--log-file", "out.log"])
    assert opts.debug is True
    assert opts.code == "print 1;"
    assert opts.log_file == "out.log"
    assert opts.help is False and opts.version is False


def test_long_option_with_equals():
    opts = parse_options(["--log-file=out.log"])
    assert opts.log_file == "out.log"


def test_short_options():
    opts = parse_options(["-h", "-v", "-c", "1;", "-lout.log"])
    assert opts.help is True
    assert opts.version is True
    assert opts.code == "1;"
    assert opts.log_file == "out.log"


def test_positional_parameters_are_kept():
    opts = parse_options(["first", "-d", "second"])
    assert opts.parameters == ["first", "second"]
    assert opts.debug is True


def test_unknown_option():
    with pytest.raises(OptionsError):
        parse_options(["--frobnicate"])
    with pytest.raises(OptionsError):
        parse_options(["-x"])


def test_missing_value():
    with pytest.raises(OptionsError):
        parse_options(["--code"])


def test_flag_with_value():
    with pytest.raises(OptionsError):
        parse_options(["--debug=yes"])


def test_help_text():
    text = help_text()
    assert text.startswith("centreon_connector_perl [args]\n")
    assert "  --debug    If this flag is specified, print all logs messages.\n" in text
    assert "  --version  Print software version and exit.\n" in text
    assert usage_text() == text