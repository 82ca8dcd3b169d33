"""Command line options of the connector."""

from __future__ import annotations

from dataclasses import dataclass, field

_CODE = "Argument is some Perl code that will be executed by the embedded interpreter."
_DEBUG = "If this flag is specified, print all logs messages."
_HELP = "Print help and exit."
_VERSION = "Print software version and exit."
_LOG_FILE = "Specifies the log file (default: stderr)."

# short name -> (long name, takes a value, description)
_SPEC = {
    "c": ("code", True, _CODE),
    "d": ("debug", False, _DEBUG),
    "h": ("help", False, _HELP),
    "v": ("version", False, _VERSION),
    "l": ("log-file", True, _LOG_FILE),
}
_BY_LONG = {long: short for short, (long, _, _) in _SPEC.items()}


class OptionsError(Exception):
    """The command line could not be parsed."""


@dataclass
class Options:
    """Parsed command line."""

    code: str | None = None
    debug: bool = False
    help: bool = False
    version: bool = False
    log_file: str | None = None
    parameters: list[str] = field(default_factory=list)


def _apply(opts: Options, short: str, value: str | None) -> None:
    long, has_value, _ = _SPEC[short]
    attr = long.replace("-", "_")
    setattr(opts, attr, value if has_value else True)


def parse_options(argv: list[str]) -> Options:
    """Parse the arguments that follow the program name."""
    opts = Options()
    args = iter(argv)
    for arg in args:
        if arg.startswith("--") and len(arg) > 2:
            name, sep, inline = arg[2:].partition("=")
            short = _BY_LONG.get(name)
            if short is None:
                raise OptionsError(f"unrecognized argument '{name}'")
        elif arg.startswith("-") and len(arg) > 1 and not arg.startswith("--"):
            name = arg[1]
            short = name if name in _SPEC else None
            if short is None:
                raise OptionsError(f"unrecognized argument '{name}'")
            inline = arg[2:]
            sep = "=" if inline else ""
        else:
            opts.parameters.append(arg)
            continue
        has_value = _SPEC[short][1]
        if has_value:
            if sep:
                value = inline
            else:
                try:
                    value = next(args)
                except StopIteration:
                    raise OptionsError(f"argument '{name}' needs a value") from None
            _apply(opts, short, value)
        else:
            if sep:
                raise OptionsError(f"argument '{name}' does not take a value")
            _apply(opts, short, None)
    return opts


def help_text() -> str:
    """Return the help message."""
    return (
        "centreon_connector_perl [args]\n"
        f"  --debug    {_DEBUG}\n"
        f"  --help     {_HELP}\n"
        f"  --version  {_VERSION}\n"
        f"  --code     {_CODE}\n"
    )


def usage_text() -> str:
    """Return the usage message."""
    return help_text()