# perl-connector

A long-running helper process for a monitoring engine. The engine hands check
commands to the connector over its standard input; the connector runs the
Perl plugin scripts, collects their output and exit codes, and reports the
results back on standard output.

It runs on POSIX systems only and needs a `perl` executable on `PATH`.

## Installation

```
pip install .
```

Running the tests:

```
pip install ".[test]"
pytest
```

## Running

```
perl-connector [--debug] [--log-file PATH] [--code PERL_CODE]
perl-connector --help
perl-connector --version
```

| Option               | Meaning                                                             |
|----------------------|---------------------------------------------------------------------|
| `-c`, `--code`       | Perl code added to the helper script that runs every plugin.        |
| `-d`, `--debug`      | Log everything (trace level) instead of info and above.             |
| `-l`, `--log-file`   | Append the log to this file instead of writing it to standard error. |
| `-h`, `--help`       | Print help and exit.                                                |
| `-v`, `--version`    | Print the software version and exit.                                |

Options that take a value accept it as the next argument, after `=`
(`--code=...`) or, for the short form, attached (`-cCODE`). An unknown option
prints the error and the usage text and exits with status 1.

The process exits with status 0 when it stops normally (end of input, a quit
order or SIGTERM) and 1 when an order could not be parsed or start-up failed.
It waits for running checks to finish and flushes pending replies before it
exits.

## Protocol

Every packet is a sequence of fields separated by a NUL byte and terminated
by four NUL bytes. The first field is the packet type.

Orders read from standard input:

| Type | Fields                                                    | Meaning                 |
|------|-----------------------------------------------------------|-------------------------|
| `0`  | none                                                      | protocol version query  |
| `2`  | command id, timeout (seconds), start time, command line   | run a check             |
| `4`  | none                                                      | quit                    |

The command id must be a non-zero number; the timeout and start time must be
numbers. Any other order type, or a malformed execution order, is logged and
makes the connector stop with status 1.

Replies written to standard output:

| Type | Fields                                                              |
|------|---------------------------------------------------------------------|
| `1`  | major, minor (the connector answers `1` and `0`)                    |
| `3`  | command id, executed (`1`/`0`), exit code, error output, output     |

An empty error output or output is sent as a single space. A check that could
not be started, or that was killed, is reported with executed `0` and exit
code `-1`. A check that outruns its timeout receives SIGTERM and, one second
later, SIGKILL.

The command line of an execution order is the path of a Perl script followed
by its arguments, separated by the first space. The arguments are split on
whitespace with quotes honoured (Perl's `Text::ParseWords`), and the script
runs with them in `@ARGV`.

## What it does not do

Each check is run by a separate `perl` process started from a helper script
written once to a temporary file. No interpreter is kept alive between
checks, so every script is compiled anew on every run.

## Using the pieces from Python

- `perl_connector.parser.OrderParser` turns the incoming byte stream into
  calls on an `OrdersListener` (`on_version`, `on_execute`, `on_quit`,
  `on_eof`, `on_error`); `OrderParser.feed` accepts raw bytes and
  `OrderParser.read` reads them from a handle.
- `perl_connector.reporter.Reporter` builds reply packets from
  `perl_connector.result.CheckResult` objects (`send_result`,
  `send_version`); its `buffer` holds what is still to be written and
  `write` sends it to a handle.
- `perl_connector.options.parse_options` parses the command line into an
  `Options` object and raises `OptionsError` on bad input.
- `perl_connector.embedded_perl.EmbeddedPerl` writes the helper script and
  starts plugins with `run`, which returns the process id and pipe ends.
- `perl_connector.multiplexer.Multiplexer` polls handles and runs timed
  tasks; `perl_connector.check.Check` runs one plugin under it.
- `perl_connector.policy.Policy` ties it all together; after
  `perl_connector.multiplexer.load()`, `Policy.run` drives the event loop
  until the engine asks to quit and every check has finished.

```python
from perl_connector.reporter import Reporter
from perl_connector.result import CheckResult

reporter = Reporter()
reporter.send_version(1, 0)
reporter.send_result(CheckResult(command_id=42, executed=True, exit_code=0, output="OK"))
print(reporter.buffer)
```