"""Command line entry point of the Perl connector."""

from __future__ import annotations

import signal
import sys
from typing import Any

from . import embedded_perl, multiplexer
from .log import core_logger, get_log
from .options import OptionsError, help_text, parse_options, usage_text
from .policy import Policy

VERSION = "(development version)"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def _serve(code: str | None) -> int:
    """Load the interpreter and run the policy until asked to quit."""
    log = core_logger()
    policy: Policy | None = None
    terminated = False

    def _on_term(signum: int, frame: Any) -> None:
        nonlocal terminated
        terminated = True
        if policy is not None:
            policy.should_exit = True
        signal.signal(signal.SIGTERM, signal.SIG_DFL)

    log.debug("installing termination handler")
    previous = signal.signal(signal.SIGTERM, _on_term)
    try:
        embedded_perl.load(code)
        with Policy() as policy:
            if terminated:
                policy.should_exit = True
            return EXIT_SUCCESS if policy.run() else EXIT_FAILURE
    finally:
        signal.signal(signal.SIGTERM, previous)


def main(argv: list[str] | None = None) -> int:
    """Run the connector; ``argv`` excludes the program name."""
    args = sys.argv[1:] if argv is None else list(argv)
    retval = EXIT_FAILURE
    try:
        multiplexer.load()

        try:
            opts = parse_options(args)
        except OptionsError as exc:
            print(exc)
            print(usage_text())
            return EXIT_FAILURE

        if opts.help:
            print(help_text())
            retval = EXIT_SUCCESS
        elif opts.version:
            print(f"Centreon Perl Connector {VERSION}")
            retval = EXIT_SUCCESS
        else:
            log = get_log()
            if opts.log_file is not None:
                log.switch_to_file(opts.log_file)
            else:
                log.switch_to_stdout()
            log.set_level("trace" if opts.debug else "info")
            core_logger().info("Centreon Perl Connector %s starting", VERSION)
            retval = _serve(opts.code)
    except Exception as exc:
        core_logger().error("%s", exc)
    finally:
        embedded_perl.unload()
        multiplexer.unload()
    return retval


if __name__ == "__main__":
    sys.exit(main())