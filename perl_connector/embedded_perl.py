"""Runs Perl plugins through a helper script written once per process."""

from __future__ import annotations

import os
import tempfile
from typing import NamedTuple

from .log import core_logger

# Helper package that wraps a plugin file into a subroutine and runs it.
_HELPER = r"""#!/usr/bin/perl

package Embed::Persistent;

use Text::ParseWords qw(parse_line);

our %Cache;

use constant MTIME_IDX  => 0;
use constant HANDLE_IDX => 1;

$| = 1;

sub valid_package_name {
  my ($string) = @_;
  # Escape every character that cannot appear in a package name.
  $string =~ s/([^A-Za-z0-9\/])/sprintf("_%2x", unpack("C", $1))/eg;
  # Path components must not start with a digit.
  $string =~ s|/(\d)|sprintf("/_%2x", unpack("C", $1))|eg;
  $string =~ s|/|::|g;
  return "Embed" . $string;
}

sub eval_file {
  my ($filename) = @_;
  my $mtime = -M $filename;
  if (exists($Cache{$filename})
      && $Cache{$filename}[MTIME_IDX]
      && $Cache{$filename}[MTIME_IDX] <= $mtime) {
      return $Cache{$filename}[HANDLE_IDX];
  }

  my $package = valid_package_name($filename);
  open(my $fh, "<", $filename)
    or die "failed to open Perl file '$filename': $!";
  my $sub;
  sysread $fh, $sub, -s $fh;
  close $fh;
  $sub =~ s/__END__/\;}\n__END__/;

  my $hndlr = <<EOSUB;
package $package;
sub subroutine {
  \@ARGV = \@_;
  local \$^W = 1;
  $sub
}
EOSUB

  no strict 'refs';
  undef %{$package.'::'};
  use strict 'refs';

  eval $hndlr;
  if ($@) {
    chomp($@);
    die "syntax error in '$filename': $@";
  }

  $Cache{$filename}[MTIME_IDX] = $mtime;
  no strict 'refs';
  return $Cache{$filename}[HANDLE_IDX] = *{ $package . '::subroutine' }{CODE} ;
}

sub run_file {
  my ($filename, $handle, $args) = @_;

  my @parsed_args = ("$filename");
  push(@parsed_args, parse_line('\s+', 0, $args));

  my $res;
  eval { $res = $handle->(@parsed_args) };
  if ($@) {
    chomp($@);
    die "could not run '$filename': $@";
  }
  return ($res);
}

"""

# Entry point: compile the plugin named on the command line and run it.
_DRIVER = r"""
package main;
{
  my ($embed_file, $embed_args) = @ARGV;
  $embed_args = '' unless defined $embed_args;
  my $embed_handle = eval { Embed::Persistent::eval_file($embed_file) };
  if ($@) {
    my $embed_error = $@;
    chomp($embed_error);
    print STDERR "Embedded Perl error: $embed_error\n";
    exit 3;
  }
  eval { Embed::Persistent::run_file($embed_file, $embed_handle, $embed_args) };
  my $embed_error = $@;
  chomp($embed_error);
  print STDERR "error while executing Perl script '$embed_file': $embed_error\n";
  exit 3;
}
"""


class EmbeddedPerlError(Exception):
    """A Perl script could not be prepared or started."""


class RunningScript(NamedTuple):
    """A started plugin process and the parent ends of its pipes."""

    pid: int
    stdin: int
    stdout: int
    stderr: int


def split_command(cmd: str) -> tuple[str, str]:
    """Split a command line into the script file and its arguments."""
    file, _, args = cmd.partition(" ")
    return file, args


def _close_quietly(fds: list[int]) -> None:
    for fd in fds:
        try:
            os.close(fd)
        except OSError:
            pass


class EmbeddedPerl:
    """Starts Perl plugins through a helper script kept in a temporary file."""

    def __init__(self, code: str | None = None, interpreter: str = "perl") -> None:
        log = core_logger()
        self._self = os.getpid()
        log.debug("self PID is %d", self._self)
        self._interpreter = interpreter
        self._parsed: set[str] = set()
        self._script_path: str | None = None

        try:
            fd, path = tempfile.mkstemp(prefix="centreon_connector_perl.")
        except OSError as exc:
            raise EmbeddedPerlError(
                f"could not create temporary file: {exc.strerror or exc}"
            ) from exc
        log.info("temporary script path is %s", path)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(_HELPER)
                if code is not None:
                    fh.write(code)
                    fh.write("\n")
                fh.write(_DRIVER)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            os.unlink(path)
            raise EmbeddedPerlError(
                f"could not write embedded script: {exc.strerror or exc}"
            ) from exc

        self._script_path = path
        log.info("loading Embedded Perl interpreter")

    def __enter__(self) -> EmbeddedPerl:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def script_path(self) -> str | None:
        """Path of the helper script, or None once closed."""
        return self._script_path

    @property
    def interpreter(self) -> str:
        return self._interpreter

    def run(self, cmd: str) -> RunningScript:
        """Start the plugin named by ``cmd`` and return its process and pipes."""
        if self._script_path is None:
            raise EmbeddedPerlError("embedded Perl interpreter is closed")
        log = core_logger()
        file, args = split_command(cmd)
        log.debug("command %s", cmd)
        log.debug("  - file %s", file)
        log.debug("  - args %s", args)

        if file not in self._parsed:
            log.debug("parsing file %s", file)
            try:
                with open(file, "rb"):
                    pass
            except OSError as exc:
                raise EmbeddedPerlError(
                    f"Embedded Perl error: failed to open Perl file '{file}': "
                    f"{exc.strerror or exc}"
                ) from exc
            self._parsed.add(file)

        opened: list[int] = []
        try:
            in_r, in_w = os.pipe()
            opened += [in_r, in_w]
            err_r, err_w = os.pipe()
            opened += [err_r, err_w]
            out_r, out_w = os.pipe()
            opened += [out_r, out_w]
        except OSError as exc:
            _close_quietly(opened)
            raise EmbeddedPerlError(exc.strerror or str(exc)) from exc

        actions = [
            (os.POSIX_SPAWN_DUP2, in_r, 0),
            (os.POSIX_SPAWN_DUP2, out_w, 1),
            (os.POSIX_SPAWN_DUP2, err_w, 2),
        ]
        argv = [self._interpreter, self._script_path, file, args]
        try:
            pid = os.posix_spawnp(
                self._interpreter, argv, dict(os.environ), file_actions=actions
            )
        except OSError as exc:
            _close_quietly(opened)
            raise EmbeddedPerlError(exc.strerror or str(exc)) from exc

        _close_quietly([in_r, err_w, out_w])
        return RunningScript(pid=pid, stdin=in_w, stdout=out_r, stderr=err_r)

    def close(self) -> None:
        """Remove the helper script; only the creating process does so."""
        if self._script_path is None or os.getpid() != self._self:
            return
        core_logger().info("cleaning up Embedded Perl")
        try:
            os.unlink(self._script_path)
        except FileNotFoundError:
            pass
        self._script_path = None


_instance: EmbeddedPerl | None = None


def load(code: str | None = None) -> EmbeddedPerl:
    """Create the process-wide interpreter if it does not exist yet."""
    global _instance
    if _instance is None:
        _instance = EmbeddedPerl(code)
    return _instance


def unload() -> None:
    """Close and drop the process-wide interpreter."""
    global _instance
    if _instance is not None:
        _instance.close()
    _instance = None


def instance() -> EmbeddedPerl:
    """Return the process-wide interpreter."""
    if _instance is None:
        raise RuntimeError("embedded Perl is not loaded")
    return _instance