"""Connector that runs Perl monitoring plugins for a monitoring engine."""

__version__ = "0.1.0"