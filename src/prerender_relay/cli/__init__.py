"""Command line interface."""

from prerender_relay.cli.main import cli


__all__ = ["cli"]
