"""Building blocks for a pluggable DNS forwarder: matchers, query contexts and utilities."""

__version__ = "0.1.0"