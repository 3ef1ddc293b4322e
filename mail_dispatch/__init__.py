"""Resilient outbound mail dispatch engine."""

__version__ = "0.1.0"
