"""Automated claim, approve and stake bot."""

__version__ = "0.1.0"
