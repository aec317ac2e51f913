"""Sankalpa: progress ledger and commitment contract engine."""

__version__ = "0.1.0"
