"""Cadence - multi-tenant scheduled-action engine."""

__version__ = "0.1.0"
