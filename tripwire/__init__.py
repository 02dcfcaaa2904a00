"""Tripwire: persistent event listeners and scheduled actions."""

__version__ = "0.1.0"
