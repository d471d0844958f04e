"""Homeroom - turns school emails into todos and calendar events."""

__version__ = "0.3.0"
