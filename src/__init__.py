"""Ascend Tracker - local coding time tracking with remote sync."""

__version__ = "0.1.0"
