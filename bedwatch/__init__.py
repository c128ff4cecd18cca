"""Bed occupancy and time-bound clinical order alerting."""

__version__ = "0.1.0"
