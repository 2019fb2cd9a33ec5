"""SweetSpot - find where everyone can meet within the same travel time."""

__version__ = "0.3.0"
