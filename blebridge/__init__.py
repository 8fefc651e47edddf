"""Decode BLE characteristic values and relay streamed samples over TCP."""

__version__ = "0.1.0"
