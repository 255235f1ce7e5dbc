"""Capture core and device API for USB mirrorless cameras."""

__version__ = "0.1.0"
