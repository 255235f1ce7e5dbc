"""Alpaca-style HTTP device API for the camera."""

from mirrorless_camera.web.app import create_app, main
from mirrorless_camera.web.device import AlpacaCamera

__all__ = ["AlpacaCamera", "create_app", "main"]
