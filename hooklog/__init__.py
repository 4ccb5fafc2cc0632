"""Hooklog - webhook capture, query and export service."""

__version__ = "0.1.0"
SERVICE_NAME = "hooklog"
