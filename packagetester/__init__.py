"""Helpers for loading, checking and reporting tests of integration packages."""

__version__ = "0.1.0"