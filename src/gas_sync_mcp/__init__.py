"""Bidirectional sync between Google Apps Script projects and local git trees."""

__version__ = "0.1.0"
