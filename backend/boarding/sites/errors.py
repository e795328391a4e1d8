"""
Custom exceptions for site resolution.
"""


class SiteNotSelected(Exception):
    """Raised when a site is required but none was provided and no fallback exists."""


class SiteNotFound(Exception):
    """Raised when the requested site handle or id does not exist."""
