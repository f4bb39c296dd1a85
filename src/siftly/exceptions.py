"""Siftly exception hierarchy.

Configuration problems raise `ConfigError`. Search-time failures derive from
`SearchError`: rejected requests, searching before an index is loaded, and
invalid highlight spans each have their own subclass.
"""

from __future__ import annotations


class SiftlyError(Exception):
    """Base class for all Siftly exceptions."""


class ConfigError(SiftlyError):
    """Raised when configuration or the field model fails validation."""


class SearchError(SiftlyError):
    """Raised for search indexing/query issues."""


class InvalidRequestError(SearchError):
    """Raised when a search request is rejected before any matching work starts."""


class IndexUnavailableError(SearchError):
    """Raised when searching an engine whose index was never loaded."""


class HighlightError(SearchError):
    """Raised when highlight spans are unsorted, overlapping or out of range."""
