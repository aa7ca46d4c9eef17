"""
Error types for media selection.

Only ConfigurationError is meant to reach callers; everything else is
raised and handled inside the pipeline.
"""


class MediaSelectionError(Exception):
    """Base class for all media selection errors."""


class ConfigurationError(MediaSelectionError):
    """Required configuration is missing or invalid."""


class PersistenceError(MediaSelectionError):
    """A storage backend failed to read or write a document."""


class OracleError(MediaSelectionError):
    """The vision oracle failed or returned an unusable response."""


class SourceFetchError(MediaSelectionError):
    """An image source failed to return a payload."""

    def __init__(self, source_name: str, message: str):
        super().__init__(f"{source_name}: {message}")
        self.source_name = source_name
