"""
Errors raised by vaultquery.
"""


class QueryParseError(ValueError):
    """Query text could not be parsed."""


class StoreUnavailableError(RuntimeError):
    """The record store could not be read."""
