"""Adapter-specific exceptions."""


class AdapterError(Exception):
    """Base exception for adapter errors."""


class ConnectionError(AdapterError):
    """Raised when the adapter cannot connect to the search backend."""


class TransportError(AdapterError):
    """Raised when a backend call fails at the network or HTTP level.

    The sync engine never retries these; the run fails and the checkpoint
    stays where it was.
    """


class IndexNotFoundError(AdapterError):
    """Raised when an operation targets an index that does not exist."""
