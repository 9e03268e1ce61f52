"""Exceptions raised by the KBrowse client."""


class KBrowseError(Exception):
    """Base class for all client errors."""


class QueryStateDecodeError(KBrowseError, ValueError):
    """A serialized query state could not be turned back into a QueryState."""


class SessionStateError(KBrowseError):
    """An operation was attempted in a session state that does not allow it."""


class TransportError(KBrowseError):
    """The HTTP transport failed to open or read the response stream."""
