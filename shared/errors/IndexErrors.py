"""Error taxonomy of the note index.

Provider clients, storage clients and the index services only ever raise the
exceptions defined here, so callers never have to know about httpx, OS or
provider specific error shapes.
"""


class NoteIndexError(Exception):
    """Base class for every error raised by the note index."""


##########################################
############### PROVIDER #################
##########################################

class ProviderError(NoteIndexError):
    """An embedding request to the external provider failed.

    Attributes:
        status_code (int | None): HTTP status returned by the provider, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderUnauthorized(ProviderError):
    """Invalid or missing provider credentials. Not retried."""


class ProviderRateLimited(ProviderError):
    """The provider throttled the request. Safe to retry later."""


class ProviderServerError(ProviderError):
    """The provider failed with a 5xx status."""


class ProviderUnknown(ProviderError):
    """Any other provider failure, including malformed responses."""


class ProviderTimeout(ProviderUnknown):
    """The provider did not answer within the configured timeout."""


##########################################
################ VECTORS #################
##########################################

class DimensionMismatch(NoteIndexError):
    """Two vectors that must have equal length do not.

    Attributes:
        expected (int): Canonical vector length.
        actual (int): Length of the offending vector.
    """

    def __init__(self, expected: int, actual: int, key: str | None = None) -> None:
        message = f"Vector length mismatch: expected {expected}, got {actual}"
        if key is not None:
            message += f" (key '{key}')"
        super().__init__(message)
        self.expected = expected
        self.actual = actual
        self.key = key


class EmptyInput(NoteIndexError):
    """Embedding requested for empty or whitespace-only content."""


##########################################
################ STORAGE #################
##########################################

class StorageError(NoteIndexError):
    """The durable storage could not be read or written."""


class StorageNotFound(NoteIndexError):
    """The requested blob does not exist yet. A normal outcome, not a failure."""


##########################################
################# SOURCE #################
##########################################

class SourceError(NoteIndexError):
    """A note exists but could not be listed or read from the note source."""
