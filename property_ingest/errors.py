"""
Error taxonomy for the ingestion layer.

Every error carries a human-readable ``message`` that is safe to show to
end users. Raw upstream details (status codes, response snippets) are
logged where they occur and never copied into these messages.
"""


class PropertyIngestError(Exception):
    """Base class for all ingestion errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidQuery(PropertyIngestError):
    """The caller supplied an empty or malformed request."""


class AdapterAuthError(PropertyIngestError):
    """An external fetch adapter rejected its credentials."""


class AdapterTransientError(PropertyIngestError):
    """A live fetch failed in a way another strategy may recover from."""


class AdapterRunFailed(AdapterTransientError):
    """A managed scraping run finished in a failed terminal state."""

    def __init__(self, message: str, status: str) -> None:
        super().__init__(message)
        self.status = status


class PersistenceError(PropertyIngestError):
    """A cache or import write could not be completed."""
