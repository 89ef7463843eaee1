"""
Error taxonomy shared by the memory store and the correlation engine.
"""


class MailContextError(Exception):
    """Base exception for mailcontext errors."""
    pass


class TransientProviderError(MailContextError):
    """An embedding or classification call failed (network, throttling, auth).

    The failing unit (one document, one email) is aborted; callers may retry.
    """
    pass


class EmbeddingError(TransientProviderError):
    """Custom exception for embedding provider errors."""
    pass


class ClassificationError(TransientProviderError):
    """Custom exception for classification provider errors."""
    pass


class SchemaViolation(MailContextError):
    """A classification response did not match the expected shape."""
    pass


class NotFoundError(MailContextError):
    """Unknown group, document or email id."""
    pass


class ValidationError(MailContextError):
    """Invalid direct input. Nothing is persisted when this is raised."""
    pass


class StorageError(MailContextError):
    """Reading or writing a persisted snapshot or log failed."""
    pass
