"""Exception classes for the knowledge base pipeline."""


class KnowledgeBaseError(Exception):
    """Base exception for all coachkb errors."""

    pass


class DocumentNotFoundError(KnowledgeBaseError):
    """Raised when a source document id does not exist."""

    pass


class ChunkNotFoundError(KnowledgeBaseError):
    """Raised when a knowledge base chunk id does not exist."""

    pass


class ExtractionError(KnowledgeBaseError):
    """Raised when text cannot be extracted from a source."""

    pass


class UnsupportedFileTypeError(ExtractionError):
    """Raised for file types the extractor does not handle."""

    pass


class ConfigurationError(KnowledgeBaseError):
    """Raised when required configuration is missing."""

    pass
