"""
Error taxonomy shared by the archive, the chunker and both pipelines.
Each error carries the HTTP status the service answers with.
"""


class RagError(Exception):
    """Base exception for RAG pipeline errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(RagError):
    """Raised when caller input is malformed or missing."""

    status_code = 400


class NotFoundError(RagError):
    """Raised when an archived document cannot be found."""

    status_code = 404


class ChunkingError(RagError):
    """Raised when a document cannot be split into chunks."""

    status_code = 422


class UnsupportedFormatError(ChunkingError):
    """Raised for a format hint or file extension the chunker does not understand."""

    status_code = 400

    def __init__(self, format_hint: str):
        self.format_hint = format_hint
        super().__init__(
            f"Unsupported document format '{format_hint}'. "
            "Only files with 'txt' and 'md' extensions are supported."
        )


class EmbeddingError(RagError):
    """Raised when the embedding collaborator fails."""

    status_code = 502


class PersistenceError(RagError):
    """Raised when the vector store rejects an upsert."""

    status_code = 502


class CompletionError(RagError):
    """Raised when the model-completion collaborator fails."""

    status_code = 502


class ConfigurationError(RagError):
    """Raised when the retrieval configuration is absent or invalid."""

    status_code = 500


class PromptError(RagError):
    """Base exception for prompt merging guards."""

    status_code = 500


class NoMessagesError(PromptError):
    def __init__(self, message: str = "No messages to merge context into."):
        super().__init__(message)


class NoContextError(PromptError):
    def __init__(self, message: str = "No context provided."):
        super().__init__(message)
