"""Errors raised by the ingestion and extraction pipeline.

A missing book or chapter is not an error: lookups return None.
"""


class ReaderError(Exception):
    """Base class for every failure surfaced to the HTTP layer."""


class EpubValidationError(ReaderError):
    """The uploaded file is not an acceptable EPUB."""


class EpubParseError(ReaderError):
    """The container could not be opened or parsed; nothing was persisted."""


class EpubFileNotFoundError(ReaderError):
    def __init__(self, book_id: str):
        super().__init__("EPUB file not found")
        self.book_id = book_id


class ManifestEntryNotFoundError(ReaderError):
    def __init__(self, href: str):
        super().__init__(f"No manifest entry found for {href}")
        self.href = href


class ChapterExtractionError(ReaderError):
    def __init__(self, href: str, reason: str):
        super().__init__(f"Failed to extract content from {href}: {reason}")
        self.href = href


class SummarizationError(ReaderError):
    """The LLM call failed after all retries."""
