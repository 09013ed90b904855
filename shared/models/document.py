"""Pydantic models for document data.

Hierarchy:
  Document         — raw document text handed over by the ingestion collaborator.
  DocumentPayload  — metadata stored alongside each chunk vector in the VectorIndex.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    TEXT = "text"
    MARKDOWN = "markdown"
    CODE = "code"
    PDF = "pdf"
    CSV = "csv"
    EXCEL = "excel"
    HTML = "html"
    JSON = "json"


_EXTENSION_TYPES: dict[str, SourceType] = {
    "md": SourceType.MARKDOWN,
    "js": SourceType.CODE,
    "ts": SourceType.CODE,
    "py": SourceType.CODE,
    "java": SourceType.CODE,
    "cpp": SourceType.CODE,
    "cs": SourceType.CODE,
    "pdf": SourceType.PDF,
    "csv": SourceType.CSV,
    "xls": SourceType.EXCEL,
    "xlsx": SourceType.EXCEL,
    "html": SourceType.HTML,
    "json": SourceType.JSON,
}


def detect_source_type(filename: str | None) -> SourceType:
    """Guess the source type from a file name's extension.

    Args:
        filename (str | None): Original file name, e.g. "notes.md".

    Returns:
        SourceType: The matching type, SourceType.TEXT for unknown or missing extensions.
    """
    if not filename or "." not in filename:
        return SourceType.TEXT
    extension = filename.rsplit(".", 1)[-1].lower()
    return _EXTENSION_TYPES.get(extension, SourceType.TEXT)


class Document(BaseModel):
    """Document as handed over by the ingestion collaborator.

    The core reads `content` (split into chunks for embedding) and echoes
    `id` / `title` back in results. A document is immutable once embedded;
    re-ingesting the same id replaces it wholesale.
    """

    id: str
    title: str
    content: str
    source_type: SourceType = SourceType.TEXT
    metadata: dict = {}
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self, chunk_index: int, chunk_text: str, chunk_count: int) -> "DocumentPayload":
        return DocumentPayload(
            document_id=self.id,
            title=self.title,
            chunk_index=chunk_index,
            chunk_count=chunk_count,
            chunk_text=chunk_text,
            source_type=self.source_type,
            created_at=self.created_at.isoformat(),
            extra=self.metadata,
        )


class DocumentPayload(BaseModel):
    """Metadata stored alongside each chunk vector in the index.

    Carries the chunk text so a search hit can be turned into prompt context
    without a second lookup.

    Attributes:
        document_id:  Id of the document the chunk belongs to.
        chunk_index:  Zero-based position of this chunk within the document.
        chunk_count:  Number of chunks the document was split into.
        chunk_text:   Raw text of this chunk.
        extra:        Caller supplied metadata, identical across all chunks of a document.
    """

    document_id: str
    title: str
    chunk_index: int = 0
    chunk_count: int = 1
    chunk_text: str
    source_type: SourceType = SourceType.TEXT
    created_at: str | None = None
    extra: dict = {}


def make_record_id(document_id: str, chunk_index: int) -> str:
    """Index key of one chunk, e.g. "doc-1:0"."""
    return f"{document_id}:{chunk_index}"
