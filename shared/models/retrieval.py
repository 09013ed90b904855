"""Pydantic models for retrieval results and generation."""

from enum import Enum

from pydantic import BaseModel


class RetrievalHit(BaseModel):
    """A single indexed record matched by a similarity search.

    Attributes:
        document_id: Id of the matched document.
        record_id:   Index key of the matched record; a document split into
                     chunks owns one record per chunk.
        score:       Cosine similarity to the query.
        metadata:    Copy of the payload stored with the record.
    """

    document_id: str
    record_id: str | None = None
    score: float
    metadata: dict = {}

    @property
    def title(self) -> str:
        return self.metadata.get("title", "")

    @property
    def content(self) -> str:
        return self.metadata.get("chunk_text", "")

    @property
    def chunk_index(self) -> int | None:
        return self.metadata.get("chunk_index")


class RetrievalResult(BaseModel):
    """Hits sorted by descending score; ties keep insertion order."""

    hits: list[RetrievalHit] = []

    def document_ids(self) -> list[str]:
        """Ids of the matched documents, best match first, each listed once."""
        return list(dict.fromkeys(hit.document_id for hit in self.hits))

    def __len__(self) -> int:
        return len(self.hits)


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    role: Role
    content: str

    def to_wire(self) -> dict:
        return {"role": self.role.value, "content": self.content}


class GenerationOptions(BaseModel):
    """Per-call overrides for LLMClientInterface.generate(). None means "use the configured default"."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class GeneratedAnswer(BaseModel):
    """Answer text plus the ids of the documents it was grounded on.

    Attributes:
        text:          Generated answer.
        grounded_on:   Ids of the retrieved documents used as context, best match first.
                       Empty when no relevant context was found.
        context_found: False when generation ran without any retrieved context.
        sources:       The retrieval hits behind grounded_on, for display.
    """

    text: str
    grounded_on: list[str] = []
    context_found: bool = True
    sources: list[RetrievalHit] = []
