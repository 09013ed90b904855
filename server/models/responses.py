from pydantic import BaseModel

from shared.models.embedding import EmbeddingModel
from shared.resilience.ErrorLog import ErrorLogEntry


class IngestResponse(BaseModel):
    document_id: str
    title: str
    source_type: str
    characters: int
    chunks: int


class RemoveResponse(BaseModel):
    document_id: str
    removed: bool


class ReembedResponse(BaseModel):
    model_id: str
    reembedded: int


class SourceItem(BaseModel):
    document_id: str
    title: str
    score: float
    chunk_index: int | None = None


class QueryResponse(BaseModel):
    query: str
    answer: str
    grounded_on: list[str]
    context_found: bool
    sources: list[SourceItem]


class StatusResponse(BaseModel):
    document_count: int
    index_count: int
    index_capacity: int | None
    dimensions: dict[int, int]
    active_model: EmbeddingModel
    available_models: list[EmbeddingModel]
    rebuild_in_progress: bool
    recent_errors: list[ErrorLogEntry]
