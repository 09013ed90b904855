from pydantic import BaseModel, Field


class IngestRequest(BaseModel):
    content: str
    document_id: str | None = None
    title: str | None = None
    filename: str | None = None
    metadata: dict = {}


class ReembedRequest(BaseModel):
    model_id: str


class QueryRequest(BaseModel):
    query: str
    top_k: int | None = Field(default=None, ge=0)
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0)
    max_tokens: int | None = Field(default=None, gt=0)
