"""Pydantic models for embeddings and embedding models."""

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class Pooling(str, Enum):
    MEAN = "mean"
    CLS = "cls"
    MAX = "max"


class EmbeddingModel(BaseModel):
    """Descriptor of an embedding model.

    Attributes:
        id:          Identifier sent to the inference backend (e.g. "BAAI/bge-small-en-v1.5").
        name:        Display name.
        dimensions:  Length of every vector the model produces.
        description: Short human-readable description.
    """

    id: str
    name: str
    dimensions: int = Field(gt=0)
    description: str = ""


class EmbeddingVector(BaseModel):
    """A fixed-length vector produced by one embedding model.

    Vectors with different dimensions (or from different models) are never
    compared with each other.
    """

    values: list[float]
    dimensions: int = Field(gt=0)
    model_id: str | None = None

    @model_validator(mode="after")
    def _check_length(self) -> "EmbeddingVector":
        if len(self.values) != self.dimensions:
            raise ValueError(
                f"Vector has {len(self.values)} values but declares {self.dimensions} dimensions."
            )
        return self


class EmbedOptions(BaseModel):
    """Per-call overrides for EmbedClientInterface.embed(). None means "use the configured default"."""

    model_id: str | None = None
    batch_size: int | None = None
    pooling: Pooling | None = None
    normalize: bool | None = None


class VectorRecord(BaseModel):
    """One indexed vector. Replaced wholesale on re-embedding.

    `document_id` is the index key. Callers that split a document into
    chunks key each chunk separately and put the owning id into
    metadata["document_id"], which search reports back as the hit's document.
    """

    document_id: str
    embedding: EmbeddingVector
    metadata: dict = {}
