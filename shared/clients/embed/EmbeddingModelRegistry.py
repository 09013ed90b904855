import threading

from shared.models.embedding import EmbeddingModel
from shared.resilience.errors import ClientError

DEFAULT_EMBEDDING_MODELS: list[EmbeddingModel] = [
    EmbeddingModel(
        id="BAAI/bge-small-en-v1.5",
        name="BGE Small",
        dimensions=384,
        description="Fast, lightweight embeddings model",
    ),
    EmbeddingModel(
        id="BAAI/bge-base-en-v1.5",
        name="BGE Base",
        dimensions=768,
        description="Balanced performance and quality",
    ),
    EmbeddingModel(
        id="BAAI/bge-large-en-v1.5",
        name="BGE Large",
        dimensions=1024,
        description="High quality semantic search",
    ),
    EmbeddingModel(
        id="sentence-transformers/all-MiniLM-L6-v2",
        name="MiniLM L6",
        dimensions=384,
        description="Small general purpose sentence embeddings",
    ),
]


class EmbeddingModelRegistry:
    """Known embedding models plus the single active one.

    Switching the active model never re-embeds anything; callers trigger a
    corpus re-embedding explicitly.
    """

    def __init__(self, models: list[EmbeddingModel] | None = None, active_model_id: str | None = None) -> None:
        self._models: dict[str, EmbeddingModel] = {}
        self._lock = threading.Lock()
        for model in models if models is not None else DEFAULT_EMBEDDING_MODELS:
            self._models[model.id] = model
        if not self._models:
            raise ValueError("EmbeddingModelRegistry needs at least one model.")
        self._active_id = active_model_id or next(iter(self._models))
        self.get_model(self._active_id)

    def register(self, model: EmbeddingModel) -> EmbeddingModel:
        """Add or replace a model descriptor.

        Raises:
            ClientError: If the active model would change its dimensions.
        """
        with self._lock:
            if model.id == self._active_id and model.dimensions != self._models[model.id].dimensions:
                raise ClientError(f"Cannot change the dimensions of the active embedding model '{model.id}'.")
            self._models[model.id] = model
        return model

    def list_models(self) -> list[EmbeddingModel]:
        with self._lock:
            return list(self._models.values())

    def get_model(self, model_id: str) -> EmbeddingModel:
        """
        Raises:
            ClientError: If the model is unknown.
        """
        with self._lock:
            model = self._models.get(model_id)
        if model is None:
            raise ClientError(f"Embedding model '{model_id}' not found.")
        return model

    def get_active_model(self) -> EmbeddingModel:
        return self.get_model(self._active_id)

    def set_active_model(self, model_id: str) -> EmbeddingModel:
        model = self.get_model(model_id)
        with self._lock:
            self._active_id = model.id
        return model
