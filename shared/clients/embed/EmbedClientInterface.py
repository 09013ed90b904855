from abc import abstractmethod
from functools import partial
from typing import Any, Sequence

import httpx
import numpy as np

from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbeddingModelRegistry import EmbeddingModelRegistry
from shared.helper.HelperConfig import HelperConfig
from shared.models.embedding import EmbeddingModel, EmbeddingVector, EmbedOptions, Pooling
from shared.resilience.ErrorLog import ErrorLog
from shared.resilience.errors import ClientError, DimensionMismatchError, ProtocolError


def cosine_similarity(a: Sequence[float] | EmbeddingVector, b: Sequence[float] | EmbeddingVector) -> float:
    """Cosine of the angle between two vectors: dot(a, b) / (|a| * |b|).

    A zero vector is a valid degenerate embedding, so a zero magnitude on
    either side yields exactly 0.0. The result is clamped to [-1, 1] against
    rounding drift.

    Args:
        a (Sequence[float] | EmbeddingVector): First vector.
        b (Sequence[float] | EmbeddingVector): Second vector.

    Returns:
        float: Similarity in [-1, 1].

    Raises:
        DimensionMismatchError: If the vectors have different lengths.
    """
    va = np.asarray(a.values if isinstance(a, EmbeddingVector) else a, dtype=np.float64)
    vb = np.asarray(b.values if isinstance(b, EmbeddingVector) else b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(expected=va.size, actual=vb.size)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


class EmbedClientInterface(ClientInterface):
    def __init__(
        self,
        helper_config: HelperConfig,
        model_registry: EmbeddingModelRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        error_log: ErrorLog | None = None,
    ):
        super().__init__(helper_config=helper_config, transport=transport, error_log=error_log)
        prefix = self.get_client_type().upper()

        # model registry; EMBED_MODEL selects the active model, EMBED_MODEL_DIMENSIONS registers an unknown one
        self._model_registry = model_registry or EmbeddingModelRegistry()
        embed_model = helper_config.get_string_val(f"{prefix}_MODEL", default="")
        embed_model_dimensions = int(helper_config.get_number_val(f"{prefix}_MODEL_DIMENSIONS", default=0))
        if embed_model and embed_model_dimensions > 0:
            self._model_registry.register(
                EmbeddingModel(
                    id=embed_model,
                    name=embed_model,
                    dimensions=embed_model_dimensions,
                    description=f"Configured via {prefix}_MODEL_DIMENSIONS",
                )
            )
        if embed_model:
            self._model_registry.set_active_model(embed_model)

        # request defaults
        self.embed_batch_size = int(helper_config.get_number_val(f"{prefix}_BATCH_SIZE", default=10, minimum=1))
        self.embed_pooling = Pooling(helper_config.get_string_val(f"{prefix}_POOLING", default="mean").lower())
        self.embed_normalize = helper_config.get_bool_val(f"{prefix}_NORMALIZE", default=True)
        self.embed_model_max_chars = int(helper_config.get_number_val(f"{prefix}_MODEL_MAX_CHARS", default=0))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    def _get_min_retries(self) -> int:
        # embedding calls are rate limited upstream, always allow one retry
        return 1

    ################ MODELS ##################
    def get_model_registry(self) -> EmbeddingModelRegistry:
        return self._model_registry

    def list_models(self) -> list[EmbeddingModel]:
        return self._model_registry.list_models()

    def get_active_model(self) -> EmbeddingModel:
        return self._model_registry.get_active_model()

    def set_active_model(self, model_id: str) -> EmbeddingModel:
        """Switch the active model. Existing vectors are not re-embedded.

        Raises:
            ClientError: If the model is unknown.
        """
        model = self._model_registry.set_active_model(model_id)
        self.logging.info("Active embedding model set to '%s' (%d dimensions).", model.id, model.dimensions)
        return model

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self, model_id: str) -> str:
        """
        Returns the endpoint path for embedding requests.

        Args:
            model_id (str): The model the request is for.

        Returns:
            str: The endpoint path (e.g. "/api/embed" or "/models/BAAI/bge-small-en-v1.5")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str], model: EmbeddingModel, pooling: Pooling, normalize: bool) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts of one batch.
            model (EmbeddingModel): The model to embed with.
            pooling (Pooling): Token pooling strategy.
            normalize (bool): Whether the backend should L2-normalise the vectors.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: Any) -> list:
        """Extract the raw embedding vectors from a parsed response body.

        Response format differs by backend:
        - Hugging Face feature extraction: [[...], [...]]
        - Ollama /api/embed: {"embeddings": [[...], [...]]}

        Args:
            response_data (Any): The parsed JSON response body.

        Returns:
            list: One raw vector per input, in request order. Length and
                  element checks are done by the caller.

        Raises:
            ProtocolError: If the body does not have the backend's shape.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def embed(self, texts: list[str] | str, options: EmbedOptions | None = None) -> list[EmbeddingVector]:
        """Embed texts, preserving input order 1:1.

        Texts are split into consecutive batches of at most batch_size and
        sent one batch at a time through the resilience executor. A malformed
        batch response aborts the whole call; partial results are never
        returned.

        Args:
            texts (list[str] | str): One or more texts to embed.
            options (EmbedOptions | None): Per-call overrides of model, batch size, pooling and normalisation.

        Returns:
            list[EmbeddingVector]: One vector per input text.

        Raises:
            ClientError: Unknown model, invalid batch size, or request rejected by the backend.
            TransientError: Backend unreachable after all retries.
            ProtocolError: The backend returned the wrong number or shape of vectors.
        """
        texts = [texts] if isinstance(texts, str) else list(texts)
        options = options or EmbedOptions()
        model = self._model_registry.get_model(options.model_id) if options.model_id else self.get_active_model()
        batch_size = options.batch_size if options.batch_size is not None else self.embed_batch_size
        if batch_size < 1:
            raise ClientError(f"Batch size must be at least 1, got {batch_size}.")
        pooling = options.pooling or self.embed_pooling
        normalize = self.embed_normalize if options.normalize is None else options.normalize

        if not texts:
            return []

        texts = [self._truncate(text) for text in texts]
        batches = [texts[start:start + batch_size] for start in range(0, len(texts), batch_size)]

        vectors: list[EmbeddingVector] = []
        for number, batch in enumerate(batches, start=1):
            context = f"embed batch {number}/{len(batches)} ({self.get_engine_name()}, model={model.id})"
            batch_vectors = await self.executor.execute(
                partial(self._do_embed_batch, batch, model, pooling, normalize),
                context=context,
                policy=self.retry_policy,
            )
            vectors.extend(batch_vectors)

        self.logging.debug(
            "Embedded %d text(s) in %d batch(es) with model '%s'.", len(texts), len(batches), model.id
        )
        return vectors

    async def embed_one(self, text: str, options: EmbedOptions | None = None) -> EmbeddingVector:
        """Embed a single text (a batch of one)."""
        vectors = await self.embed([text], options)
        return vectors[0]

    async def _do_embed_batch(self, batch: list[str], model: EmbeddingModel, pooling: Pooling, normalize: bool) -> list[EmbeddingVector]:
        """Send one batch and validate the response. Called once per attempt."""
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(model.id),
            json=self.get_embed_payload(batch, model, pooling, normalize),
            raise_on_error=True,
        )
        try:
            response_data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Embedding response from {self.get_engine_name()} is not valid JSON.") from e
        raw_vectors = self.extract_embeddings_from_response(response_data)
        return self._validate_batch(raw_vectors, expected_count=len(batch), model=model)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _truncate(self, text: str) -> str:
        if self.embed_model_max_chars > 0 and len(text) > self.embed_model_max_chars:
            return text[: self.embed_model_max_chars]
        return text

    def _validate_batch(self, raw_vectors: Any, expected_count: int, model: EmbeddingModel) -> list[EmbeddingVector]:
        """Check count, dimensions and element types of one batch response.

        Raises:
            ProtocolError: On a wrong vector count or a malformed vector.
            DimensionMismatchError: A ProtocolError raised when a vector length differs from the model's dimensions.
        """
        if not isinstance(raw_vectors, list):
            raise ProtocolError(f"Expected a list of vectors, got {type(raw_vectors).__name__}.")
        if len(raw_vectors) != expected_count:
            raise ProtocolError(f"Expected {expected_count} vectors for the batch, got {len(raw_vectors)}.")

        vectors: list[EmbeddingVector] = []
        for position, raw_vector in enumerate(raw_vectors):
            if not isinstance(raw_vector, list):
                raise ProtocolError(f"Vector {position} is a {type(raw_vector).__name__}, expected a list.")
            if len(raw_vector) != model.dimensions:
                raise DimensionMismatchError(
                    expected=model.dimensions,
                    actual=len(raw_vector),
                    message=f"Vector {position} has {len(raw_vector)} dimensions, model '{model.id}' declares {model.dimensions}.",
                )
            try:
                values = [float(value) for value in raw_vector]
            except (TypeError, ValueError) as e:
                raise ProtocolError(f"Vector {position} contains non-numeric values.") from e
            vectors.append(EmbeddingVector(values=values, dimensions=model.dimensions, model_id=model.id))
        return vectors
