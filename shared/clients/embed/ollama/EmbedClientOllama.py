from typing import Any

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.models.config import EnvConfig
from shared.models.embedding import EmbeddingModel, Pooling
from shared.resilience.errors import ProtocolError


class EmbedClientOllama(EmbedClientInterface):
    """Local embeddings through Ollama's /api/embed.

    Ollama pools and L2-normalises server side, so pooling and normalize
    options are not forwarded.
    """

    def __init__(self, helper_config, **kwargs):
        super().__init__(helper_config=helper_config, **kwargs)
        self._base_url = self.get_config_val("BASE_URL", default=None)
        self._api_key = self.get_config_val("API_KEY", default="")
        # how long Ollama keeps the model loaded after a request, e.g. "5m"; "" leaves the server default
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", default=None),
            EnvConfig(env_key="API_KEY", default="", secret=True),
            EnvConfig(env_key="KEEP_ALIVE", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        # only set when Ollama sits behind an authenticating proxy
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def get_endpoint_embedding(self, model_id: str) -> str:
        return "/api/embed"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str], model: EmbeddingModel, pooling: Pooling, normalize: bool) -> dict:
        """
        Returns:
            dict: {"model": ..., "input": [...], "truncate": True[, "keep_alive": ...]}.
                Inputs longer than the model context are cut by the server instead of failing.
        """
        payload = {"model": model.id, "input": texts, "truncate": True}
        if self._keep_alive:
            payload["keep_alive"] = self._keep_alive
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: Any) -> list:
        if not isinstance(response_data, dict):
            raise ProtocolError(f"Ollama embed response is a {type(response_data).__name__}, expected an object.")
        if "error" in response_data:
            raise ProtocolError(f"Ollama returned an error instead of embeddings: {response_data['error']}")
        if "embeddings" not in response_data:
            raise ProtocolError(f"Ollama response does not contain embeddings. Response keys: {list(response_data)}")
        return response_data["embeddings"]
