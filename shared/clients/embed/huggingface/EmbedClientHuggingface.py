from typing import Any

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.models.config import EnvConfig
from shared.models.embedding import EmbeddingModel, Pooling
from shared.resilience.errors import ProtocolError


class EmbedClientHuggingface(EmbedClientInterface):
    def __init__(self, helper_config, **kwargs):
        super().__init__(helper_config=helper_config, **kwargs)
        self._base_url = self.get_config_val("BASE_URL", default="https://api-inference.huggingface.co", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Huggingface"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api-inference.huggingface.co"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None, secret=True),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        # model status page of the active model
        return f"/models/{self.get_active_model().id}"

    def get_endpoint_embedding(self, model_id: str) -> str:
        return f"/models/{model_id}"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str], model: EmbeddingModel, pooling: Pooling, normalize: bool) -> dict:
        """Build the feature extraction request body.

        Returns:
            dict: {"inputs": [...], "options": {"wait_for_model", "use_cache", "pooling", "normalize"}}
        """
        return {
            "inputs": texts,
            "options": {
                "wait_for_model": True,
                "use_cache": True,
                "pooling": pooling.value,
                "normalize": normalize,
            },
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: Any) -> list:
        if isinstance(response_data, dict):
            raise ProtocolError(
                "Hugging Face response is not a list of vectors: %s" % response_data.get("error", list(response_data.keys()))
            )
        if not isinstance(response_data, list):
            raise ProtocolError(f"Hugging Face response has unexpected type {type(response_data).__name__}.")
        return response_data
