from typing import Any

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.models.config import EnvConfig
from shared.resilience.errors import ProtocolError


class LLMClientOllama(LLMClientInterface):
    """Local generation through Ollama's non-streaming /api/chat."""

    def __init__(self, helper_config, **kwargs):
        super().__init__(helper_config=helper_config, **kwargs)
        self._base_url = self.get_config_val("BASE_URL", default=None)
        self._api_key = self.get_config_val("API_KEY", default="")
        self._keep_alive = self.get_config_val("KEEP_ALIVE", default="")
        self._num_ctx = int(self.get_config_val("NUM_CTX", default=0, val_type="number"))

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
            # 0 keeps the model's context window; retrieved context can need more
            EnvConfig(env_key="NUM_CTX", val_type="number", default=0),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/api/version"

    def _get_endpoint_chat(self) -> str:
        return "/api/chat"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict], model: str, temperature: float, max_tokens: int) -> dict:
        """
        Returns:
            dict: {"model", "messages", "stream": False, "options": {"temperature", "num_predict"[, "num_ctx"]}[, "keep_alive"]}
        """
        options = {"temperature": temperature, "num_predict": max_tokens}
        if self._num_ctx > 0:
            options["num_ctx"] = self._num_ctx
        payload = {"model": model, "messages": messages, "stream": False, "options": options}
        if self._keep_alive:
            payload["keep_alive"] = self._keep_alive
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: Any) -> str:
        """Read message.content; a reply cut at num_predict is returned but logged.

        Raises:
            ProtocolError: If the response carries no assistant message.
        """
        message = response_data.get("message") if isinstance(response_data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            detail = response_data.get("error") if isinstance(response_data, dict) else type(response_data).__name__
            raise ProtocolError(f"Ollama chat response does not contain a message: {detail}")
        if response_data.get("done_reason") == "length":
            self.logging.warning("Ollama reply was cut at the max_tokens limit (%d chars returned).", len(content))
        return content
