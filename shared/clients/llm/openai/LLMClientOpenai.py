from typing import Any

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.models.config import EnvConfig
from shared.resilience.errors import ProtocolError


class LLMClientOpenai(LLMClientInterface):
    """Any backend speaking the OpenAI chat completions protocol."""

    def __init__(self, helper_config, **kwargs):
        super().__init__(helper_config=helper_config, **kwargs)
        self._base_url = self.get_config_val("BASE_URL", default="https://api.openai.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Openai"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://api.openai.com"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None, secret=True),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def _get_endpoint_chat(self) -> str:
        return "/v1/chat/completions"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict], model: str, temperature: float, max_tokens: int) -> dict:
        return {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: Any) -> str:
        """Read choices[0].message.content.

        Raises:
            ProtocolError: If the response has no choices or no message content.
        """
        try:
            content = response_data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProtocolError("Chat completion response does not contain choices[0].message.content.") from e
        if not isinstance(content, str):
            raise ProtocolError("Chat completion message content is not text.")
        return content
