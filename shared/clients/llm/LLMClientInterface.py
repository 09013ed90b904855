from abc import abstractmethod
from functools import partial
from typing import Any

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.retrieval import ChatMessage, GenerationOptions
from shared.resilience.ErrorLog import ErrorLog
from shared.resilience.errors import ClientError, ProtocolError


class LLMClientInterface(ClientInterface):
    def __init__(
        self,
        helper_config: HelperConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        error_log: ErrorLog | None = None,
    ):
        super().__init__(helper_config=helper_config, transport=transport, error_log=error_log)
        prefix = self.get_client_type().upper()

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{prefix}_CHAT_MODEL", default=None)
        self.temperature = float(helper_config.get_number_val(f"{prefix}_TEMPERATURE", default=0.7))
        self.max_tokens = int(helper_config.get_number_val(f"{prefix}_MAX_TOKENS", default=1024))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict], model: str, temperature: float, max_tokens: int) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): Role-tagged messages
                (e.g. [{"role": "user", "content": "..."}]).
            model (str): Model name.
            temperature (float): Sampling temperature.
            max_tokens (int): Upper bound of generated tokens.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: Any) -> str:
        """Extract the assistant reply text from a parsed chat response.

        Args:
            response_data (Any): The parsed JSON response body.

        Returns:
            str: The assistant reply text.

        Raises:
            ProtocolError: If the response does not contain a reply.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def generate(self, messages: list[ChatMessage | dict], options: GenerationOptions | None = None) -> str:
        """Send role-tagged messages and return the generated text.

        Retries transient failures through the resilience executor. Invalid
        credentials or content policy rejections surface as ClientError on
        the first attempt.

        Args:
            messages (list[ChatMessage | dict]): Conversation in order.
            options (GenerationOptions | None): Per-call model / temperature / max_tokens overrides.

        Returns:
            str: The assistant reply text.

        Raises:
            ClientError: Empty conversation or request rejected by the backend.
            TransientError: Backend unreachable after all retries.
            ProtocolError: Unparsable response.
        """
        if not messages:
            raise ClientError("Cannot generate from an empty message list.")
        options = options or GenerationOptions()
        wire_messages = [m.to_wire() if isinstance(m, ChatMessage) else ChatMessage(**m).to_wire() for m in messages]
        model = options.model or self.chat_model
        temperature = self.temperature if options.temperature is None else options.temperature
        max_tokens = options.max_tokens or self.max_tokens

        body = self.get_chat_payload(wire_messages, model, temperature, max_tokens)
        return await self.executor.execute(
            partial(self._do_generate, body),
            context=f"generate ({self.get_engine_name()}, model={model})",
            policy=self.retry_policy,
        )

    async def _do_generate(self, body: dict) -> str:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        try:
            response_data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Chat response from {self.get_engine_name()} is not valid JSON.") from e
        return self.extract_chat_response(response_data)
