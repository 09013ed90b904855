from shared.clients.ClientManager import ClientManager
from shared.clients.llm.LLMClientInterface import LLMClientInterface


class LLMClientManager(ClientManager):
    """Selects the generation backend from LLM_ENGINE, which is required."""

    CLIENT_TYPE = "llm"
    CLASS_PREFIX = "LLMClient"

    def get_client(self) -> LLMClientInterface:
        return self.client
