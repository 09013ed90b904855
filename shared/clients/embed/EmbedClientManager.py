from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager(ClientManager):
    """Selects the embedding backend from EMBED_ENGINE (default: huggingface)."""

    CLIENT_TYPE = "embed"
    CLASS_PREFIX = "EmbedClient"
    DEFAULT_ENGINE = "huggingface"

    def get_client(self) -> EmbedClientInterface:
        return self.client
