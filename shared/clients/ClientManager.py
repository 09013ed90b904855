import importlib
import os

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.resilience.ErrorLog import ErrorLog


class ClientManager:
    """Instantiates the engine selected by "{CLIENT_TYPE}_ENGINE".

    Engines live in shared/clients/{client_type}/{engine}/ as a module named
    "{Prefix}{Engine}" holding a class of the same name, e.g.
    shared/clients/embed/ollama/EmbedClientOllama.py.
    """

    CLIENT_TYPE: str = ""
    CLASS_PREFIX: str = ""
    DEFAULT_ENGINE: str | None = None

    def __init__(self, helper_config: HelperConfig, error_log: ErrorLog | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._error_log = error_log
        self.client = self._initialize_client()

    @classmethod
    def list_engines(cls) -> list[str]:
        """Engine subpackages found next to the client interface (e.g. ["huggingface", "ollama"])."""
        package = importlib.import_module(f"shared.clients.{cls.CLIENT_TYPE}")
        engines = set()
        for path in package.__path__:
            # editable installs add a path hook placeholder that is not a directory
            if not os.path.isdir(path):
                continue
            with os.scandir(path) as entries:
                engines.update(entry.name for entry in entries if entry.is_dir() and not entry.name.startswith(("_", ".")))
        return sorted(engines)

    def _get_engine_from_env(self) -> str:
        """
        Returns:
            str: The capitalised engine name (e.g. "Huggingface").

        Raises:
            ValueError: If the engine variable is unset and there is no default.
        """
        key = f"{self.CLIENT_TYPE.upper()}_ENGINE"
        engine = self.helper_config.get_string_val(key, default=self.DEFAULT_ENGINE)
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ClientInterface:
        """
        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"{self.CLASS_PREFIX}{engine}"
        module_path = f"shared.clients.{self.CLIENT_TYPE}.{engine.lower()}.{class_name}"
        try:
            client_class = getattr(importlib.import_module(module_path), class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(
                f"Unsupported {self.CLIENT_TYPE} engine '{engine.lower()}'. "
                f"Available: {', '.join(self.list_engines())}. Error: {e}"
            )

        client = client_class(helper_config=self.helper_config, error_log=self._error_log)
        self.logging.debug("Instantiated %s client for engine: %s", self.CLIENT_TYPE, engine)
        return client

    def get_client(self) -> ClientInterface:
        return self.client
