"""Base class of every outbound HTTP client.

A client is one (type, engine) pair, e.g. ("embed", "huggingface"). Its
settings are read from "{TYPE}_{ENGINE}_{KEY}" environment variables and
validated on construction, its requests go through one shared
httpx.AsyncClient, and its retryable calls run under a ResilienceExecutor
with the policy from "{TYPE}_MAX_RETRIES" / "{TYPE}_RETRY_BASE_DELAY" /
"{TYPE}_TIMEOUT" / "{TYPE}_DEADLINE".
"""

from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx._types import QueryParamTypes

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.resilience.ErrorLog import ErrorLog
from shared.resilience.ResilienceExecutor import ResilienceExecutor
from shared.resilience.RetryPolicy import RetryPolicy
from shared.resilience.errors import ClientError, classify_status


class ClientInterface(ABC):
    def __init__(
        self,
        helper_config: HelperConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        error_log: ErrorLog | None = None,
    ):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.retry_policy = RetryPolicy.from_config(
            helper_config, self.get_client_type(), min_retries=self._get_min_retries()
        )
        self.executor = ResilienceExecutor(helper_config=helper_config, error_log=error_log)

        # stub backends in tests pass an httpx.MockTransport
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """Resolve every declared setting once and log the result with secrets masked.

        Raises:
            ValueError: If a required setting is missing or a value cannot be parsed.
        """
        resolved = {}
        for config in self._get_required_config():
            value = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)
            resolved[self._get_config_key_name(config.env_key)] = "***" if config.secret and value else value
        self.logging.debug("%s client configuration: %s", self.get_engine_name(), resolved)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """Lowercase client type, e.g. "embed"."""
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    def get_engine_name(self) -> str:
        """Lowercase engine name, e.g. "huggingface"."""
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    def get_timeout(self) -> float:
        """Per-attempt timeout in seconds, shared by the HTTP client and the retry policy."""
        return self.retry_policy.attempt_timeout or 30.0

    ################ RESILIENCE ##################
    def _get_min_retries(self) -> int:
        """Lower bound of the configured retry count. 0 lets configuration disable retries."""
        return 0

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """Settings of this engine; a default of None marks a setting as required."""
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """E.g. "API_KEY" -> "EMBED_HUGGINGFACE_API_KEY"."""
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """Read one engine-scoped setting through HelperConfig.

        Raises:
            ValueError: If the setting is required and unset, or val_type is unknown.
        """
        key = self._get_config_key_name(raw_key)
        readers = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        if val_type not in readers:
            raise ValueError(f"Unsupported config value type '{val_type}' for '{key}'.")
        return readers[val_type](key, default=default)

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """Headers that authenticate every request, {} for open backends."""
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """Backend root, e.g. "http://localhost:11434"."""
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """Path answered with 2xx when the backend is usable."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Single GET of the healthcheck endpoint, without retries."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.get_timeout(), transport=self._transport)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        json: Any = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one HTTP request to the backend.

        Args:
            method: HTTP method.
            json: JSON body.
            params: URL query parameters.
            endpoint: Path below the base URL (leading slash optional).
            additional_headers: Extra headers, overriding the auth header.
            raise_on_error: Turn non-2xx responses into typed errors.

        Returns:
            The raw httpx.Response.

        Raises:
            ClientError: Not booted, or (raise_on_error) 4xx other than 408/429.
            TransientError: (raise_on_error) 408 or 5xx.
            RateLimited: (raise_on_error) 429.
            httpx.TransportError: Network failure; the executor classifies it as transient.
        """
        if self._client is None:
            raise ClientError(f"{self.get_engine_name()} client is not booted. Call boot() before making requests.")

        endpoint = endpoint.strip().lstrip("/")
        url = f"{self._get_base_url().rstrip('/')}/{endpoint}" if endpoint else self._get_base_url().rstrip("/")
        headers = {**self._get_auth_header(), **(additional_headers or {})}

        response = await self._client.request(method, url, headers=headers, params=params, json=json)

        if raise_on_error and not response.is_success:
            self.logging.error(
                "%s %s answered %d: %s", method, url, response.status_code, response.text[:200]
            )
            raise classify_status(response)

        return response

