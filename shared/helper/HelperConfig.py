"""Environment backed configuration.

Every setting of the service is an environment variable. Unset and empty
variables are treated the same; a default of None marks a setting as
required.
"""

import logging
import os
from typing import Any

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")
_SECRET_MARKERS = ("KEY", "TOKEN", "SECRET", "PASSWORD")


class HelperConfig:
    """Typed access to environment variables plus the application logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("grounded_rag")

    ##########################################
    ################ READERS #################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string variable.

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        key, raw = self._read(key)
        if raw is None:
            return self._fallback(key, default)
        return raw

    def get_number_val(
        self,
        key: str,
        default: float | int | None = None,
        minimum: float | int | None = None,
    ) -> float | int:
        """Read an int ("42") or float ("0.5") variable.

        Args:
            key (str): Variable name (case-insensitive).
            default (float | int | None): Fallback if unset; None makes it required.
            minimum (float | int | None): Smallest accepted value, checked for set values only.

        Raises:
            ValueError: If the variable is required and unset, not a number, or below minimum.
        """
        key, raw = self._read(key)
        if raw is None:
            return self._fallback(key, default)
        try:
            value = float(raw) if any(marker in raw for marker in ".eE") else int(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' is not a valid number: '{raw}'.")
        if minimum is not None and value < minimum:
            raise ValueError(f"Environment variable '{key}' must be >= {minimum}, got {value}.")
        return value

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean variable (true/false, 1/0, yes/no, on/off).

        Raises:
            ValueError: If the variable is required and unset, or not a recognised boolean.
        """
        key, raw = self._read(key)
        if raw is None:
            return self._fallback(key, default)
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Environment variable '{key}' is not a boolean: '{raw}'.")

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a bracketed list variable, e.g. "[http://a.local,http://b.local]".

        Raises:
            ValueError: If the variable is required and unset, not bracketed, or an element cannot be cast.
        """
        key, raw = self._read(key)
        if raw is None:
            return self._fallback(key, default)
        if not (raw.startswith("[") and raw.endswith("]")):
            raise ValueError(f"Environment variable '{key}' must look like '[elem1{separator}elem2]', got '{raw}'.")
        elements = [element.strip() for element in raw[1:-1].split(separator) if element.strip()]
        try:
            return [element_type(element) for element in elements]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key}' has an element that is not {element_type.__name__}: {e}")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_logger(self) -> logging.Logger:
        return self._logger

    def describe(self, keys: list[str]) -> dict[str, str]:
        """Current raw values of `keys` for a startup log line. Secrets are masked, unset keys omitted."""
        described: dict[str, str] = {}
        for key in keys:
            key, raw = self._read(key)
            if raw is None:
                continue
            described[key] = "***" if self.is_secret(key) else raw
        return described

    @staticmethod
    def is_secret(key: str) -> bool:
        return any(marker in key.upper() for marker in _SECRET_MARKERS)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    @staticmethod
    def _read(key: str) -> tuple[str, str | None]:
        key = key.upper()
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return key, None
        return key, raw.strip()

    @staticmethod
    def _fallback(key: str, default: Any) -> Any:
        if default is None:
            raise ValueError(f"Environment variable '{key}' is not set.")
        return default
