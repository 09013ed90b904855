import logging
import os

import pytest

from shared.helper.HelperConfig import HelperConfig
from shared.models.embedding import EmbeddingVector
from shared.resilience.ErrorLog import ErrorLog

_ENV_PREFIXES = ("EMBED_", "LLM_", "RAG_", "INDEX_", "DOCUMENT_", "ERROR_LOG_", "APP_")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove settings of the host environment so every test starts from the defaults."""
    for key in list(os.environ):
        if key.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def logger():
    return logging.getLogger("grounded_rag.tests")


@pytest.fixture
def helper_config(logger):
    return HelperConfig(logger=logger)


@pytest.fixture
def error_log():
    return ErrorLog(max_entries=50)


@pytest.fixture
def vector():
    """Factory: vector([1, 0, 0], model_id="m") -> EmbeddingVector."""

    def _make(values, model_id=None):
        values = [float(value) for value in values]
        return EmbeddingVector(values=values, dimensions=len(values), model_id=model_id)

    return _make
