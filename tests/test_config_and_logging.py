import logging

import pytest

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import SecretRedactingFilter, TimezoneFormatter, redact_secrets, setup_logging


class TestHelperConfig:
    """Typed reads of environment variables."""

    def test_required_string(self, helper_config):
        with pytest.raises(ValueError, match="APP_API_KEY"):
            helper_config.get_string_val("APP_API_KEY")

    def test_empty_counts_as_unset(self, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_MODEL", "   ")

        assert helper_config.get_string_val("embed_model", default="fallback") == "fallback"

    def test_string_is_stripped(self, helper_config, monkeypatch):
        monkeypatch.setenv("LLM_CHAT_MODEL", "  llama3 ")

        assert helper_config.get_string_val("LLM_CHAT_MODEL") == "llama3"

    @pytest.mark.parametrize("raw, expected", [("3", 3), ("0.25", 0.25), ("1e2", 100.0), ("-4", -4)])
    def test_numbers(self, helper_config, monkeypatch, raw, expected):
        monkeypatch.setenv("RAG_TOP_K", raw)

        value = helper_config.get_number_val("RAG_TOP_K")

        assert value == expected
        assert type(value) is type(expected)

    def test_invalid_number(self, helper_config, monkeypatch):
        monkeypatch.setenv("RAG_TOP_K", "three")

        with pytest.raises(ValueError):
            helper_config.get_number_val("RAG_TOP_K", default=3)

    def test_number_minimum(self, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_BATCH_SIZE", "0")

        with pytest.raises(ValueError, match=">= 1"):
            helper_config.get_number_val("EMBED_BATCH_SIZE", default=10, minimum=1)

    @pytest.mark.parametrize("raw, expected", [("true", True), ("YES", True), ("1", True), ("off", False), ("0", False)])
    def test_bools(self, helper_config, monkeypatch, raw, expected):
        monkeypatch.setenv("EMBED_NORMALIZE", raw)

        assert helper_config.get_bool_val("EMBED_NORMALIZE", default=True) is expected

    def test_invalid_bool(self, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_NORMALIZE", "maybe")

        with pytest.raises(ValueError):
            helper_config.get_bool_val("EMBED_NORMALIZE", default=True)

    def test_list(self, helper_config, monkeypatch):
        monkeypatch.setenv("APP_CORS_ORIGINS", "[http://a.local, http://b.local]")

        assert helper_config.get_list_val("APP_CORS_ORIGINS", default=["*"]) == ["http://a.local", "http://b.local"]

    def test_list_default_and_format(self, helper_config, monkeypatch):
        assert helper_config.get_list_val("APP_CORS_ORIGINS", default=["*"]) == ["*"]

        monkeypatch.setenv("APP_CORS_ORIGINS", "http://a.local")
        with pytest.raises(ValueError):
            helper_config.get_list_val("APP_CORS_ORIGINS", default=["*"])

    def test_typed_list(self, helper_config, monkeypatch):
        monkeypatch.setenv("APP_PORTS", "[80,443]")

        assert helper_config.get_list_val("APP_PORTS", element_type=int) == [80, 443]

    def test_describe_masks_secrets(self, helper_config, monkeypatch):
        monkeypatch.setenv("APP_API_KEY", "super-secret")
        monkeypatch.setenv("EMBED_MODEL", "BAAI/bge-small-en-v1.5")

        described = helper_config.describe(["APP_API_KEY", "EMBED_MODEL", "LLM_ENGINE"])

        assert described == {"APP_API_KEY": "***", "EMBED_MODEL": "BAAI/bge-small-en-v1.5"}

    def test_default_logger(self):
        assert HelperConfig().get_logger().name == "grounded_rag"


class TestLogging:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Authorization: Bearer abc.def-123", "Authorization: Bearer ***"),
            ('{"api_key": "xyz"}', '{"api_key": "***"}'),
            ("token=abc123 rest", "token=*** rest"),
            ("key hf_abcdefghijkl leaked", "key hf_*** leaked"),
            ("max_tokens=1024", "max_tokens=1024"),
        ],
    )
    def test_redact_secrets(self, message, expected):
        assert redact_secrets(message) == expected

    def test_filter_rewrites_record(self):
        record = logging.LogRecord("grounded_rag", logging.ERROR, __file__, 1, "Backend said: %s", ("Bearer sk-12345678",), None)

        assert SecretRedactingFilter().filter(record) is True
        assert record.getMessage() == "Backend said: Bearer ***"

    def test_formatter_marks_errors(self):
        formatter = TimezoneFormatter("UTC", "%(levelname)s %(message)s")
        record = logging.LogRecord("grounded_rag", logging.ERROR, __file__, 1, "boom", (), None)

        assert formatter.format(record) == "ERROR ⛔ boom"

    def test_setup_logging_writes_file(self, tmp_path):
        logger = setup_logging(level="debug", log_dir=str(tmp_path), tz_name="UTC")
        logger.info("hello %s", "file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logger.name == "grounded_rag"
        assert "hello file" in (tmp_path / "app.log").read_text(encoding="utf-8")

    def test_setup_logging_without_file(self):
        setup_logging(level="info", log_dir="", tz_name="UTC")

        assert not any(isinstance(handler, logging.FileHandler) for handler in logging.getLogger().handlers)
