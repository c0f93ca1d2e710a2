"""
Tests for optional Langfuse tracing
"""

from infrastructure.external.langfuse_client import LangfuseClient


class TestLangfuseClient:

    def test_disabled_without_keys(self, config):
        config.logging.enable_langfuse_tracing = True
        config.api.langfuse_secret_key = ""
        config.api.langfuse_public_key = ""
        client = LangfuseClient(config=config)

        assert client.is_enabled() is False
        assert client.get_client() is None
        assert client.get_callback_handler() is None

    def test_disabled_by_setting(self, config):
        config.api.langfuse_secret_key = "sk-test"
        config.api.langfuse_public_key = "pk-test"
        config.logging.enable_langfuse_tracing = False

        assert LangfuseClient(config=config).is_enabled() is False

    def test_trace_metadata_groups_by_session(self, config):
        metadata = LangfuseClient(config=config).trace_metadata("s1", "rashi")

        assert metadata == {"langfuse_session_id": "s1", "langfuse_tags": ["persona:rashi"]}
        assert LangfuseClient(config=config).trace_metadata() == {}
