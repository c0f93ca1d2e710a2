"""
Langfuse client adapter.
Optional tracing of LLM calls, grouped per chat session. Missing keys mean no tracing.
"""

from langfuse import Langfuse
from langfuse.langchain import CallbackHandler
from typing import Any, Dict, Optional

from infrastructure.config.settings import get_config
from infrastructure.monitoring.logging_service import get_logger


class LangfuseClient:
    """
    Adapter for Langfuse observability.
    """

    def __init__(self, config=None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self._client = None
        self._callback_handler = None

    def is_enabled(self) -> bool:
        """Tracing is on only when requested and both keys are present"""
        langfuse_config = self.config.get_langfuse_config()
        return bool(
            self.config.logging.enable_langfuse_tracing
            and langfuse_config["secret_key"]
            and langfuse_config["public_key"]
        )

    def get_client(self) -> Optional[Langfuse]:
        """
        Get configured Langfuse client

        Returns:
            Optional[Langfuse]: Configured client or None if not available
        """
        if self._client is None:
            if not self.is_enabled():
                self.logger.debug("Langfuse tracing disabled or keys not configured")
                return None

            langfuse_config = self.config.get_langfuse_config()
            try:
                self._client = Langfuse(
                    secret_key=langfuse_config["secret_key"],
                    public_key=langfuse_config["public_key"],
                    host=langfuse_config["host"]
                )
                self.logger.info("Langfuse client initialized successfully")
            except Exception as e:
                # Tracing must never take the chat path down with it
                self.logger.warning(f"Failed to initialize Langfuse client: {e}")
                return None

        return self._client

    def get_callback_handler(self) -> Optional[CallbackHandler]:
        """
        Get Langfuse callback handler for LangChain integration

        Returns:
            Optional[CallbackHandler]: Callback handler or None if not available
        """
        if self._callback_handler is None:
            if self.get_client() is None:
                return None
            try:
                self._callback_handler = CallbackHandler()
                self.logger.debug("Langfuse callback handler created")
            except Exception as e:
                self.logger.warning(f"Failed to create Langfuse callback handler: {e}")
                return None

        return self._callback_handler

    def trace_metadata(self, session_id: Optional[str] = None, persona_id: Optional[str] = None) -> Dict[str, Any]:
        """LangChain run metadata that files a model call under its chat session"""
        metadata: Dict[str, Any] = {}
        if session_id:
            metadata["langfuse_session_id"] = session_id
        if persona_id:
            metadata["langfuse_tags"] = [f"persona:{persona_id}"]
        return metadata


# Global client instance
_langfuse_client: Optional[LangfuseClient] = None


def get_langfuse_client() -> LangfuseClient:
    """Get the global Langfuse client instance"""
    global _langfuse_client
    if _langfuse_client is None:
        _langfuse_client = LangfuseClient()
    return _langfuse_client
