"""
OpenAI client adapter for the application.
Wraps ChatOpenAI so the response generator only sees "composed input in, text out".
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from infrastructure.config.settings import get_config
from infrastructure.external.langfuse_client import get_langfuse_client
from infrastructure.monitoring.logging_service import get_logger


@dataclass
class LLMCompletion:
    """Text and token usage of one model call"""
    output_text: str
    usage: Dict[str, Any] = field(default_factory=dict)
    model: str = ""


class OpenAIClient:
    """
    Adapter for the OpenAI chat model.

    Retries are disabled on the underlying client; the resilience layer owns
    retry policy so attempts are counted by the circuit breaker.
    """

    def __init__(self, config=None, langfuse_client=None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()
        self._langfuse_client = langfuse_client
        self._chat_client: Optional[ChatOpenAI] = None

    def get_chat_client(self) -> ChatOpenAI:
        """
        Get configured ChatOpenAI client

        Returns:
            ChatOpenAI: Configured chat client
        """
        if self._chat_client is None:
            api_key = self.config.api.openai_api_key
            if not api_key:
                raise ValueError("OpenAI API key not configured")

            self._chat_client = ChatOpenAI(
                model=self.config.llm.model_name,
                temperature=self.config.llm.temperature,
                max_tokens=self.config.llm.max_tokens,
                api_key=api_key,
                timeout=self.config.llm.timeout_seconds,
                max_retries=0
            )
            self.logger.info(f"OpenAI chat client initialized: {self.config.llm.model_name}")

        return self._chat_client

    @property
    def langfuse(self):
        return self._langfuse_client or get_langfuse_client()

    def _run_config(self, session_id: Optional[str], persona_id: Optional[str]) -> Dict[str, Any]:
        handler = self.langfuse.get_callback_handler()
        run_config: Dict[str, Any] = {"callbacks": [handler] if handler is not None else []}
        metadata = self.langfuse.trace_metadata(session_id, persona_id) if handler is not None else {}
        if metadata:
            run_config["metadata"] = metadata
        return run_config

    async def complete(self, prompt: str, session_id: Optional[str] = None,
                       persona_id: Optional[str] = None) -> LLMCompletion:
        """
        Send one composed input to the model

        ``session_id`` and ``persona_id`` only label the trace when tracing is on.

        Raises:
            asyncio.TimeoutError: when the call exceeds the configured timeout
            openai.OpenAIError subclasses: provider failures, unchanged
        """
        client = self.get_chat_client()
        response = await asyncio.wait_for(
            client.ainvoke([HumanMessage(content=prompt)], config=self._run_config(session_id, persona_id)),
            timeout=self.config.llm.timeout_seconds
        )

        usage = getattr(response, "usage_metadata", None) or {}
        if usage:
            self.logger.debug("Model usage", extra={
                "model": self.config.llm.model_name,
                "tokens_used": usage.get("total_tokens", 0)
            })

        content = response.content if isinstance(response.content, str) else str(response.content)
        return LLMCompletion(output_text=content, usage=dict(usage), model=self.config.llm.model_name)


# Global client instance
_openai_client: Optional[OpenAIClient] = None


def get_openai_client() -> OpenAIClient:
    """Get the global OpenAI client instance"""
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient()
    return _openai_client
