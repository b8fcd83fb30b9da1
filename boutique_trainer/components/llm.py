from typing import Dict, List, Optional
import logging
import os
import time

from .backends import HTTPBackend, MockBackend

logger = logging.getLogger(__name__)

# LLM provider configuration
# Set LLM_PROVIDER to "http", "langchain", "ollama" or "mock" (default: "http")
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "http").lower().strip()
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.8"))

# Returned in place of a reply when the endpoint answers without any content
MISSING_CONTENT_PLACEHOLDER = "（模型未返回内容）"


class LLM:
    """Single entry point for chat completions; every remote call of a session goes through here."""

    def __init__(self, provider: Optional[str] = None, backend=None, temperature: Optional[float] = None):
        self.provider = (provider or LLM_PROVIDER).lower().strip()
        self.temperature = LLM_TEMPERATURE if temperature is None else temperature

        if backend is not None:
            self.backend = backend
        elif self.provider == "http":
            self.backend = HTTPBackend()
        elif self.provider == "langchain":
            from .backends.langchain_backend import LangChainBackend
            self.backend = LangChainBackend()
        elif self.provider == "ollama":
            from .backends.ollama_backend import OllamaBackend
            self.backend = OllamaBackend()
        elif self.provider == "mock":
            self.backend = MockBackend()
        else:
            raise ValueError(f"LLM: Unknown provider '{self.provider}'. Use 'http', 'langchain', 'ollama' or 'mock'")

        logger.info(f"LLM: Initialized with provider {self.provider}, model {self.model_name}")

    @property
    def model_name(self) -> str:
        return getattr(self.backend, "model_name", "unknown")

    @property
    def api_key_set(self) -> bool:
        return bool(getattr(self.backend, "api_key", "local"))

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Send one chat-completion request and return the raw reply text.

        Args:
            messages: [{"role": "system"|"user"|"assistant", "content": "..."}]
            temperature: overrides the configured temperature
            model: overrides the backend's default model

        Raises:
            LLMRequestError: transport or endpoint failure
        """
        start = time.time()
        logger.info(f"LLM: Sending completion request ({len(messages)} messages, model={model or self.model_name})")
        content = await self.backend.generate(
            messages,
            temperature=self.temperature if temperature is None else temperature,
            model=model,
        )
        elapsed = time.time() - start

        if not content:
            logger.warning(f"LLM: Empty reply after {elapsed:.3f}s, using placeholder")
            return MISSING_CONTENT_PLACEHOLDER

        logger.info(f"LLM: Received reply ({len(content)} chars) in {elapsed:.3f}s")
        return content
