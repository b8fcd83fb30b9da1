import logging
import os
from typing import Dict, List, Optional

import httpx
import ollama

from ..errors import LLMRequestError

logger = logging.getLogger(__name__)


class OllamaBackend:
    """
    Adapter for a local Ollama server.
    Useful for running training sessions without a hosted completion API.
    """

    def __init__(self, model_name: Optional[str] = None, base_url: Optional[str] = None):
        self.model_name = model_name or os.getenv("OLLAMA_MODEL", "qwen2:7b-instruct-q4_K_M")
        self.base_url = base_url or os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        self.client = ollama.AsyncClient(host=self.base_url)
        logger.info(f"OllamaBackend: model={self.model_name}, base_url={self.base_url}")

    async def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.8,
        model: Optional[str] = None,
    ) -> Optional[str]:
        try:
            response = await self.client.chat(
                model=model or self.model_name,
                messages=messages,
                options={"temperature": temperature},
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.error(f"OllamaBackend: Chat request failed: {e}")
            raise LLMRequestError(f"Ollama request failed: {e}") from e
        return response.message.content or None
