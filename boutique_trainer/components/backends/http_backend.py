import logging
import os
from typing import Dict, List, Optional

import httpx

from ..errors import LLMRequestError

logger = logging.getLogger(__name__)


class HTTPBackend:
    """
    OpenAI-compatible chat-completions client over plain HTTPS.

    POST {base_url}/chat/completions with a bearer key and
    {model, messages, temperature}; only choices[0].message.content is read.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_name = model_name or os.getenv("LLM_MODEL", "moonshot-v1-128k")
        self.base_url = (base_url or os.getenv("LLM_BASE_URL", "https://api.moonshot.cn/v1")).rstrip("/")
        self.api_key = (api_key if api_key is not None else os.getenv("LLM_API_KEY", "")).strip()
        self.timeout_sec = float(timeout_sec or os.getenv("LLM_TIMEOUT_SEC", "60"))
        self._transport = transport

    async def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.8,
        model: Optional[str] = None,
    ) -> Optional[str]:
        # no request without a credential
        if not self.api_key:
            raise LLMRequestError("LLM_API_KEY is not set; put it into .env or export it before starting the service")

        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model or self.model_name,
            "messages": messages,
            "temperature": temperature,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"HTTPBackend: Request to {url} failed: {e}")
            raise LLMRequestError(f"Completion request failed: {e}") from e
        except ValueError as e:
            logger.error(f"HTTPBackend: Response from {url} is not JSON: {e}")
            raise LLMRequestError("Completion endpoint returned a non-JSON response") from e

        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"HTTPBackend: Response has no choices[0].message.content: {str(data)[:200]}")
            return None
