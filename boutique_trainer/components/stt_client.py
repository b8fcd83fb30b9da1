import httpx
import logging
import os
import time
from typing import Optional

logger = logging.getLogger(__name__)

STT_SERVICE_URL = os.getenv("STT_SERVICE_URL", "http://127.0.0.1:8000")
STT_TIMEOUT_SEC = float(os.getenv("STT_TIMEOUT_SEC", "120"))


def strip_data_url(audio_data: str) -> str:
    """Drop a "data:audio/webm;base64," style prefix, keeping only the base64 payload."""
    if audio_data.startswith("data:") and "," in audio_data:
        return audio_data.split(",", 1)[1]
    return audio_data


class STTClient:
    """HTTP client for the speech-to-text service"""

    def __init__(self, service_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.service_url = (service_url or STT_SERVICE_URL).rstrip("/")

        timeout = httpx.Timeout(STT_TIMEOUT_SEC, connect=10.0)
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def transcribe(self, audio_data: str) -> str:
        """
        Transcribe base64 audio (raw or data-URL) using the STT service.

        Returns the transcription, stripped; empty when no speech was recognised.

        Raises:
            httpx.HTTPError: the service could not be reached or answered with an error
        """
        start = time.time()
        url = f"{self.service_url}/api/transcribe"
        try:
            logger.info(f"STTClient: Sending transcription request to {url}")
            response = await self.client.post(url, json={"audioBase64": strip_data_url(audio_data)})
            response.raise_for_status()
            try:
                result = response.json()
            except ValueError as e:
                raise httpx.DecodingError(f"STT response is not JSON: {e}", request=response.request) from e
            text = result.get("text") if isinstance(result, dict) else None
            if text is None and isinstance(result, dict):
                text = ""
            if not isinstance(text, str):
                raise httpx.DecodingError(f"STT response has no text field: {str(result)[:100]}", request=response.request)
            text = text.strip()
            logger.info(f"STTClient: Received transcription ({len(text)} chars) in {time.time() - start:.3f}s: {text[:100]}")
            return text
        except httpx.HTTPError as e:
            logger.error(f"STTClient: HTTP error during transcription (failed after {time.time() - start:.3f}s): {str(e)}")
            raise

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
