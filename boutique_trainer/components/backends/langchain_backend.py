import logging
import os
from typing import Dict, List, Optional, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..errors import LLMRequestError

logger = logging.getLogger(__name__)


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


class LangChainBackend:
    """Chat completions through LangChain's ChatOpenAI against any OpenAI-compatible base URL."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_sec: Optional[float] = None,
    ):
        self.model_name = model_name or os.getenv("LLM_MODEL", "moonshot-v1-128k")
        self.base_url = base_url or os.getenv("LLM_BASE_URL", "https://api.moonshot.cn/v1")
        self.api_key = (api_key if api_key is not None else os.getenv("LLM_API_KEY", "")).strip()
        self.timeout_sec = float(timeout_sec or os.getenv("LLM_TIMEOUT_SEC", "60"))
        # one client per (model, temperature)
        self._clients: Dict[Tuple[str, float], ChatOpenAI] = {}

        if not self.api_key:
            logger.warning("LangChainBackend: LLM_API_KEY not set. LLM will not work.")

    def _client(self, model: str, temperature: float) -> ChatOpenAI:
        key = (model, temperature)
        if key not in self._clients:
            logger.debug(f"LangChainBackend: Initializing ChatOpenAI model={model} temperature={temperature}")
            self._clients[key] = ChatOpenAI(
                model=model,
                api_key=self.api_key,
                base_url=self.base_url,
                temperature=temperature,
                timeout=self.timeout_sec,
            )
        return self._clients[key]

    async def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.8,
        model: Optional[str] = None,
    ) -> Optional[str]:
        if not self.api_key:
            raise LLMRequestError("LLM_API_KEY is not set; put it into .env or export it before starting the service")

        llm = self._client(model or self.model_name, temperature)
        try:
            result = await llm.ainvoke(to_langchain_messages(messages))
        except Exception as e:
            # openai / httpx errors surface here with provider-specific types
            logger.error(f"LangChainBackend: Completion failed: {e}")
            raise LLMRequestError(f"Completion request failed: {e}") from e
        return result.content or None
