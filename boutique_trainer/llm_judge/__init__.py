from .judge import LLMJudge
from .parser import parse_llm_response

__all__ = ["LLMJudge", "parse_llm_response"]
