"""LLM module for AI/ML integrations."""

from cinerec.llm.adapter import LLMAdapter, LLMError, LLMRateLimitError
from cinerec.llm.prompts import SYSTEM_PROMPT, build_prompt

__all__ = ["LLMAdapter", "LLMError", "LLMRateLimitError", "SYSTEM_PROMPT", "build_prompt"]
