"""LLM module for prwatch.

This module provides the Claude API client, the review prompt and the
analyzer that turns a diff into a structured review verdict.
"""

from core.llm.analyzer import ClaudeAnalyzer, clamp_score, extract_json
from core.llm.client import (
    ClaudeClient,
    LLMClient,
    LLMClientError,
    LLMConfig,
    LLMResponse,
    MockClaudeClient,
)
from core.llm.prompts import REVIEW_TEMPLATE, PromptTemplate, build_review_prompt, truncate_diff

__all__ = [
    # Analyzer
    "ClaudeAnalyzer",
    "clamp_score",
    "extract_json",
    # Client
    "ClaudeClient",
    "LLMClient",
    "LLMClientError",
    "LLMConfig",
    "LLMResponse",
    "MockClaudeClient",
    # Prompts
    "PromptTemplate",
    "REVIEW_TEMPLATE",
    "build_review_prompt",
    "truncate_diff",
]
