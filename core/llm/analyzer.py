"""Claude-backed review analyzer.

This module provides the ClaudeAnalyzer, which sends a diff to the LLM
with the review prompt and parses the JSON verdict into an
AnalysisResult.
"""

import json
import re
import time
from typing import Any

import structlog

from core.review.capabilities import Analyzer, AnalyzerError
from core.review.models import AnalysisComment, AnalysisContext, AnalysisResult, Approval

from .client import LLMClient, LLMClientError
from .prompts import REVIEW_TEMPLATE, PromptTemplate, build_review_prompt

logger = structlog.get_logger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
JSON_OBJECT_PATTERN = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")

DEFAULT_SCORE = 5


def extract_json(text: str) -> str:
    """Extract a JSON document from text that may wrap it in markdown.

    Args:
        text: Raw model output.

    Returns:
        The fenced block contents, else the outermost object or array,
        else the stripped text.
    """
    match = CODE_BLOCK_PATTERN.search(text)
    if match:
        return match.group(1).strip()

    match = JSON_OBJECT_PATTERN.search(text)
    if match:
        return match.group(1)

    return text.strip()


def clamp_score(value: Any) -> int:
    """Clamp a reported score to 1..10; missing or non-numeric gives 5."""
    try:
        score = int(value)
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if score == 0:
        return DEFAULT_SCORE
    return min(10, max(1, score))


class ClaudeAnalyzer(Analyzer):
    """Analyzer that asks Claude for a JSON review verdict."""

    def __init__(
        self,
        client: LLMClient,
        template: PromptTemplate = REVIEW_TEMPLATE,
    ) -> None:
        """Initialize the analyzer.

        Args:
            client: LLM client used for completions.
            template: Review prompt template.
        """
        self._client = client
        self._template = template
        self._logger = logger.bind(component="claude_analyzer")

    async def submit(self, diff_text: str, context: AnalysisContext) -> AnalysisResult:
        """Analyze a diff.

        Args:
            diff_text: Patch text to review.
            context: File and pull request context.

        Returns:
            AnalysisResult.

        Raises:
            AnalyzerError: If the completion fails or cannot be parsed.
        """
        start_time = time.perf_counter()
        system, user = build_review_prompt(diff_text, context, self._template)

        try:
            response = await self._client.complete(system, user)
        except LLMClientError as e:
            raise AnalyzerError(str(e)) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        result = self.parse_response(response.content, context, response.model, duration_ms)

        self._logger.info(
            "analysis_completed",
            file_path=context.file_path,
            approval=result.approval,
            score=result.score,
            comments=len(result.comments),
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        return result

    def parse_response(
        self,
        content: str,
        context: AnalysisContext,
        model: str | None = None,
        duration_ms: float = 0.0,
    ) -> AnalysisResult:
        """Parse model output into an AnalysisResult.

        Args:
            content: Raw model output.
            context: Context the diff was submitted with.
            model: Model that produced the output.
            duration_ms: Time spent on the completion.

        Returns:
            AnalysisResult.

        Raises:
            AnalyzerError: If no JSON object can be parsed.
        """
        raw = extract_json(content)
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise AnalyzerError(f"Failed to parse AI response as JSON: {raw[:200]}...") from e

        if not isinstance(parsed, dict):
            raise AnalyzerError("Failed to parse AI response: expected a JSON object")

        comments = [
            self._parse_comment(item, context)
            for item in parsed.get("comments") or []
            if isinstance(item, dict)
        ]
        approval = str(parsed.get("approval") or Approval.COMMENT.value).lower()

        return AnalysisResult(
            summary=parsed.get("summary") or "No summary provided",
            comments=comments,
            approval=approval,
            score=clamp_score(parsed.get("overallScore")),
            model=model,
            duration_ms=duration_ms,
        )

    def _parse_comment(self, item: dict[str, Any], context: AnalysisContext) -> AnalysisComment:
        try:
            line = int(item.get("line") or 0)
        except (TypeError, ValueError):
            line = 0

        return AnalysisComment(
            line=line,
            severity=str(item.get("severity") or "info"),
            category=str(item.get("category") or "correctness").lower(),
            text=str(item.get("comment") or ""),
            suggestion=item.get("suggestion") or None,
            file_path=context.file_path,
        )
