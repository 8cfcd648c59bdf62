"""Prompt template for pull request review.

This module defines the single review prompt sent to the analyzer and
the helpers that fill it in from a diff and its analysis context.
"""

from pydantic import BaseModel, ConfigDict, Field

from core.review.models import AnalysisContext


class PromptTemplate(BaseModel):
    """A prompt template for LLM queries.

    Attributes:
        system_prompt: System message for the LLM.
        user_template: Template for the user message with placeholders.
        max_diff_chars: Diff text beyond this length is truncated.
    """

    model_config = ConfigDict(frozen=True)

    system_prompt: str = Field(..., description="System prompt")
    user_template: str = Field(..., description="User message template")
    max_diff_chars: int = Field(default=60_000, ge=1, description="Max diff characters")

    def format_user_message(self, diff: str, header: str = "") -> str:
        """Format the user message with provided values.

        Args:
            diff: Diff text to review.
            header: Pull request and file details placed before the diff.

        Returns:
            Formatted user message.
        """
        return self.user_template.format(
            header=header,
            diff=truncate_diff(diff, self.max_diff_chars),
        )


# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT_REVIEW = """You are an expert code reviewer with deep knowledge of software engineering best practices, security, and code quality. Your role is to provide constructive, actionable feedback on code changes.

Guidelines for your reviews:
- Be specific and reference exact line numbers when possible
- Prioritize issues by severity (critical > warning > suggestion > info)
- Explain why something is an issue, not just what the issue is
- Provide concrete suggestions for improvement when possible
- Focus on significant issues rather than style preferences
- When several files are shown, name the file each comment refers to"""


# =============================================================================
# User Template
# =============================================================================

USER_TEMPLATE_REVIEW = """Please review the following code changes and provide detailed feedback.

{header}
## Changes:
```diff
{diff}
```

## Review Instructions:
Respond with a single JSON object in the following format:

```json
{{
  "summary": "Brief summary of the changes and overall assessment",
  "comments": [
    {{
      "line": <line_number>,
      "severity": "critical|warning|suggestion|info",
      "category": "security|performance|maintainability|correctness|style",
      "comment": "Description of the issue or suggestion",
      "suggestion": "Optional: suggested fix or improvement"
    }}
  ],
  "approval": "approve|request_changes|comment",
  "overallScore": <1-10>
}}
```

Focus on:
1. Correctness and potential bugs
2. Security vulnerabilities
3. Performance issues
4. Code maintainability and readability"""


REVIEW_TEMPLATE = PromptTemplate(
    system_prompt=SYSTEM_PROMPT_REVIEW,
    user_template=USER_TEMPLATE_REVIEW,
)


LANGUAGE_EXTENSIONS = {
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".jsx": "javascript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".rb": "ruby",
    ".php": "php",
    ".cpp": "cpp",
    ".c": "c",
    ".cs": "csharp",
}

TRUNCATION_MARKER = "\n... (diff truncated)"


def detect_language(filename: str) -> str | None:
    """Detect programming language from filename."""
    for ext, lang in LANGUAGE_EXTENSIONS.items():
        if filename.endswith(ext):
            return lang
    return None


def truncate_diff(diff: str, max_chars: int) -> str:
    """Cut a diff to at most ``max_chars`` characters, on a line boundary.

    Args:
        diff: Diff text.
        max_chars: Character limit.

    Returns:
        The diff, or its head followed by a truncation marker.
    """
    if len(diff) <= max_chars:
        return diff

    head = diff[:max_chars]
    cut = head.rfind("\n")
    if cut > 0:
        head = head[:cut]
    return head + TRUNCATION_MARKER


def build_review_prompt(
    diff: str,
    context: AnalysisContext,
    template: PromptTemplate = REVIEW_TEMPLATE,
) -> tuple[str, str]:
    """Build system and user messages for reviewing a diff.

    Args:
        diff: Diff text to review.
        context: Pull request and file details.
        template: Prompt template to fill.

    Returns:
        Tuple of (system, user) messages.
    """
    lines: list[str] = []
    if context.pr_title:
        lines.append(f"## Pull Request: {context.pr_title}\n")
    if context.pr_description:
        lines.append(f"## Description:\n{context.pr_description}\n")
    if context.file_path:
        lines.append(f"## File: {context.file_path}")
        language = detect_language(context.file_path)
        if language:
            lines.append(f"## Language: {language}")

    header = "\n".join(lines)
    return template.system_prompt, template.format_user_message(diff=diff, header=header)
