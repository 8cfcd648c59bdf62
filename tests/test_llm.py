"""Tests for the LLM module: client, prompts and analyzer."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from core.llm import (
    REVIEW_TEMPLATE,
    ClaudeAnalyzer,
    ClaudeClient,
    LLMClientError,
    LLMConfig,
    LLMResponse,
    MockClaudeClient,
    PromptTemplate,
    build_review_prompt,
    clamp_score,
    extract_json,
    truncate_diff,
)
from core.llm.prompts import TRUNCATION_MARKER, detect_language
from core.review import AnalysisContext, AnalyzerError

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def review_json() -> str:
    """A well-formed review verdict."""
    return json.dumps(
        {
            "summary": "Adds a cache",
            "comments": [
                {
                    "line": 12,
                    "severity": "warning",
                    "category": "Performance",
                    "comment": "Unbounded cache growth",
                    "suggestion": "Use an LRU",
                }
            ],
            "approval": "REQUEST_CHANGES",
            "overallScore": 6,
        }
    )


@pytest.fixture
def context() -> AnalysisContext:
    """Single-file analysis context."""
    return AnalysisContext(file_path="src/cache.py", pr_title="Add caching", pr_description="Caches lookups")


def claude_reply(text: str) -> dict:
    """A Messages API response body."""
    return {
        "content": [{"type": "text", "text": text}],
        "model": "claude-sonnet-4-20250514",
        "usage": {"input_tokens": 100, "output_tokens": 50},
        "stop_reason": "end_turn",
    }


# =============================================================================
# Prompt Tests
# =============================================================================


class TestPromptTemplate:
    """Tests for PromptTemplate and prompt building."""

    def test_format_user_message(self):
        """Test placeholders are filled."""
        template = PromptTemplate(system_prompt="sys", user_template="{header}|{diff}")
        assert template.format_user_message("+x", header="H") == "H|+x"

    def test_review_template_asks_for_json(self):
        """Test the review prompt names every verdict field."""
        message = REVIEW_TEMPLATE.format_user_message("+x")
        for field in ("summary", "comments", "approval", "overallScore"):
            assert field in message
        assert "```diff\n+x\n```" in message

    def test_build_review_prompt_header(self, context):
        """Test pull request and file details precede the diff."""
        system, user = build_review_prompt("+cache = {}", context)

        assert system == REVIEW_TEMPLATE.system_prompt
        assert "## Pull Request: Add caching" in user
        assert "## Description:\nCaches lookups" in user
        assert "## File: src/cache.py" in user
        assert "## Language: python" in user
        assert user.index("## File:") < user.index("+cache = {}")

    def test_build_review_prompt_without_context(self):
        """Test an empty context adds no header lines."""
        _, user = build_review_prompt("+x", AnalysisContext())
        assert "## Pull Request" not in user
        assert "## File" not in user

    @pytest.mark.parametrize(
        "filename,language",
        [("a.py", "python"), ("b.tsx", "typescript"), ("c.go", "go"), ("README", None)],
    )
    def test_detect_language(self, filename, language):
        """Test language detection from extensions."""
        assert detect_language(filename) == language


class TestTruncateDiff:
    """Tests for truncate_diff."""

    def test_short_diff_unchanged(self):
        """Test diffs under the limit pass through."""
        assert truncate_diff("+a\n+b", 100) == "+a\n+b"

    def test_cut_on_line_boundary(self):
        """Test truncation ends on a complete line."""
        diff = "+first line\n+second line\n+third line"
        truncated = truncate_diff(diff, 20)
        assert truncated == "+first line" + TRUNCATION_MARKER

    def test_template_applies_limit(self):
        """Test the template truncates long diffs."""
        template = PromptTemplate(system_prompt="s", user_template="{diff}", max_diff_chars=10)
        message = template.format_user_message("+aaaa\n+bbbb\n+cccc")
        assert message.endswith(TRUNCATION_MARKER)


# =============================================================================
# Client Tests
# =============================================================================


class TestLLMConfig:
    """Tests for LLMConfig."""

    def test_default_config(self):
        """Test default configuration."""
        config = LLMConfig()
        assert config.model == "claude-sonnet-4-20250514"
        assert config.max_tokens == 4096
        assert config.temperature == 0.0
        assert config.timeout == 120.0


class TestMockClaudeClient:
    """Tests for MockClaudeClient."""

    @pytest.mark.asyncio
    async def test_mock_complete_multiple_calls(self):
        """Test calls cycle through responses."""
        client = MockClaudeClient(responses=["First", "Second"])
        r1 = await client.complete("system", "user")
        r2 = await client.complete("system", "user")
        r3 = await client.complete("system", "user")
        assert [r1.content, r2.content, r3.content] == ["First", "Second", "First"]
        assert r1.model == "mock-model"

    @pytest.mark.asyncio
    async def test_mock_tracks_calls(self):
        """Test that mock tracks and resets calls."""
        client = MockClaudeClient()
        await client.complete("System message", "User message")
        assert client.calls[0]["system"] == "System message"
        assert client.calls[0]["user"] == "User message"

        client.reset()
        assert client.calls == []


class TestClaudeClient:
    """Tests for ClaudeClient."""

    def test_build_payload(self):
        """Test building API payload."""
        client = ClaudeClient("test-api-key")
        payload = client._build_payload(system="System", user="User", max_tokens=2000)
        assert payload["model"] == "claude-sonnet-4-20250514"
        assert payload["system"] == "System"
        assert payload["messages"] == [{"role": "user", "content": "User"}]
        assert payload["max_tokens"] == 2000
        assert "stream" not in payload

    def test_parse_response(self):
        """Test text blocks are joined."""
        client = ClaudeClient("test-api-key")
        data = claude_reply("Response ")
        data["content"].append({"type": "tool_use", "id": "x"})
        data["content"].append({"type": "text", "text": "text"})

        response = client._parse_response(data)

        assert response.content == "Response text"
        assert response.input_tokens == 100
        assert response.output_tokens == 50

    @pytest.mark.asyncio
    async def test_complete_sends_headers(self):
        """Test the request carries the API key and version."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=claude_reply("ok"))

        client = ClaudeClient("test-api-key", transport=httpx.MockTransport(handler))
        response = await client.complete("sys", "usr")
        await client.close()

        assert response.content == "ok"
        assert seen[0].headers["x-api-key"] == "test-api-key"
        assert seen[0].headers["anthropic-version"] == "2023-06-01"
        assert json.loads(seen[0].content)["system"] == "sys"

    @pytest.mark.asyncio
    async def test_complete_api_error(self):
        """Test non-200 responses raise LLMClientError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="bad request")

        client = ClaudeClient("test-api-key", transport=httpx.MockTransport(handler))
        with pytest.raises(LLMClientError, match="400 - bad request"):
            await client.complete("sys", "usr")
        await client.close()

    @pytest.mark.asyncio
    async def test_complete_retries_rate_limit(self):
        """Test 429 responses are retried with backoff."""
        statuses = iter([429, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            if status == 429:
                return httpx.Response(429)
            return httpx.Response(200, json=claude_reply("after wait"))

        client = ClaudeClient("test-api-key", transport=httpx.MockTransport(handler))
        with patch("core.llm.client.asyncio.sleep", new=AsyncMock()) as sleep:
            response = await client.complete("sys", "usr")
        await client.close()

        assert response.content == "after wait"
        sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_complete_rate_limit_exhausted(self):
        """Test persistent rate limiting gives up."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429)

        client = ClaudeClient(
            "test-api-key", LLMConfig(max_retries=2), transport=httpx.MockTransport(handler)
        )
        with patch("core.llm.client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(LLMClientError, match="Max retries exceeded"):
                await client.complete("sys", "usr")
        await client.close()

    @pytest.mark.asyncio
    async def test_complete_network_error(self):
        """Test transport failures raise LLMClientError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = ClaudeClient("test-api-key", transport=httpx.MockTransport(handler))
        with pytest.raises(LLMClientError, match="network error"):
            await client.complete("sys", "usr")
        await client.close()


# =============================================================================
# Analyzer Tests
# =============================================================================


class TestExtractJson:
    """Tests for extract_json."""

    def test_fenced_block(self):
        """Test a ```json fence is preferred."""
        text = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert extract_json(text) == '{"a": 1}'

    def test_bare_fence(self):
        """Test an unlabeled fence."""
        assert extract_json('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_embedded_object(self):
        """Test the outermost object is found in prose."""
        assert extract_json('Result: {"a": {"b": 2}} done') == '{"a": {"b": 2}}'

    def test_plain_text(self):
        """Test text without JSON is returned stripped."""
        assert extract_json("  no json here  ") == "no json here"


class TestClampScore:
    """Tests for clamp_score."""

    @pytest.mark.parametrize(
        "value,expected",
        [(7, 7), (0, 5), (None, 5), ("high", 5), (15, 10), (-3, 1), ("8", 8)],
    )
    def test_clamp(self, value, expected):
        """Test clamping and defaults."""
        assert clamp_score(value) == expected


class TestClaudeAnalyzer:
    """Tests for ClaudeAnalyzer."""

    @pytest.mark.asyncio
    async def test_submit(self, review_json, context):
        """Test a full verdict is parsed."""
        client = MockClaudeClient(responses=[f"```json\n{review_json}\n```"])
        analyzer = ClaudeAnalyzer(client)

        result = await analyzer.submit("+cache = {}", context)

        assert result.summary == "Adds a cache"
        assert result.approval == "request_changes"
        assert result.score == 6
        assert result.model == "mock-model"
        comment = result.comments[0]
        assert comment.line == 12
        assert comment.severity == "warning"
        assert comment.category == "performance"
        assert comment.text == "Unbounded cache growth"
        assert comment.suggestion == "Use an LRU"
        assert comment.file_path == "src/cache.py"
        assert "## File: src/cache.py" in client.calls[0]["user"]

    def test_defaults(self):
        """Test missing fields fall back to defaults."""
        analyzer = ClaudeAnalyzer(MockClaudeClient())

        result = analyzer.parse_response('{"comments": [{"comment": "x"}, "junk"]}', AnalysisContext())

        assert result.summary == "No summary provided"
        assert result.approval == "comment"
        assert result.score == 5
        assert len(result.comments) == 1
        comment = result.comments[0]
        assert comment.line == 0
        assert comment.severity == "info"
        assert comment.category == "correctness"
        assert comment.file_path is None

    def test_invalid_json(self):
        """Test unparseable output raises AnalyzerError."""
        analyzer = ClaudeAnalyzer(MockClaudeClient())
        with pytest.raises(AnalyzerError, match="Failed to parse AI response as JSON"):
            analyzer.parse_response("I could not review this.", AnalysisContext())

    def test_non_object_json(self):
        """Test a JSON array is rejected."""
        analyzer = ClaudeAnalyzer(MockClaudeClient())
        with pytest.raises(AnalyzerError, match="expected a JSON object"):
            analyzer.parse_response("[1, 2]", AnalysisContext())

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self, context):
        """Test client failures surface as AnalyzerError."""
        client = MockClaudeClient()
        client.complete = AsyncMock(side_effect=LLMClientError("Claude API timeout"))
        analyzer = ClaudeAnalyzer(client)

        with pytest.raises(AnalyzerError, match="Claude API timeout"):
            await analyzer.submit("+x", context)

    def test_response_model(self):
        """Test LLMResponse defaults."""
        response = LLMResponse(content="x", model="m")
        assert response.stop_reason == "end_turn"
        assert response.input_tokens == 0
