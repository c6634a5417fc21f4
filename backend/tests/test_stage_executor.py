"""Tests for the stage executor."""

import pytest

from prompt_refinery.errors import RefinementError
from prompt_refinery.services.llm_client import CompletionError, CompletionResult
from prompt_refinery.services.refinement import StageExecutor


class TestRunStage:
    """Tests for StageExecutor.run_stage."""

    @pytest.mark.asyncio
    async def test_returns_parsed_object(self, scripted_client):
        scripted_client.responses = ['Result: {"is_relevant": true, "relevance_score": 0.9}']
        executor = StageExecutor(scripted_client)

        result = await executor.run_stage("system", "user text", "relevance_check")

        assert result == {"is_relevant": True, "relevance_score": 0.9}

    @pytest.mark.asyncio
    async def test_sends_system_and_user_messages(self, scripted_client):
        scripted_client.responses = ['{"ok": true}']
        executor = StageExecutor(scripted_client, temperature=0.3, max_tokens=4096, top_p=0.9)

        await executor.run_stage("SYSTEM PROMPT", "USER MESSAGE", "intent_analysis")

        call = scripted_client.calls[0]
        assert call['messages'] == [
            {"role": "system", "content": "SYSTEM PROMPT"},
            {"role": "user", "content": "USER MESSAGE"}
        ]
        assert call['temperature'] == 0.3
        assert call['max_tokens'] == 4096
        assert call['top_p'] == 0.9

    @pytest.mark.asyncio
    async def test_parse_failure_carries_stage_and_preview(self, scripted_client):
        raw = "I cannot answer in JSON. " * 40
        scripted_client.responses = [raw]
        executor = StageExecutor(scripted_client)

        with pytest.raises(RefinementError) as exc_info:
            await executor.run_stage("system", "user", "validation")

        error = exc_info.value
        assert error.stage == "validation"
        assert error.message == "Failed to parse validation response"
        assert error.details['response_preview'] == raw[:500]
        assert error.details['response_length'] == len(raw)
        assert error.rate_limited is False

    @pytest.mark.asyncio
    async def test_rate_limit_is_flagged(self, scripted_client, rate_limit_error):
        scripted_client.responses = [rate_limit_error]
        executor = StageExecutor(scripted_client)

        with pytest.raises(RefinementError) as exc_info:
            await executor.run_stage("system", "user", "relevance_check")

        error = exc_info.value
        assert error.rate_limited is True
        assert error.status_code == 429
        assert error.details['api_error'] == 'rate_limit'
        # No retry: exactly one call was made
        assert len(scripted_client.calls) == 1

    @pytest.mark.asyncio
    async def test_other_api_errors_are_not_rate_limited(self, scripted_client):
        scripted_client.responses = [CompletionError("groq request timed out after 20s", timed_out=True)]
        executor = StageExecutor(scripted_client)

        with pytest.raises(RefinementError) as exc_info:
            await executor.run_stage("system", "user", "intent_analysis")

        error = exc_info.value
        assert error.rate_limited is False
        assert error.status_code == 500
        assert error.details['timed_out'] is True
        assert error.message.startswith("LLM API call failed")

    @pytest.mark.asyncio
    async def test_empty_content(self, scripted_client):
        scripted_client.responses = [CompletionResult(content="   ", finish_reason="stop")]
        executor = StageExecutor(scripted_client)

        with pytest.raises(RefinementError, match="Empty response"):
            await executor.run_stage("system", "user", "prompt_refinement")
