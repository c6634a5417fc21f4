"""
Stage Executor
==============

Runs one LLM stage: a single chat completion with a fixed system prompt,
followed by JSON recovery of the model's answer. Shared by all four
refinement stages.

Failures surface as RefinementError. A provider rate limit (HTTP 429)
sets ``rate_limited`` on the error; the executor never retries, that
policy belongs to the caller.
"""
import logging
from typing import Any, Dict, Optional

from prompt_refinery.errors import RefinementError
from prompt_refinery.services.llm_client import ChatCompletionClient, CompletionError
from .json_recovery import JSONRecoveryError, extract_json_object

logger = logging.getLogger(__name__)

RESPONSE_PREVIEW_CHARS = 500


class StageExecutor:
    """Issues stage calls against the text-completion model."""

    def __init__(
        self,
        client: ChatCompletionClient,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        top_p: Optional[float] = 0.9
    ):
        """
        Args:
            client: Text-completion client (timeout configured there)
            temperature: Low sampling temperature for consistent JSON
            max_tokens: Output bound, large enough for long refined prompts
            top_p: Nucleus sampling parameter
        """
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.top_p = top_p

    @property
    def model_name(self) -> str:
        return self.client.model_name

    async def run_stage(self, system_prompt: str, user_message: str, stage_name: str) -> Dict[str, Any]:
        """
        Call the model and recover the JSON object from its answer.

        Args:
            system_prompt: Stage-specific system prompt
            user_message: Stage input
            stage_name: Stage identifier, used in errors and logs

        Returns:
            The parsed JSON object

        Raises:
            RefinementError: on API failure, empty output or unrecoverable JSON
        """
        raw = await self._call_model(system_prompt, user_message, stage_name)

        try:
            return extract_json_object(raw)
        except JSONRecoveryError as e:
            logger.error(
                f"[Refinement Layer] Failed to parse JSON response for {stage_name} "
                f"({len(raw)} chars): {e}"
            )
            raise RefinementError(
                f"Failed to parse {stage_name} response",
                stage=stage_name,
                details={
                    'parse_error': str(e),
                    'response_preview': raw[:RESPONSE_PREVIEW_CHARS],
                    'response_length': len(raw)
                }
            ) from e

    async def _call_model(self, system_prompt: str, user_message: str, stage_name: str) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message}
        ]

        try:
            result = await self.client.complete(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                top_p=self.top_p
            )
        except CompletionError as e:
            if e.is_rate_limited:
                raise RefinementError(
                    'Rate limit exceeded, please try again later',
                    stage=stage_name,
                    rate_limited=True
                ) from e
            raise RefinementError(
                f"LLM API call failed: {e.message}",
                stage=stage_name,
                details={'api_error': e.message, 'timed_out': e.timed_out}
            ) from e

        if not result.content or not result.content.strip():
            raise RefinementError('Empty response from LLM API', stage=stage_name)

        return result.content

    async def health_check(self) -> Dict[str, Any]:
        return await self.client.ping()
