"""
Shared test fixtures for the prompt refinement test suite.

Provides a scripted stand-in for the chat completion client, canned stage
responses and perception unit factories. Nothing here touches the network.
"""

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Union

import pytest

from prompt_refinery.services.llm_client import CompletionError, CompletionResult
from prompt_refinery.services.perception import Modality, PerceptionUnit
from prompt_refinery.services.refinement import RefinementPipeline, StageExecutor


class ScriptedClient:
    """
    Chat completion client replaying canned responses in order.

    Each scripted entry is either raw model text, a CompletionResult, or an
    exception to raise. Calls are recorded for assertions.
    """

    def __init__(self, responses: List[Union[str, CompletionResult, Exception]] = None,
                 model_name: str = "test-model", api_key: str = "test-key"):
        self.responses = list(responses or [])
        self.model_name = model_name
        self.api_key = api_key
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, messages, temperature=0.3, max_tokens=4096, top_p=None):
        self.calls.append({
            'messages': messages,
            'temperature': temperature,
            'max_tokens': max_tokens,
            'top_p': top_p
        })
        if not self.responses:
            raise AssertionError("ScriptedClient ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, CompletionResult):
            return response
        return CompletionResult(content=response, finish_reason='stop', model=self.model_name)

    async def ping(self):
        return {'status': 'healthy', 'model': self.model_name, 'api_status': 'connected'}


# ---------------------------------------------------------------------------
# Stage response fixtures
# ---------------------------------------------------------------------------

def relevance_response(is_relevant=True, score=0.9, reason=None) -> str:
    return json.dumps({
        "is_relevant": is_relevant,
        "relevance_score": score,
        "rejection_reason": reason,
        "content_type": "task-request",
        "recommendation": "proceed" if is_relevant else "reject"
    })


def intent_response(confidence=0.85) -> str:
    return json.dumps({
        "intent": "Write a sorting function",
        "domain": "software development",
        "key_concepts": ["sorting", "lists"],
        "constraints": ["Python"],
        "ambiguities": ["sort order"],
        "confidence": confidence
    })


def refinement_response(prompt="Write a Python function that sorts a list of integers in ascending order.",
                        confidence=0.8) -> str:
    return json.dumps({
        "refined_prompt": prompt,
        "key_improvements": ["Specified language", "Specified order"],
        "assumptions_made": ["Ascending order"],
        "confidence": confidence
    })


def validation_response(is_valid=True, quality=0.9) -> str:
    criterion = {"score": quality, "issues": []}
    return json.dumps({
        "is_valid": is_valid,
        "quality_score": quality,
        "validation_results": {
            "clarity": criterion,
            "completeness": criterion,
            "actionability": criterion,
            "specificity": criterion,
            "coherence": criterion
        },
        "recommendations": ["Mention expected complexity"]
    })


@pytest.fixture
def stage_responses():
    """Builders for raw stage output, keyed by stage."""
    return SimpleNamespace(
        relevance=relevance_response,
        intent=intent_response,
        refinement=refinement_response,
        validation=validation_response
    )


@pytest.fixture
def happy_path_responses():
    """Raw model output for a run that passes every gate."""
    return [
        relevance_response(),
        # Fenced and chatty, as models often answer
        "Here is the analysis:\n```json\n" + intent_response() + "\n```",
        refinement_response(),
        validation_response(),
    ]


@pytest.fixture
def scripted_client():
    return ScriptedClient()


@pytest.fixture
def make_pipeline():
    """Build a RefinementPipeline over a ScriptedClient with the given responses."""
    def _make(responses, min_confidence=0.6):
        client = ScriptedClient(responses)
        return RefinementPipeline(StageExecutor(client), min_confidence=min_confidence), client
    return _make


# ---------------------------------------------------------------------------
# Perception fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_unit():
    """Factory for PerceptionUnits with sensible defaults per modality."""
    def _make(modality=Modality.TEXT, content="Some input text", confidence=1.0,
              processing_time_ms=5, source=None, **details):
        return PerceptionUnit(
            modality=modality,
            content=content,
            source=source or f"{modality.value}-source",
            confidence=confidence,
            processing_time_ms=processing_time_ms,
            details=details
        )
    return _make


@pytest.fixture
def rate_limit_error():
    return CompletionError("groq API error: 429 Too Many Requests", status_code=429)
