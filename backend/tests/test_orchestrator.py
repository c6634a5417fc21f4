"""Tests for the pipeline orchestrator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from prompt_refinery.errors import PerceptionError, RefinementError, RoutingError, ValidationError
from prompt_refinery.services.normalization_service import NormalizationService
from prompt_refinery.services.orchestrator import (
    FinalResult,
    PipelineOrchestrator,
    PipelineRequest,
    generate_pipeline_id,
)
from prompt_refinery.services.perception import Modality, PerceptionUnit, TextPerception
from prompt_refinery.services.refinement import RefinementPipeline, StageExecutor
from prompt_refinery.services.validation_service import ValidationService
from prompt_refinery.utils.call_tracker import CallTracker

from conftest import ScriptedClient


def _adapter(process=None, health=None):
    adapter = MagicMock()
    adapter.process = AsyncMock(side_effect=process)
    adapter.health_check = AsyncMock(return_value=health or {'status': 'healthy'})
    return adapter


def _build(responses, image_adapter=None, document_adapter=None, text_adapter=None):
    client = ScriptedClient(responses)
    orchestrator = PipelineOrchestrator(
        text_perception=text_adapter or TextPerception(),
        image_perception=image_adapter or _adapter(),
        document_perception=document_adapter or _adapter(),
        normalizer=NormalizationService(),
        refinement_pipeline=RefinementPipeline(StageExecutor(client), min_confidence=0.6),
        validation_service=ValidationService(min_prompt_length=10, max_prompt_length=5000, max_documents=5),
        call_tracker=CallTracker()
    )
    return orchestrator, client


def _unreachable_image(url):
    raise PerceptionError("Failed to process image", sublayer="image-perception", details={'image_url': url})


class TestExecutePipeline:
    """End-to-end orchestration with a scripted model."""

    @pytest.mark.asyncio
    async def test_single_text_happy_path(self, happy_path_responses):
        orchestrator, client = _build(happy_path_responses)

        result = await orchestrator.execute_pipeline(
            PipelineRequest(text_inputs=["Write a function to sort a list"])
        )

        assert isinstance(result, FinalResult)
        assert result.success is True
        assert result.rejected is False
        assert result.refined_prompt
        assert result.details['intent']['domain'] == "software development"
        assert result.details['improvements'] == ["Specified language", "Specified order"]
        assert result.details['recommendations'] == ["Mention expected complexity"]
        assert set(result.details['validation_results']) == {
            'clarity', 'completeness', 'actionability', 'specificity', 'coherence'
        }
        assert 0.0 < result.confidence['overall_confidence'] <= 1.0
        assert "[Direct Text Input]" in client.calls[0]['messages'][1]['content']

        metadata = result.metadata
        assert metadata['perception_layer']['input_count'] == 1
        assert metadata['perception_layer']['failed'] == 0
        assert metadata['normalization_layer']['section_count'] == 1
        assert set(metadata['refinement_layer']['stages']) == {
            'relevance_check', 'intent_analysis', 'prompt_refinement', 'validation'
        }

    @pytest.mark.asyncio
    async def test_partial_perception_failure(self, happy_path_responses):
        orchestrator, client = _build(happy_path_responses, image_adapter=_adapter(_unreachable_image))

        result = await orchestrator.execute_pipeline(PipelineRequest(
            text_inputs=["First text input here", "Second text input here", "Third text input here"],
            image_urls=["https://images.example.com/missing.png"]
        ))

        perception = result.metadata['perception_layer']
        assert perception['succeeded'] == 3
        assert perception['failed'] == 1
        assert perception['failures'] == [
            {'modality': 'image', 'index': 0, 'message': 'Failed to process image'}
        ]
        assert result.metadata['normalization_layer']['input_type_counts']['image'] == 0
        canonical = client.calls[0]['messages'][1]['content']
        assert "Visual Content Descriptions" not in canonical
        assert result.success is True

    @pytest.mark.asyncio
    async def test_all_perception_failures_raise_routing_error(self):
        orchestrator, client = _build([], image_adapter=_adapter(_unreachable_image))

        with pytest.raises(RoutingError) as exc_info:
            await orchestrator.execute_pipeline(PipelineRequest(
                image_urls=["https://a.example.com/1.png", "https://a.example.com/2.png"]
            ))

        assert len(exc_info.value.details['errors']) == 2
        assert exc_info.value.status_code == 400
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_units_keep_input_order_not_completion_order(self, happy_path_responses):
        async def slow_first(text):
            # The first input finishes last
            await asyncio.sleep(0.05 if text.startswith("first") else 0)
            return PerceptionUnit(Modality.TEXT, text, 'direct-input', 1.0)

        orchestrator, client = _build(happy_path_responses, text_adapter=_adapter(slow_first))

        await orchestrator.execute_pipeline(PipelineRequest(
            text_inputs=["first input text", "second input text"]
        ))

        canonical = client.calls[0]['messages'][1]['content']
        assert canonical.index("first input text") < canonical.index("second input text")

    @pytest.mark.asyncio
    async def test_rejection_is_data_not_an_error(self, stage_responses):
        orchestrator, client = _build([
            stage_responses.relevance(is_relevant=False, score=0.0, reason="Nonsense input")
        ])

        result = await orchestrator.execute_pipeline(PipelineRequest(text_inputs=["asdf qwer zxcv"]))

        assert result.rejected is True
        assert result.success is False
        assert result.rejection_reason == "Nonsense input"
        assert result.refined_prompt is None
        assert result.details['intent'] is None
        assert result.confidence['overall_confidence'] == 0.0
        assert result.metadata['refinement_layer']['stages']['intent_analysis'] == 0
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_invalid_request_fails_before_perception(self):
        image_adapter = _adapter()
        orchestrator, _ = _build([], image_adapter=image_adapter)

        with pytest.raises(ValidationError, match="Image URL 1"):
            await orchestrator.execute_pipeline(PipelineRequest(image_urls=["http://insecure.example.com/a.png"]))

        image_adapter.process.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_request(self):
        orchestrator, _ = _build([])
        with pytest.raises(ValidationError, match="No inputs provided"):
            await orchestrator.execute_pipeline(PipelineRequest())

    @pytest.mark.asyncio
    async def test_refinement_failure_propagates(self, stage_responses, rate_limit_error):
        orchestrator, _ = _build([stage_responses.relevance(), rate_limit_error])

        with pytest.raises(RefinementError) as exc_info:
            await orchestrator.execute_pipeline(PipelineRequest(text_inputs=["Write a function to sort a list"]))

        assert exc_info.value.rate_limited is True

    @pytest.mark.asyncio
    async def test_cancellation_is_not_downgraded(self):
        async def cancelled(url):
            raise asyncio.CancelledError()

        orchestrator, _ = _build([], image_adapter=_adapter(cancelled))

        with pytest.raises(asyncio.CancelledError):
            await orchestrator.execute_pipeline(PipelineRequest(
                text_inputs=["Write a function to sort a list"],
                image_urls=["https://a.example.com/1.png"]
            ))


class TestHealthStatus:

    @pytest.mark.asyncio
    async def test_all_healthy_is_operational(self):
        orchestrator, _ = _build([])

        status = await orchestrator.get_health_status()

        assert status['status'] == 'operational'
        assert set(status['layers']) == {'perception', 'normalization', 'refinement'}
        assert set(status['layers']['perception']) == {'text', 'image', 'document'}
        assert 'api_calls' in status
        assert 'timestamp' in status

    @pytest.mark.asyncio
    async def test_unhealthy_layer_degrades(self):
        image_adapter = _adapter(health={'status': 'unhealthy', 'error': 'API key not configured'})
        orchestrator, _ = _build([], image_adapter=image_adapter)

        status = await orchestrator.get_health_status()

        assert status['status'] == 'degraded'
        assert status['layers']['perception']['image']['status'] == 'unhealthy'

    @pytest.mark.asyncio
    async def test_raising_health_check_reported_unhealthy(self):
        document_adapter = _adapter()
        document_adapter.health_check = AsyncMock(side_effect=RuntimeError("disk gone"))
        orchestrator, _ = _build([], document_adapter=document_adapter)

        status = await orchestrator.get_health_status()

        assert status['status'] == 'degraded'
        assert status['layers']['perception']['document'] == {'status': 'unhealthy', 'error': 'disk gone'}

    @pytest.mark.asyncio
    async def test_per_service_call_windows(self):
        orchestrator, _ = _build([])
        orchestrator.call_tracker.record_call('groq')
        orchestrator.call_tracker.record_call('groq', success=False)

        status = await orchestrator.get_health_status()

        services = status['api_calls']['services']
        assert set(services) == {'groq', 'openrouter', 'textract'}
        assert services['groq']['calls_last_minute'] == 2
        assert services['groq']['failed_calls'] == 1
        assert services['textract']['total_calls'] == 0
        assert status['api_calls']['calls_by_service'] == {'groq': 2}


def test_pipeline_ids_are_unique():
    ids = {generate_pipeline_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(pid.startswith("pipeline_") for pid in ids)
