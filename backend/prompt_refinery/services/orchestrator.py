"""
Pipeline Orchestrator
=====================

Coordinates one request through every layer:

1. VALIDATION: request shape and limits (fails fast, before any model call)
2. PERCEPTION: one adapter call per input item, all concurrent
3. NORMALIZATION: merge successful units into the canonical text
4. REFINEMENT: four-stage LLM state machine
5. ASSEMBLY: confidence aggregation and per-layer timing

Partial perception failure is tolerated: a single bad image must not sink
a request that also carries usable text. Only when every perception call
fails does the request fail, with a RoutingError.
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from prompt_refinery.config import Config
from prompt_refinery.errors import PipelineError, RoutingError
from prompt_refinery.services.llm_client import ChatCompletionClient
from prompt_refinery.services.normalization_service import CanonicalDocument, NormalizationService
from prompt_refinery.services.perception import (
    DocumentPerception,
    ImagePerception,
    Modality,
    PerceptionAdapter,
    PerceptionUnit,
    TextPerception,
)
from prompt_refinery.services.refinement import (
    PipelineRun,
    RefinementPipeline,
    StageExecutor,
    StageName,
    aggregate,
)
from prompt_refinery.services.textract_service import SERVICE_NAME as TEXTRACT_SERVICE, TextractService
from prompt_refinery.services.validation_service import ValidationService
from prompt_refinery.utils.call_tracker import CallTracker

logger = logging.getLogger(__name__)

TEXT_SERVICE = 'groq'
VISION_SERVICE = 'openrouter'
TRACKED_SERVICES = (TEXT_SERVICE, VISION_SERVICE, TEXTRACT_SERVICE)


@dataclass
class PipelineRequest:
    """Raw inputs for one pipeline run, grouped by modality."""
    text_inputs: List[str] = field(default_factory=list)
    image_urls: List[str] = field(default_factory=list)
    document_paths: List[str] = field(default_factory=list)

    @property
    def input_count(self) -> int:
        return len(self.text_inputs) + len(self.image_urls) + len(self.document_paths)


@dataclass
class PerceptionFailure:
    """One input item whose perception call failed."""
    modality: Modality
    index: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'modality': self.modality.value, 'index': self.index, 'message': self.message}


@dataclass
class PerceptionOutcome:
    """Settled perception fan-out: successes in input order plus failures."""
    units: List[PerceptionUnit]
    failures: List[PerceptionFailure]
    wall_time_ms: int = 0


@dataclass
class FinalResult:
    """Response object for one pipeline run."""
    pipeline_id: str
    success: bool
    rejected: bool
    rejection_reason: Optional[str]
    refined_prompt: Optional[str]
    details: Dict[str, Any]
    confidence: Dict[str, Any]
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pipeline_id': self.pipeline_id,
            'success': self.success,
            'rejected': self.rejected,
            'rejection_reason': self.rejection_reason,
            'refined_prompt': self.refined_prompt,
            'details': self.details,
            'confidence': self.confidence,
            'metadata': self.metadata
        }


class PipelineOrchestrator:
    """
    Runs requests through perception, normalization and refinement.

    All collaborators are constructed once at process start and injected;
    the orchestrator itself holds no per-request state.
    """

    def __init__(
        self,
        text_perception: TextPerception,
        image_perception: ImagePerception,
        document_perception: DocumentPerception,
        normalizer: NormalizationService,
        refinement_pipeline: RefinementPipeline,
        validation_service: ValidationService,
        call_tracker: Optional[CallTracker] = None
    ):
        self.adapters: Dict[Modality, PerceptionAdapter] = {
            Modality.TEXT: text_perception,
            Modality.IMAGE: image_perception,
            Modality.DOCUMENT: document_perception,
        }
        self.normalizer = normalizer
        self.refinement_pipeline = refinement_pipeline
        self.validation_service = validation_service
        self.call_tracker = call_tracker or CallTracker()

    async def execute_pipeline(self, request: PipelineRequest) -> FinalResult:
        """
        Execute the complete multi-modal prompt refinement pipeline.

        Args:
            request: Inputs grouped by modality

        Returns:
            FinalResult; a business rejection is reported with ``rejected=True``

        Raises:
            ValidationError: malformed request
            RoutingError: every perception call failed
            NormalizationError, RefinementError: downstream layer failure
        """
        pipeline_id = generate_pipeline_id()
        start_time = time.time()

        logger.info(
            f"[Pipeline {pipeline_id}] Starting execution (text_inputs={len(request.text_inputs)}, "
            f"image_urls={len(request.image_urls)}, document_paths={len(request.document_paths)})"
        )

        try:
            self.validation_service.validate_pipeline_request(request)

            perception = await self._execute_perception_layer(request, pipeline_id)

            logger.info(f"[Pipeline {pipeline_id}] Executing Normalization Layer")
            canonical = self.normalizer.normalize(perception.units)

            logger.info(f"[Pipeline {pipeline_id}] Executing Refinement Layer")
            run = await self.refinement_pipeline.run(canonical.normalized_text, pipeline_id)

            result = self._assemble_final_result(pipeline_id, perception, canonical, run, start_time)
        except PipelineError as e:
            logger.error(
                f"[Pipeline {pipeline_id}] Failed in {e.layer} layer after "
                f"{int((time.time() - start_time) * 1000)}ms: {e.message}"
            )
            raise

        logger.info(
            f"[Pipeline {pipeline_id}] Completed in {result.metadata['total_processing_time_ms']}ms "
            f"(success={result.success}, rejected={result.rejected})"
        )
        return result

    async def _execute_perception_layer(self, request: PipelineRequest, pipeline_id: str) -> PerceptionOutcome:
        logger.info(f"[Pipeline {pipeline_id}] Executing Perception Layer ({request.input_count} inputs)")
        start_time = time.time()

        jobs: List[Tuple[Modality, int, Any]] = []
        for modality, items in (
            (Modality.TEXT, request.text_inputs),
            (Modality.IMAGE, request.image_urls),
            (Modality.DOCUMENT, request.document_paths),
        ):
            jobs.extend((modality, idx, item) for idx, item in enumerate(items))

        # Results come back positionally, so completion order never reorders units
        settled = await asyncio.gather(
            *(self.adapters[modality].process(item) for modality, _, item in jobs),
            return_exceptions=True
        )

        units: List[PerceptionUnit] = []
        failures: List[PerceptionFailure] = []
        for (modality, idx, _), outcome in zip(jobs, settled):
            if isinstance(outcome, PerceptionUnit):
                units.append(outcome)
            elif isinstance(outcome, Exception):
                message = outcome.message if isinstance(outcome, PipelineError) else str(outcome)
                failures.append(PerceptionFailure(modality, idx, message))
                logger.warning(f"[Pipeline {pipeline_id}] {modality.value} input {idx + 1} failed: {message}")
            else:
                # Cancellation and interpreter exits are never downgraded
                raise outcome

        wall_time_ms = int((time.time() - start_time) * 1000)

        if not units:
            raise RoutingError('All perception processes failed', {
                'errors': [failure.to_dict() for failure in failures]
            })

        if failures:
            logger.warning(
                f"[Pipeline {pipeline_id}] Some perception processes failed "
                f"(successful={len(units)}, failed={len(failures)})"
            )

        logger.info(f"[Pipeline {pipeline_id}] Perception completed in {wall_time_ms}ms")
        return PerceptionOutcome(units=units, failures=failures, wall_time_ms=wall_time_ms)

    def _assemble_final_result(
        self,
        pipeline_id: str,
        perception: PerceptionOutcome,
        canonical: CanonicalDocument,
        run: PipelineRun,
        start_time: float
    ) -> FinalResult:
        aggregate_metadata = canonical.aggregate_metadata
        intent = run.result_of(StageName.INTENT_ANALYSIS)
        refinement = run.result_of(StageName.PROMPT_REFINEMENT)
        validation = run.result_of(StageName.VALIDATION)

        return FinalResult(
            pipeline_id=pipeline_id,
            success=run.success,
            rejected=run.rejected,
            rejection_reason=run.termination_reason,
            refined_prompt=run.refined_prompt,
            details={
                'intent': intent or None,
                'improvements': refinement.get('key_improvements') or [],
                'assumptions': refinement.get('assumptions_made') or [],
                'validation_results': validation.get('validation_results'),
                'recommendations': validation.get('recommendations') or []
            },
            confidence=aggregate(run).to_dict(),
            metadata={
                'total_processing_time_ms': int((time.time() - start_time) * 1000),
                'perception_layer': {
                    'input_count': len(perception.units) + len(perception.failures),
                    'succeeded': len(perception.units),
                    'failed': len(perception.failures),
                    'failures': [failure.to_dict() for failure in perception.failures],
                    'processing_time_ms': aggregate_metadata.total_processing_time_ms,
                    'wall_time_ms': perception.wall_time_ms
                },
                'normalization_layer': {
                    'processing_time_ms': aggregate_metadata.processing_time_ms,
                    'section_count': aggregate_metadata.section_count,
                    'average_confidence': aggregate_metadata.average_confidence,
                    'input_type_counts': aggregate_metadata.input_type_counts
                },
                'refinement_layer': {
                    'total_processing_time_ms': run.total_processing_time_ms,
                    'stages': run.stage_timings()
                }
            }
        )

    async def get_health_status(self) -> Dict[str, Any]:
        """
        Poll every adapter and service concurrently.

        Returns:
            ``operational`` when every layer is healthy, ``degraded`` otherwise
        """
        checks = {
            ('perception', 'text'): self.adapters[Modality.TEXT].health_check(),
            ('perception', 'image'): self.adapters[Modality.IMAGE].health_check(),
            ('perception', 'document'): self.adapters[Modality.DOCUMENT].health_check(),
            ('normalization', None): self.normalizer.health_check(),
            ('refinement', None): self.refinement_pipeline.health_check(),
        }
        results = await asyncio.gather(*checks.values(), return_exceptions=True)

        layers: Dict[str, Any] = {'perception': {}}
        all_healthy = True
        for (layer, sublayer), outcome in zip(checks.keys(), results):
            if isinstance(outcome, Exception):
                logger.error(f"Health check failed for {sublayer or layer}: {outcome}")
                outcome = {'status': 'unhealthy', 'error': str(outcome)}
            elif isinstance(outcome, BaseException):
                raise outcome
            all_healthy = all_healthy and outcome.get('status') == 'healthy'
            if sublayer:
                layers[layer][sublayer] = outcome
            else:
                layers[layer] = outcome

        return {
            'status': 'operational' if all_healthy else 'degraded',
            'layers': layers,
            'api_calls': {
                **self.call_tracker.get_stats(),
                'services': {name: self.call_tracker.get_stats(name) for name in TRACKED_SERVICES}
            },
            'timestamp': datetime.now().isoformat()
        }


def generate_pipeline_id() -> str:
    """Unique per run; used for log and response correlation only."""
    return f"pipeline_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def build_orchestrator(call_tracker: Optional[CallTracker] = None) -> PipelineOrchestrator:
    """Construct the service graph once from Config."""
    call_tracker = call_tracker or CallTracker()

    text_client = ChatCompletionClient(
        api_key=Config.GROQ_API_KEY,
        api_base=Config.GROQ_API_BASE,
        model_name=Config.TEXT_MODEL,
        timeout=Config.LLM_TIMEOUT,
        service_name=TEXT_SERVICE,
        call_tracker=call_tracker
    )
    vision_client = ChatCompletionClient(
        api_key=Config.OPENROUTER_API_KEY,
        api_base=Config.OPENROUTER_API_BASE,
        model_name=Config.VISION_MODEL,
        timeout=Config.VISION_TIMEOUT,
        service_name=VISION_SERVICE,
        call_tracker=call_tracker,
        extra_headers={'HTTP-Referer': Config.APP_REFERER, 'X-Title': Config.APP_TITLE}
    )

    textract_service = None
    if Config.ENABLE_TEXTRACT_FALLBACK:
        textract_service = TextractService(call_tracker=call_tracker)

    executor = StageExecutor(
        text_client,
        temperature=Config.LLM_TEMPERATURE,
        max_tokens=Config.LLM_MAX_TOKENS,
        top_p=Config.LLM_TOP_P
    )

    return PipelineOrchestrator(
        text_perception=TextPerception(),
        image_perception=ImagePerception(
            vision_client,
            max_tokens=Config.VISION_MAX_TOKENS,
            temperature=Config.LLM_TEMPERATURE
        ),
        document_perception=DocumentPerception(textract_service=textract_service),
        normalizer=NormalizationService(),
        refinement_pipeline=RefinementPipeline(executor, min_confidence=Config.MIN_CONFIDENCE_SCORE),
        validation_service=ValidationService(),
        call_tracker=call_tracker
    )
