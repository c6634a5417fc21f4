"""
Refinement Pipeline
===================

Fixed four-stage state machine over the canonical text:

    START -> RELEVANCE_CHECK -> INTENT_ANALYSIS -> PROMPT_REFINEMENT -> VALIDATION -> DONE
                  |                   |
                  v                   v
              REJECTED            REJECTED

Gates:
------
- Relevance: reject when ``is_relevant`` is false or ``relevance_score`` < 0.3.
- Intent: reject when ``confidence`` < ``min_confidence`` (inclusive pass at
  the threshold).
- Refinement: no gate.
- Validation: terminal; ``success`` mirrors ``is_valid``.

Rejections are returned as data on the PipelineRun. Stage failures
(RefinementError) propagate to the caller untouched.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from prompt_refinery.errors import RefinementError
from .prompts import (
    INTENT_ANALYSIS_PROMPT,
    PROMPT_REFINEMENT_PROMPT,
    REFINEMENT_CONTEXT_TEMPLATE,
    RELEVANCE_CHECK_PROMPT,
    VALIDATION_INPUT_TEMPLATE,
    VALIDATION_PROMPT,
)
from .stage_executor import StageExecutor

logger = logging.getLogger(__name__)


class StageName(str, Enum):
    RELEVANCE_CHECK = "relevance_check"
    INTENT_ANALYSIS = "intent_analysis"
    PROMPT_REFINEMENT = "prompt_refinement"
    VALIDATION = "validation"


class RefinementState(str, Enum):
    START = "start"
    RELEVANCE_CHECK = "relevance_check"
    INTENT_ANALYSIS = "intent_analysis"
    PROMPT_REFINEMENT = "prompt_refinement"
    VALIDATION = "validation"
    DONE = "done"
    REJECTED = "rejected"


DEFAULT_RELEVANCE_REJECTION = 'Input deemed not relevant for processing'
AMBIGUITY_REJECTION = 'Input is too ambiguous or unclear to process confidently'


def score(value: Any) -> float:
    """Coerce a model-supplied score to float; missing or non-numeric is 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class StageResult:
    """Output of one refinement stage."""
    stage_name: StageName
    result: Dict[str, Any]
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage_name.value,
            'result': self.result,
            'processing_time_ms': self.processing_time_ms
        }


@dataclass
class PipelineRun:
    """Working state of one refinement run."""
    pipeline_id: str
    state: RefinementState = RefinementState.START
    stage_results: List[StageResult] = field(default_factory=list)
    terminated: bool = False
    termination_reason: Optional[str] = None
    total_processing_time_ms: int = 0

    def record(self, stage_result: StageResult):
        self.stage_results.append(stage_result)

    def get(self, stage: StageName) -> Optional[StageResult]:
        for stage_result in self.stage_results:
            if stage_result.stage_name == stage:
                return stage_result
        return None

    def result_of(self, stage: StageName) -> Dict[str, Any]:
        """Parsed output of a stage, or an empty dict if it never ran."""
        stage_result = self.get(stage)
        return stage_result.result if stage_result else {}

    def reject(self, reason: str):
        self.terminated = True
        self.termination_reason = reason
        self.state = RefinementState.REJECTED

    @property
    def rejected(self) -> bool:
        return self.state == RefinementState.REJECTED

    @property
    def success(self) -> bool:
        """True only when validation ran and judged the prompt valid."""
        if self.state != RefinementState.DONE:
            return False
        return self.result_of(StageName.VALIDATION).get('is_valid') is True

    @property
    def refined_prompt(self) -> Optional[str]:
        return self.result_of(StageName.PROMPT_REFINEMENT).get('refined_prompt') or None

    def stage_timings(self) -> Dict[str, int]:
        return {
            stage.value: (self.get(stage).processing_time_ms if self.get(stage) else 0)
            for stage in StageName
        }


class RefinementPipeline:
    """
    Sequences the four LLM stages with early-exit gates.

    Example usage:

        pipeline = RefinementPipeline(StageExecutor(client), min_confidence=0.6)
        run = await pipeline.run(canonical.normalized_text, pipeline_id)
        if run.rejected:
            print(run.termination_reason)
    """

    RELEVANCE_THRESHOLD = 0.3

    def __init__(self, executor: StageExecutor, min_confidence: float = 0.6):
        """
        Args:
            executor: Shared stage executor
            min_confidence: Minimum intent-analysis confidence to continue
        """
        self.executor = executor
        self.min_confidence = min_confidence

    async def run(self, normalized_text: str, pipeline_id: str = "") -> PipelineRun:
        """
        Run the refinement state machine over the canonical text.

        Args:
            normalized_text: Canonical text from the normalizer
            pipeline_id: Correlation id for logs

        Returns:
            PipelineRun in state DONE or REJECTED

        Raises:
            RefinementError: if any stage call or its JSON recovery fails
        """
        run = PipelineRun(pipeline_id=pipeline_id)
        start_time = time.time()
        logger.info(f"[Refinement Layer] Starting refinement pipeline {pipeline_id or '(unnamed)'}")

        try:
            await self._advance(run, normalized_text)
        except RefinementError as e:
            logger.error(f"[Refinement Layer] Pipeline failed in {run.state.value}: {e.message}")
            raise
        finally:
            run.total_processing_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"[Refinement Layer] Pipeline finished in {run.total_processing_time_ms}ms "
            f"(state={run.state.value}, success={run.success})"
        )
        return run

    async def _advance(self, run: PipelineRun, normalized_text: str):
        # Stage 1/4
        run.state = RefinementState.RELEVANCE_CHECK
        relevance = await self._run_stage(run, StageName.RELEVANCE_CHECK, RELEVANCE_CHECK_PROMPT, normalized_text)
        logger.info(
            f"[Refinement Layer] Stage 1/4 complete - Relevant: {relevance.get('is_relevant')}, "
            f"Score: {relevance.get('relevance_score')}"
        )
        if relevance.get('is_relevant') is not True or score(relevance.get('relevance_score')) < self.RELEVANCE_THRESHOLD:
            run.reject(relevance.get('rejection_reason') or DEFAULT_RELEVANCE_REJECTION)
            logger.info(f"[Refinement Layer] Rejected at relevance check: {run.termination_reason}")
            return

        # Stage 2/4
        run.state = RefinementState.INTENT_ANALYSIS
        intent = await self._run_stage(run, StageName.INTENT_ANALYSIS, INTENT_ANALYSIS_PROMPT, normalized_text)
        logger.info(
            f"[Refinement Layer] Stage 2/4 complete - Intent: {intent.get('intent')}, "
            f"Confidence: {intent.get('confidence')}"
        )
        if score(intent.get('confidence')) < self.min_confidence:
            run.reject(AMBIGUITY_REJECTION)
            logger.info(
                f"[Refinement Layer] Rejected at intent analysis: confidence "
                f"{intent.get('confidence')} < {self.min_confidence}"
            )
            return

        # Stage 3/4
        run.state = RefinementState.PROMPT_REFINEMENT
        context = build_refinement_context(normalized_text, intent)
        refinement = await self._run_stage(run, StageName.PROMPT_REFINEMENT, PROMPT_REFINEMENT_PROMPT, context)
        refined_prompt = refinement.get('refined_prompt')
        if not isinstance(refined_prompt, str) or not refined_prompt.strip():
            raise RefinementError(
                'Refinement stage returned no refined prompt',
                stage=StageName.PROMPT_REFINEMENT.value
            )
        logger.info(f"[Refinement Layer] Stage 3/4 complete - Refined prompt length: {len(refined_prompt)}")

        # Stage 4/4
        run.state = RefinementState.VALIDATION
        validation = await self._run_stage(
            run,
            StageName.VALIDATION,
            VALIDATION_PROMPT,
            VALIDATION_INPUT_TEMPLATE.format(refined_prompt=refined_prompt)
        )
        logger.info(
            f"[Refinement Layer] Stage 4/4 complete - Valid: {validation.get('is_valid')}, "
            f"Quality: {validation.get('quality_score')}"
        )
        run.state = RefinementState.DONE

    async def _run_stage(
        self,
        run: PipelineRun,
        stage: StageName,
        system_prompt: str,
        user_message: str
    ) -> Dict[str, Any]:
        start_time = time.time()
        result = await self.executor.run_stage(system_prompt, user_message, stage.value)
        run.record(StageResult(
            stage_name=stage,
            result=result,
            processing_time_ms=int((time.time() - start_time) * 1000)
        ))
        return result

    async def health_check(self) -> Dict[str, Any]:
        return await self.executor.health_check()


def _join(values: Any) -> str:
    if isinstance(values, (list, tuple)):
        return ', '.join(str(value) for value in values)
    if values is None:
        return ''
    return str(values)


def build_refinement_context(normalized_text: str, intent: Dict[str, Any]) -> str:
    """Combine the canonical text with the intent analysis for the refinement stage."""
    return REFINEMENT_CONTEXT_TEMPLATE.format(
        normalized_text=normalized_text,
        intent=intent.get('intent', ''),
        domain=intent.get('domain', ''),
        key_concepts=_join(intent.get('key_concepts')),
        constraints=_join(intent.get('constraints')),
        ambiguities=_join(intent.get('ambiguities'))
    )
