"""
Refinement Layer
================

Four sequential LLM stages over the canonical text:

1. RELEVANCE CHECK: reject spam, nonsense and harmful input
2. INTENT ANALYSIS: intent, domain, concepts, constraints, ambiguities
3. PROMPT REFINEMENT: write the refined prompt
4. VALIDATION: score the refined prompt on five criteria

Stages 1 and 2 can end the run early with a rejection. A rejection is a
normal outcome carried on the PipelineRun; only technical failures raise
RefinementError.
"""

from .confidence import ConfidenceReport, aggregate
from .json_recovery import JSONRecoveryError, extract_json_object
from .pipeline import (
    PipelineRun,
    RefinementPipeline,
    RefinementState,
    StageName,
    StageResult,
)
from .stage_executor import StageExecutor

__all__ = [
    'RefinementPipeline',
    'RefinementState',
    'PipelineRun',
    'StageName',
    'StageResult',
    'StageExecutor',
    'ConfidenceReport',
    'aggregate',
    'JSONRecoveryError',
    'extract_json_object',
]
