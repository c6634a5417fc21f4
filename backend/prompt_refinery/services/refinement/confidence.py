"""
Confidence aggregation over a refinement run.

The overall confidence is the plain mean of four stage scores. A stage
that never ran contributes 0, so an early rejection reports a low overall
confidence through the same channel as a low-quality completion.
"""
from dataclasses import dataclass
from typing import Dict

from .pipeline import PipelineRun, StageName, score

# (report key, stage, field holding the stage's score)
SCORE_SOURCES = (
    ('relevance', StageName.RELEVANCE_CHECK, 'relevance_score'),
    ('intent_understanding', StageName.INTENT_ANALYSIS, 'confidence'),
    ('refinement_quality', StageName.PROMPT_REFINEMENT, 'confidence'),
    ('validation_quality', StageName.VALIDATION, 'quality_score'),
)


@dataclass
class ConfidenceReport:
    overall_confidence: float
    scores: Dict[str, float]

    def to_dict(self) -> Dict[str, object]:
        return {
            'overall_confidence': self.overall_confidence,
            'scores': dict(self.scores)
        }


def aggregate(run: PipelineRun) -> ConfidenceReport:
    """Mean of the four stage scores, rounded to 3 decimals."""
    scores = {
        key: score(run.result_of(stage).get(field_name))
        for key, stage, field_name in SCORE_SOURCES
    }
    overall = round(sum(scores.values()) / len(scores), 3)
    return ConfidenceReport(overall_confidence=overall, scores=scores)
