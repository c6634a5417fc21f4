"""
Shared perception types.

Every adapter reduces one raw input (a string, an image URL, a PDF path)
to a PerceptionUnit: extracted text plus metadata. Units live for one
request and are consumed once by the normalizer.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from prompt_refinery.errors import PerceptionError

logger = logging.getLogger(__name__)


class Modality(str, Enum):
    """Input kinds, in canonical section order."""
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"


MODALITY_ORDER = (Modality.TEXT, Modality.IMAGE, Modality.DOCUMENT)


@dataclass
class PerceptionUnit:
    """
    Output of one perception adapter.

    ``details`` holds the modality-specific fields (page count, caption
    length, word count, ...).
    """
    modality: Modality
    content: str
    source: str
    confidence: float
    processing_time_ms: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.content or not self.content.strip():
            raise PerceptionError(
                f"{self.modality.value} perception produced no content",
                sublayer=f"{self.modality.value}-perception",
                details={'source': self.source}
            )
        if not 0.0 <= self.confidence <= 1.0:
            raise PerceptionError(
                f"Confidence {self.confidence} is outside [0, 1]",
                sublayer=f"{self.modality.value}-perception",
                details={'source': self.source}
            )
        self.processing_time_ms = max(0, int(self.processing_time_ms))

    @property
    def metadata(self) -> Dict[str, Any]:
        """Flat metadata view: common fields plus modality-specific ones."""
        return {
            'source': self.source,
            'confidence': self.confidence,
            'processing_time_ms': self.processing_time_ms,
            **self.details
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'modality': self.modality.value,
            'content': self.content,
            'metadata': self.metadata
        }


class PerceptionAdapter:
    """Base class for the per-modality adapters."""

    modality: Modality
    sublayer: str = "perception"

    async def process(self, raw_input: Any) -> PerceptionUnit:
        raise NotImplementedError

    async def health_check(self) -> Dict[str, Any]:
        return {'status': 'healthy'}

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
