"""Text perception: direct text input with minimal processing."""
import logging
import time
from typing import Any, Dict

from prompt_refinery.errors import PerceptionError
from .base import Modality, PerceptionAdapter, PerceptionUnit

logger = logging.getLogger(__name__)


class TextPerception(PerceptionAdapter):
    """Passes typed text through as a unit with perfect confidence."""

    modality = Modality.TEXT
    sublayer = "text-perception"

    async def process(self, text: Any) -> PerceptionUnit:
        start_time = time.time()

        if not isinstance(text, str):
            raise PerceptionError(
                "Invalid text input",
                sublayer=self.sublayer,
                details={'received_type': type(text).__name__}
            )

        trimmed = text.strip()
        if not trimmed:
            raise PerceptionError("Text input is empty", sublayer=self.sublayer)

        logger.info(f"[Perception Layer] Processing text input ({len(trimmed)} characters)")

        return PerceptionUnit(
            modality=self.modality,
            content=trimmed,
            source='direct-input',
            confidence=1.0,
            processing_time_ms=self._elapsed_ms(start_time),
            details={
                'text_length': len(trimmed),
                'word_count': len(trimmed.split())
            }
        )

    async def health_check(self) -> Dict[str, Any]:
        return {'status': 'healthy', 'processor': 'native'}
