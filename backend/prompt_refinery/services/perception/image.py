"""
Image perception: turns a hosted image URL into a textual description
using a vision-capable chat model.
"""
import logging
import time
from typing import Any, Dict

from prompt_refinery.errors import PerceptionError
from prompt_refinery.services.llm_client import ChatCompletionClient, CompletionError
from .base import Modality, PerceptionAdapter, PerceptionUnit

logger = logging.getLogger(__name__)


class ImagePerception(PerceptionAdapter):
    """Captions images through an OpenAI-compatible vision endpoint."""

    modality = Modality.IMAGE
    sublayer = "image-perception"

    CAPTION_PROMPT = (
        "Describe this image in detail. Include any text visible in the image, "
        "objects, people, actions, and overall context. Be comprehensive and specific."
    )

    # A model that stops on its own wrote a complete description
    COMPLETE_CONFIDENCE = 0.9
    TRUNCATED_CONFIDENCE = 0.7

    def __init__(self, client: ChatCompletionClient, max_tokens: int = 500, temperature: float = 0.3):
        """
        Args:
            client: Vision chat completion client (timeout configured there)
            max_tokens: Upper bound on caption length
            temperature: Sampling temperature for captions
        """
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature
        logger.info(f"[Perception Layer] Image captioning with model: {client.model_name}")

    async def process(self, image_url: str) -> PerceptionUnit:
        start_time = time.time()
        logger.info(f"[Perception Layer] Processing image from URL: {image_url}")

        if not self.client.is_configured:
            raise PerceptionError(
                "Vision API key not configured",
                sublayer=self.sublayer,
                details={'image_url': image_url}
            )

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self.CAPTION_PROMPT},
                    {"type": "image_url", "image_url": {"url": image_url}}
                ]
            }
        ]

        try:
            result = await self.client.complete(
                messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except CompletionError as e:
            logger.error(
                f"[Perception Layer] Image processing failed after "
                f"{self._elapsed_ms(start_time)}ms: {e.message}"
            )
            raise PerceptionError(
                "Failed to process image",
                sublayer=self.sublayer,
                details={
                    'image_url': image_url,
                    'original_error': e.message,
                    'timed_out': e.timed_out
                }
            ) from e

        caption = result.content.strip()
        if not caption:
            raise PerceptionError(
                "Vision model returned no caption",
                sublayer=self.sublayer,
                details={'image_url': image_url, 'finish_reason': result.finish_reason}
            )

        processing_time = self._elapsed_ms(start_time)
        logger.info(f"[Perception Layer] Image captioned in {processing_time}ms")

        return PerceptionUnit(
            modality=self.modality,
            content=caption,
            source=image_url,
            confidence=(
                self.COMPLETE_CONFIDENCE if result.finish_reason == 'stop'
                else self.TRUNCATED_CONFIDENCE
            ),
            processing_time_ms=processing_time,
            details={
                'model': result.model,
                'caption_length': len(caption),
                'finish_reason': result.finish_reason,
                'processing_mode': 'vision-caption',
                'usage': result.usage
            }
        )

    async def health_check(self) -> Dict[str, Any]:
        if not self.client.is_configured:
            return {
                'status': 'unhealthy',
                'mode': 'vision-caption',
                'error': 'API key not configured'
            }
        return {'status': 'healthy', 'mode': 'vision-caption', 'model': self.client.model_name}
