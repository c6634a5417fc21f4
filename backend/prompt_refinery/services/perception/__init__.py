"""
Perception Layer
================

One adapter per modality, each turning a raw input into a PerceptionUnit:

- TextPerception: direct text, trimmed
- ImagePerception: hosted image URL -> generated caption
- DocumentPerception: uploaded PDF -> extracted text (OCR fallback optional)

Adapters fail with PerceptionError when an input cannot be reduced to
usable text. The orchestrator treats every adapter call as independently
failable.
"""

from .base import MODALITY_ORDER, Modality, PerceptionAdapter, PerceptionUnit
from .document import DocumentPerception
from .image import ImagePerception
from .text import TextPerception

__all__ = [
    'Modality',
    'MODALITY_ORDER',
    'PerceptionAdapter',
    'PerceptionUnit',
    'TextPerception',
    'ImagePerception',
    'DocumentPerception',
]
