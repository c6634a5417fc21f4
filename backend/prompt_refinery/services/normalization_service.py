"""
Normalization Layer
===================

Merges any number of PerceptionUnits into one canonical, labeled text
document. The canonical text is the only input every refinement stage
sees, so it is self-describing: a banner, one labeled section per
modality in fixed order (text, image, document), and a closing marker.

Within a section, units keep their original relative order.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence

from prompt_refinery.errors import NormalizationError
from prompt_refinery.services.perception import MODALITY_ORDER, Modality, PerceptionUnit

logger = logging.getLogger(__name__)


SECTION_LABELS: Dict[Modality, str] = {
    Modality.TEXT: 'Direct Text Input',
    Modality.IMAGE: 'Visual Content Descriptions',
    Modality.DOCUMENT: 'Document Content',
}

HEADER = '=== Multi-Modal Input Consolidation ===\n\n'
SECTION_SEPARATOR = '\n\n---\n\n'
FOOTER = '\n\n=== End of Input ==='

DOCUMENT_PREVIEW_CHARS = 2000
TRUNCATION_MARKER = '... [content truncated]'


@dataclass
class Section:
    """One labeled block of the canonical text."""
    label: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AggregateMetadata:
    """Roll-up over every unit that went into a canonical document."""
    input_count: int
    section_count: int
    average_confidence: float
    input_type_counts: Dict[str, int]
    total_processing_time_ms: int
    processing_time_ms: int = 0


@dataclass
class CanonicalDocument:
    """Normalizer output."""
    normalized_text: str
    sections: List[Section]
    aggregate_metadata: AggregateMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            'normalized_text': self.normalized_text,
            'sections': [asdict(s) for s in self.sections],
            'aggregate_metadata': asdict(self.aggregate_metadata)
        }


class NormalizationService:
    """Builds the canonical text representation from perception units."""

    def normalize(self, units: Sequence[PerceptionUnit]) -> CanonicalDocument:
        """
        Merge perception units into a CanonicalDocument.

        Args:
            units: Successful perception outputs, in input order

        Returns:
            CanonicalDocument with labeled sections and aggregate metadata

        Raises:
            NormalizationError: if no units were supplied
        """
        start_time = time.time()

        if not units:
            raise NormalizationError(
                'No perception results to normalize',
                {'length': 0 if units is None else len(units)}
            )

        logger.info(f"[Normalization Layer] Normalizing {len(units)} perception results")

        grouped: Dict[Modality, List[PerceptionUnit]] = {m: [] for m in MODALITY_ORDER}
        for unit in units:
            grouped[unit.modality].append(unit)

        sections = []
        for modality in MODALITY_ORDER:
            group = grouped[modality]
            if group:
                sections.append(self._build_section(modality, group))

        normalized_text = self._build_canonical_text(sections)
        aggregate = self._aggregate_metadata(units, sections)
        aggregate.processing_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"[Normalization Layer] Normalization completed in {aggregate.processing_time_ms}ms "
            f"(types={aggregate.input_type_counts}, output_length={len(normalized_text)})"
        )

        return CanonicalDocument(
            normalized_text=normalized_text,
            sections=sections,
            aggregate_metadata=aggregate
        )

    def _build_section(self, modality: Modality, group: List[PerceptionUnit]) -> Section:
        label = SECTION_LABELS[modality]

        if modality == Modality.TEXT:
            content = '\n\n'.join(unit.content for unit in group)
            return Section(label, content, {
                'count': len(group),
                'total_length': len(content)
            })

        if modality == Modality.IMAGE:
            content = '\n'.join(
                f"Image {idx}: {unit.content}" for idx, unit in enumerate(group, 1)
            )
            return Section(label, content, {
                'count': len(group),
                'sources': [unit.source for unit in group]
            })

        parts = []
        truncated = 0
        for idx, unit in enumerate(group, 1):
            preview = unit.content
            if len(preview) > DOCUMENT_PREVIEW_CHARS:
                preview = preview[:DOCUMENT_PREVIEW_CHARS] + TRUNCATION_MARKER
                truncated += 1
            pages = unit.details.get('pages', 0)
            parts.append(f"Document {idx} ({pages} pages):\n{preview}")

        return Section(label, '\n\n'.join(parts), {
            'count': len(group),
            'total_pages': sum(unit.details.get('pages', 0) for unit in group),
            'truncated': truncated
        })

    def _build_canonical_text(self, sections: List[Section]) -> str:
        body = SECTION_SEPARATOR.join(
            f"[{section.label}]\n{section.content}" for section in sections
        )
        return HEADER + body + FOOTER

    def _aggregate_metadata(
        self,
        units: Sequence[PerceptionUnit],
        sections: List[Section]
    ) -> AggregateMetadata:
        average_confidence = sum(unit.confidence for unit in units) / len(units)
        return AggregateMetadata(
            input_count=len(units),
            section_count=len(sections),
            average_confidence=round(average_confidence, 3),
            input_type_counts={
                modality.value: sum(1 for unit in units if unit.modality == modality)
                for modality in MODALITY_ORDER
            },
            total_processing_time_ms=sum(unit.processing_time_ms for unit in units)
        )

    async def health_check(self) -> Dict[str, Any]:
        return {'status': 'healthy', 'processor': 'canonical-text-normalizer'}
