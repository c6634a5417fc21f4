"""Tests for the normalization layer."""

import pytest

from prompt_refinery.errors import NormalizationError
from prompt_refinery.services.normalization_service import (
    DOCUMENT_PREVIEW_CHARS,
    FOOTER,
    HEADER,
    TRUNCATION_MARKER,
    NormalizationService,
)
from prompt_refinery.services.perception import Modality


@pytest.fixture
def normalizer():
    return NormalizationService()


class TestNormalize:
    """Tests for NormalizationService.normalize."""

    def test_empty_input_fails(self, normalizer):
        with pytest.raises(NormalizationError) as exc_info:
            normalizer.normalize([])
        assert exc_info.value.layer == "normalization"

    def test_sections_in_fixed_order_regardless_of_input_order(self, normalizer, make_unit):
        units = [
            make_unit(Modality.DOCUMENT, "Quarterly report body text", confidence=0.95, pages=3),
            make_unit(Modality.IMAGE, "A bar chart of revenue", confidence=0.9),
            make_unit(Modality.TEXT, "Summarize the attached material"),
        ]

        canonical = normalizer.normalize(units)

        assert [s.label for s in canonical.sections] == [
            "Direct Text Input",
            "Visual Content Descriptions",
            "Document Content",
        ]
        text = canonical.normalized_text
        assert text.startswith(HEADER)
        assert text.endswith(FOOTER)
        assert text.index("[Direct Text Input]") < text.index("[Visual Content Descriptions]")
        assert text.index("[Visual Content Descriptions]") < text.index("[Document Content]")

    def test_relative_order_within_modality(self, normalizer, make_unit):
        units = [
            make_unit(Modality.IMAGE, "first image"),
            make_unit(Modality.TEXT, "first text"),
            make_unit(Modality.IMAGE, "second image"),
            make_unit(Modality.TEXT, "second text"),
        ]

        canonical = normalizer.normalize(units)

        assert canonical.sections[0].content == "first text\n\nsecond text"
        assert canonical.sections[1].content == "Image 1: first image\nImage 2: second image"

    def test_absent_modalities_produce_no_section(self, normalizer, make_unit):
        canonical = normalizer.normalize([make_unit(Modality.TEXT, "Write a function to sort a list")])

        assert len(canonical.sections) == 1
        assert "[Direct Text Input]\nWrite a function to sort a list" in canonical.normalized_text
        assert "Visual Content" not in canonical.normalized_text

    def test_long_documents_are_truncated(self, normalizer, make_unit):
        body = "x" * (DOCUMENT_PREVIEW_CHARS + 500)
        canonical = normalizer.normalize([make_unit(Modality.DOCUMENT, body, pages=2)])

        section = canonical.sections[0]
        assert section.content.startswith("Document 1 (2 pages):\n")
        assert section.content.endswith(TRUNCATION_MARKER)
        assert "x" * (DOCUMENT_PREVIEW_CHARS + 1) not in section.content
        assert section.metadata['truncated'] == 1

    def test_short_documents_are_not_truncated(self, normalizer, make_unit):
        canonical = normalizer.normalize([make_unit(Modality.DOCUMENT, "short text body", pages=1)])
        assert TRUNCATION_MARKER not in canonical.normalized_text


class TestAggregateMetadata:
    """Tests for the aggregate metadata roll-up."""

    def test_counts_and_averages(self, normalizer, make_unit):
        units = [
            make_unit(Modality.TEXT, "one", confidence=1.0, processing_time_ms=2),
            make_unit(Modality.TEXT, "two", confidence=1.0, processing_time_ms=3),
            make_unit(Modality.IMAGE, "three", confidence=0.7, processing_time_ms=100),
        ]

        metadata = normalizer.normalize(units).aggregate_metadata

        assert metadata.input_count == 3
        assert metadata.section_count == 2
        assert metadata.average_confidence == 0.9
        assert metadata.input_type_counts == {'text': 2, 'image': 1, 'document': 0}
        assert metadata.total_processing_time_ms == 105

    def test_average_confidence_rounded_to_three_decimals(self, normalizer, make_unit):
        units = [
            make_unit(Modality.TEXT, "a", confidence=1.0),
            make_unit(Modality.IMAGE, "b", confidence=0.9),
            make_unit(Modality.IMAGE, "c", confidence=0.7),
        ]
        assert normalizer.normalize(units).aggregate_metadata.average_confidence == 0.867

    def test_to_dict_is_serializable(self, normalizer, make_unit):
        result = normalizer.normalize([make_unit(Modality.TEXT, "hello world")]).to_dict()
        assert result['aggregate_metadata']['input_count'] == 1
        assert result['sections'][0]['label'] == "Direct Text Input"
