"""Tests for the error taxonomy."""

import pytest

from prompt_refinery.errors import (
    ErrorKind,
    NormalizationError,
    PerceptionError,
    PipelineError,
    RefinementError,
    RoutingError,
    ValidationError,
)


@pytest.mark.parametrize("error,layer,status", [
    (PerceptionError("bad image", sublayer="image-perception"), "perception", 500),
    (NormalizationError("nothing to merge"), "normalization", 500),
    (RefinementError("parse failed", stage="validation"), "refinement", 500),
    (RefinementError("slow down", stage="intent_analysis", rate_limited=True), "refinement", 429),
    (ValidationError("no inputs"), "validation", 400),
    (RoutingError("all failed"), "routing", 400),
])
def test_layer_and_status(error, layer, status):
    assert isinstance(error, PipelineError)
    assert error.layer == layer
    assert error.kind == ErrorKind(layer)
    assert error.status_code == status


class TestToResponse:

    def test_includes_details_outside_production(self):
        error = PerceptionError("Failed to process image", sublayer="image-perception", details={'image_url': 'u'})

        assert error.to_response() == {
            'success': False,
            'error': {
                'message': 'Failed to process image',
                'layer': 'perception',
                'details': {'sublayer': 'image-perception', 'image_url': 'u'}
            }
        }

    def test_hides_details_in_production(self):
        body = RoutingError("All perception processes failed", {'errors': []}).to_response(include_details=False)
        assert body['error']['details'] is None
        assert body['error']['layer'] == 'routing'


class TestRefinementError:

    def test_rate_limit_flag_in_details(self):
        error = RefinementError("Rate limit exceeded", stage="relevance_check", rate_limited=True)
        assert error.details == {'stage': 'relevance_check', 'api_error': 'rate_limit'}

    def test_stage_recorded(self):
        error = RefinementError("Failed to parse validation response", stage="validation",
                                details={'response_length': 3})
        assert error.stage == "validation"
        assert error.rate_limited is False
        assert error.details['response_length'] == 3
