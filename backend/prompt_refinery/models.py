"""
Pydantic models for API request/response schemas.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class RefineJSONRequest(BaseModel):
    """JSON request body for callers without document uploads."""
    model_config = ConfigDict(populate_by_name=True)

    text_inputs: List[str] = Field(default_factory=list, alias="textInputs", description="Raw text inputs")
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls", description="Hosted https image URLs")


class ConfidenceScores(BaseModel):
    """Per-stage scores feeding the overall confidence."""
    relevance: float = 0.0
    intent_understanding: float = 0.0
    refinement_quality: float = 0.0
    validation_quality: float = 0.0


class ConfidenceInfo(BaseModel):
    """Aggregated confidence for a run."""
    overall_confidence: float = Field(..., ge=0.0, le=1.0)
    scores: ConfidenceScores


class RefinementResult(BaseModel):
    """Final result of one pipeline run."""
    pipeline_id: str
    success: bool
    rejected: bool
    rejection_reason: Optional[str] = None
    refined_prompt: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    confidence: ConfidenceInfo
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RefineResponse(BaseModel):
    """Successful response envelope."""
    success: bool = True
    data: RefinementResult


class ErrorDetail(BaseModel):
    """Structured error body."""
    message: str
    layer: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response envelope."""
    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Composite health of every layer."""
    status: str = Field(..., description="Status: operational, degraded")
    layers: Dict[str, Any]
    api_calls: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str


class LayerStatusResponse(BaseModel):
    """Health of a single layer."""
    layer: str
    status: Dict[str, Any]
    timestamp: str
