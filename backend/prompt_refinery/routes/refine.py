"""
Prompt Refinement API Routes
============================

Endpoints:
- POST /api/refine - Multipart request (text, image URLs, PDF uploads)
- POST /api/refine/json - JSON request (text, image URLs)
- GET /api/health - Composite health of every layer
- GET /api/layers/{layer} - Health of one layer (perception, normalization, refinement)
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from prompt_refinery.errors import ValidationError
from prompt_refinery.models import (
    ErrorResponse,
    HealthResponse,
    LayerStatusResponse,
    RefineJSONRequest,
    RefineResponse,
)
from prompt_refinery.services.orchestrator import PipelineOrchestrator, PipelineRequest
from prompt_refinery.utils.uploads import staged_documents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Prompt Refinement"])

OBSERVABLE_LAYERS = ("perception", "normalization", "refinement")

# Bodies rendered by the PipelineError and catch-all handlers in main.py
ERROR_RESPONSES: Dict[Union[int, str], Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Validation or routing failure"},
    429: {"model": ErrorResponse, "description": "Model provider rate limit"},
    500: {"model": ErrorResponse, "description": "Perception, normalization or refinement failure"},
}


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    """Service graph built once at startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Pipeline is not initialized")
    return orchestrator


def _request_id() -> str:
    return f"req_{int(time.time() * 1000)}"


def parse_image_urls(values: Optional[List[str]]) -> List[str]:
    """
    Accept image URLs as repeated form fields or as one JSON-array string.

    Raises:
        ValidationError: if a JSON-array value does not decode to a list of strings
    """
    if not values:
        return []

    if len(values) == 1 and values[0].lstrip().startswith('['):
        try:
            decoded = json.loads(values[0])
        except json.JSONDecodeError as e:
            raise ValidationError('imageUrls is not a valid JSON array', {'error': e.msg}) from e
        if not isinstance(decoded, list) or not all(isinstance(url, str) for url in decoded):
            raise ValidationError('imageUrls must be an array of strings')
        return decoded

    return [value for value in values if value]


async def _run(
    orchestrator: PipelineOrchestrator,
    request_id: str,
    pipeline_request: PipelineRequest
) -> Dict[str, Any]:
    logger.info(
        f"[API {request_id}] Request parsed (text_inputs={len(pipeline_request.text_inputs)}, "
        f"image_urls={len(pipeline_request.image_urls)}, documents={len(pipeline_request.document_paths)})"
    )
    result = await orchestrator.execute_pipeline(pipeline_request)
    logger.info(f"[API {request_id}] Request completed (success={result.success}, rejected={result.rejected})")
    return {"success": True, "data": result.to_dict()}


@router.post("/refine", response_model=RefineResponse, responses=ERROR_RESPONSES)
async def refine(
    textInputs: Optional[List[str]] = Form(None, description="Raw text inputs"),
    imageUrls: Optional[List[str]] = Form(None, description="Image URLs, repeated or as a JSON array"),
    documents: Optional[List[UploadFile]] = File(None, description="PDF documents"),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """
    Refine multi-modal input into a single structured prompt.

    Uploaded documents live on disk only for the duration of the request.
    """
    request_id = _request_id()
    logger.info(f"[API {request_id}] Received refinement request")

    text_inputs = list(textInputs or [])
    image_urls = parse_image_urls(imageUrls)

    async with staged_documents(documents, orchestrator.validation_service) as document_paths:
        return await _run(
            orchestrator,
            request_id,
            PipelineRequest(text_inputs=text_inputs, image_urls=image_urls, document_paths=document_paths)
        )


@router.post("/refine/json", response_model=RefineResponse, responses=ERROR_RESPONSES)
async def refine_json(
    body: RefineJSONRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """Refine text and image input sent as a JSON body."""
    request_id = _request_id()
    logger.info(f"[API {request_id}] Received JSON refinement request")

    return await _run(
        orchestrator,
        request_id,
        PipelineRequest(text_inputs=body.text_inputs, image_urls=body.image_urls)
    )


@router.get("/health", response_model=HealthResponse)
async def health(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Composite health check for all pipeline layers."""
    return await orchestrator.get_health_status()


@router.get("/layers/{layer}", response_model=LayerStatusResponse)
async def layer_status(layer: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Observable endpoint for a single layer's status."""
    if layer not in OBSERVABLE_LAYERS:
        raise HTTPException(status_code=404, detail=f"Unknown layer: {layer}")

    health_status = await orchestrator.get_health_status()
    return LayerStatusResponse(
        layer=layer,
        status=health_status["layers"][layer],
        timestamp=health_status["timestamp"]
    )
