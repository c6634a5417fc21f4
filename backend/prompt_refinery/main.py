"""
FastAPI application for the Multi-Modal Prompt Refinement service.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prompt_refinery.config import Config
from prompt_refinery.errors import PipelineError
from prompt_refinery.models import ErrorDetail, ErrorResponse
from prompt_refinery.routes.refine import router as refine_router
from prompt_refinery.services.orchestrator import build_orchestrator

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Multi-Modal Prompt Refinement API",
    description="Refines text, image and document input into structured prompts",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(refine_router)


@app.on_event("startup")
async def startup_event():
    """Validate configuration and build the service graph once."""
    try:
        Config.validate()
        logger.info(f"Configuration OK ({Config.ENVIRONMENT})")

        app.state.orchestrator = build_orchestrator()
        logger.info(
            f"Services initialized (text model={Config.TEXT_MODEL}, vision model={Config.VISION_MODEL}, "
            f"textract fallback={'enabled' if Config.ENABLE_TEXTRACT_FALLBACK else 'disabled'})"
        )
    except ValueError as e:
        logger.error(f"Startup aborted, invalid configuration: {e}")
        raise


@app.get("/")
async def root():
    """Service descriptor."""
    return {
        "name": "Multi-Modal Prompt Refinement API",
        "version": "1.0.0",
        "layers": ["perception", "normalization", "refinement"],
        "endpoints": {
            "refine": "POST /api/refine",
            "refine_json": "POST /api/refine/json",
            "health": "GET /api/health",
            "layers": [f"GET /api/layers/{layer}" for layer in ("perception", "normalization", "refinement")]
        }
    }


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    """Map layer errors to structured responses; status follows the error kind."""
    logger.error(f"API error in {exc.layer} layer: {exc.message}", extra={'details': exc.details})
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(include_details=not Config.is_production())
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything that is not a PipelineError is an internal failure."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=ErrorDetail(
            message="An unexpected error occurred",
            details=None if Config.is_production() else {"error": str(exc)}
        )).model_dump()
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "prompt_refinery.main:app",
        host=Config.API_HOST,
        port=Config.API_PORT,
        reload=not Config.is_production()
    )
