"""FastAPI backend for skin lesion classification model serving."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from src.backend.errors import PipelineError, PredictionFailed
from src.backend.lifecycle import ModelManager
from src.backend.models import get_device, load_model
from src.backend.pipeline import PredictionPipeline
from src.backend.schemas import FailResponse, HealthResponse, InfoResponse, PredictionResponse
from src.backend.upload import UploadValidator
from src.config.settings import (
    API_HOST,
    API_PORT,
    API_TITLE,
    API_VERSION,
    LOG_LEVEL,
    MODEL_DEVICE,
    MODEL_SOURCE,
)

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def default_loader():
    device = get_device(MODEL_DEVICE)
    logger.info(f"Loading model from {MODEL_SOURCE} on device {device}")
    return load_model(MODEL_SOURCE, device=device)


def get_pipeline(request: Request) -> PredictionPipeline:
    return request.app.state.pipeline


def get_model_manager(request: Request) -> ModelManager:
    return request.app.state.model_manager


def fail_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=FailResponse(message=message).model_dump())


async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
    logger.warning(
        f"Request to {request.url.path} failed: {exc.kind} "
        f"({exc.reason or exc.message}) -> {exc.status_code}"
    )
    return fail_response(exc.status_code, exc.message)


def create_app(
    manager: Optional[ModelManager] = None,
    validator: Optional[UploadValidator] = None,
) -> FastAPI:
    """Build the application around an injected model manager.

    Args:
        manager: Owner of the model handle. Defaults to one loading MODEL_SOURCE.
        validator: Upload validator. Defaults to the configured limits.
    """
    if manager is None:
        manager = ModelManager(default_loader)
    if validator is None:
        validator = UploadValidator()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Load in the background so the server accepts connections immediately
        manager.start_load()
        yield
        await manager.stop()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.state.model_manager = manager
    app.state.pipeline = PredictionPipeline(manager, validator)
    app.add_exception_handler(PipelineError, handle_pipeline_error)

    @app.get("/", response_model=InfoResponse)
    async def root(manager: ModelManager = Depends(get_model_manager)):
        """Root endpoint with API information."""
        return InfoResponse(
            message=API_TITLE,
            version=API_VERSION,
            endpoints={
                "health": "/health",
                "predict": "/predict",
                "docs": "/docs",
            },
            model_status=manager.status,
        )

    @app.get("/health", response_model=HealthResponse, responses={503: {"model": HealthResponse}})
    async def health_check(manager: ModelManager = Depends(get_model_manager)):
        """Health check endpoint."""
        if manager.is_ready():
            return HealthResponse(status="healthy", message="API is running and model is loaded")
        if manager.status == "failed":
            body = HealthResponse(status="unavailable", message="Model failed to load")
        else:
            body = HealthResponse(status="degraded", message="Model is still loading")
        return JSONResponse(status_code=503, content=body.model_dump())

    @app.post(
        "/predict",
        response_model=PredictionResponse,
        responses={
            400: {"model": FailResponse},
            413: {"model": FailResponse},
            500: {"model": FailResponse},
        },
    )
    async def predict(request: Request, pipeline: PredictionPipeline = Depends(get_pipeline)):
        """Classify the image uploaded in the multipart ``image`` field."""
        try:
            return await pipeline.run(request)
        except PipelineError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error during prediction: {e}", exc_info=True)
            raise PredictionFailed(reason=str(e))

    return app


app = create_app()


def run():
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run()
