"""The /predict request pipeline.

Each step either returns its value or raises a ``PipelineError``; the first
failure ends the request and the API layer turns it into the error body.

    Received -> Validated -> Decoded -> Predicted -> Formatted
"""
import logging

from fastapi import Request
from starlette.concurrency import run_in_threadpool

from src.backend.errors import PredictionFailed
from src.backend.formatter import format_success_response
from src.backend.inference import predict_image
from src.backend.lifecycle import ModelManager
from src.backend.preprocessing import preprocess_image
from src.backend.schemas import PredictionResponse
from src.backend.upload import UploadValidator
from src.config.settings import PREDICTION_THRESHOLD

logger = logging.getLogger(__name__)


class PredictionPipeline:
    """Runs one /predict request from raw upload to success envelope."""

    def __init__(
        self,
        manager: ModelManager,
        validator: UploadValidator,
        threshold: float = PREDICTION_THRESHOLD,
    ):
        self.manager = manager
        self.validator = validator
        self.threshold = threshold

    async def run(self, request: Request) -> PredictionResponse:
        upload = await self.validator.validate(request)
        logger.debug(f"Accepted upload {upload.filename!r} ({upload.size} bytes)")

        # Input size is a property of the loaded model, so gate before decoding
        handle = self.manager.get()

        image_tensor = await run_in_threadpool(preprocess_image, upload.data, handle.input_size)

        if await request.is_disconnected():
            raise PredictionFailed(reason="client disconnected before inference")

        label = await run_in_threadpool(predict_image, handle, image_tensor, self.threshold)

        response = format_success_response(label)
        logger.info(f"Prediction successful: id={response.data.id}, result={label}")
        return response
