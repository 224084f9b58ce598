"""Error taxonomy for the prediction pipeline.

Every failure a request can hit is one of the classes below. Each carries the
HTTP status code and the client-facing message it is translated into, so the
API layer never has to inspect error details to build a response.
"""
from typing import Optional


PREDICTION_ERROR_MESSAGE = "Error in prediction"


class PipelineError(Exception):
    """Base class for all request pipeline failures."""

    status_code = 500
    default_message = PREDICTION_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        self.message = message or self.default_message
        # Underlying cause, for logs only
        self.reason = reason
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class MalformedUpload(PipelineError):
    status_code = 400
    default_message = "Malformed upload"


class TooManyOrMissingFields(PipelineError):
    status_code = 400
    default_message = "No image file provided"


class PayloadTooLarge(PipelineError):
    status_code = 413

    def __init__(self, limit: int, reason: Optional[str] = None):
        self.limit = limit
        super().__init__(
            f"Payload content length greater than maximum allowed: {limit}",
            reason=reason,
        )


class UnsupportedImageFormat(PipelineError):
    pass


class ModelNotReady(PipelineError):
    pass


class ModelLoadFailed(PipelineError):
    pass


class PredictionFailed(PipelineError):
    pass
