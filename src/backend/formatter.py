"""Assembly of the prediction response payload."""
import uuid
from datetime import datetime, timezone

from src.backend.schemas import PredictionRecord, PredictionResponse
from src.config.settings import SUGGESTION


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision, e.g. 2024-05-01T12:00:00.123Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_record(label: str) -> PredictionRecord:
    return PredictionRecord(
        id=str(uuid.uuid4()),
        result=label,
        suggestion=SUGGESTION,
        createdAt=utc_timestamp(),
    )


def format_success_response(label: str) -> PredictionResponse:
    """Wrap a fresh record for ``label`` in the success envelope."""
    return PredictionResponse(data=build_record(label))
