"""Pydantic schemas for FastAPI request/response models."""
from typing import Dict, Literal

from pydantic import BaseModel, ConfigDict


class PredictionRecord(BaseModel):
    """One verdict, built fresh for each successful request."""
    model_config = ConfigDict(frozen=True)

    id: str
    result: Literal["Cancer", "Non-cancer"]
    suggestion: str
    createdAt: str


class PredictionResponse(BaseModel):
    """Success envelope for /predict."""
    status: Literal["success"] = "success"
    message: str = "Model is predicted successfully"
    data: PredictionRecord


class FailResponse(BaseModel):
    """Failure envelope shared by every error response."""
    status: Literal["fail"] = "fail"
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    message: str


class InfoResponse(BaseModel):
    """Service information."""
    message: str
    version: str
    endpoints: Dict[str, str]
    model_status: str
