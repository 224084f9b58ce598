"""Centralized configuration settings for the skin lesion inference service."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

load_dotenv(PROJECT_ROOT / ".env")

# Model source: local path, http(s) URL, or "wandb:<project>/<artifact>[:<version>]"
MODEL_SOURCE = os.getenv("MODEL_SOURCE", str(PROJECT_ROOT / "models" / "best_model.pth"))
MODEL_CACHE_DIR = Path(os.getenv("MODEL_CACHE_DIR", str(PROJECT_ROOT / "models" / "cache")))

# Fallback input size for checkpoints that do not record their own
MODEL_INPUT_SIZE = (
    int(os.getenv("MODEL_INPUT_HEIGHT", "224")),
    int(os.getenv("MODEL_INPUT_WIDTH", "224")),
)  # Height, Width
MODEL_DEVICE = os.getenv("MODEL_DEVICE", "auto")

# Classification
# Output strictly greater than the threshold is positive; exactly 0.5 is negative
PREDICTION_THRESHOLD = float(os.getenv("PREDICTION_THRESHOLD", "0.5"))
POSITIVE_LABEL = "Cancer"
NEGATIVE_LABEL = "Non-cancer"
SUGGESTION = "Consult a specialist"

# Upload limits
IMAGE_FIELD_NAME = os.getenv("IMAGE_FIELD_NAME", "image")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", "1000000"))
# Ceiling for the whole multipart body (image plus any other fields)
MAX_REQUEST_BYTES = int(os.getenv("MAX_REQUEST_BYTES", "10000000"))

# Weights & Biases configuration
WANDB_PROJECT = os.getenv("WANDB_PROJECT", "skin-lesion-classifier")
WANDB_API_KEY = os.getenv("WANDB_API_KEY", "")
WANDB_ARTIFACT_VERSION = os.getenv("WANDB_ARTIFACT_VERSION", "latest")

# FastAPI configuration
API_TITLE = "Skin Lesion Classification API"
API_VERSION = "1.0.0"
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", os.getenv("PORT", "3000")))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
