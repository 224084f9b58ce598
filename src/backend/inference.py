"""Model invocation and reduction to a binary verdict."""
import logging

import torch

from src.backend.errors import PredictionFailed
from src.backend.models import ModelHandle
from src.config.settings import PREDICTION_THRESHOLD, POSITIVE_LABEL, NEGATIVE_LABEL

logger = logging.getLogger(__name__)


def classify_score(score: float, threshold: float = PREDICTION_THRESHOLD) -> str:
    """Map a probability to a label. Exactly ``threshold`` is negative."""
    return POSITIVE_LABEL if score > threshold else NEGATIVE_LABEL


def run_model(handle: ModelHandle, image_tensor: torch.Tensor) -> float:
    """Run the forward pass and extract the single scalar output.

    Args:
        handle: Loaded model handle
        image_tensor: Preprocessed tensor (1, H, W, 3)

    Returns:
        Model output in [0, 1]

    Raises:
        PredictionFailed: On any error during the forward pass
    """
    try:
        with torch.inference_mode():
            outputs = handle.model(image_tensor.to(handle.device))
            if outputs.numel() < 1:
                raise ValueError("model returned an empty output")
            score = outputs.reshape(-1)[0].item()
    except Exception as e:
        logger.error(f"Error during forward pass: {e}", exc_info=True)
        raise PredictionFailed(reason=str(e))

    if not 0.0 <= score <= 1.0:
        # NaN fails this check too
        raise PredictionFailed(reason=f"model output {score} outside [0, 1]")
    return score


def predict_image(handle: ModelHandle, image_tensor: torch.Tensor, threshold: float = PREDICTION_THRESHOLD) -> str:
    """Run inference on a single image and return its label."""
    score = run_model(handle, image_tensor)
    label = classify_score(score, threshold)
    logger.debug(f"Model output {score:.4f} -> {label}")
    return label
