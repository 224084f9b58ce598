"""Utilities for downloading models from Weights & Biases."""
import os
import logging
from pathlib import Path
from typing import Optional, Tuple

import wandb

from src.config.settings import (
    WANDB_PROJECT,
    WANDB_API_KEY,
    WANDB_ARTIFACT_VERSION,
    MODEL_CACHE_DIR,
)

logger = logging.getLogger(__name__)

WANDB_SCHEME = "wandb:"


def parse_wandb_source(source: str) -> Tuple[str, str, str]:
    """Split a ``wandb:<project>/<artifact>[:<version>]`` source.

    The project may be omitted (``wandb:<artifact>``), in which case the
    configured default project is used.

    Returns:
        Tuple of (project, artifact_name, artifact_version)
    """
    if not source.startswith(WANDB_SCHEME):
        raise ValueError(f"Not a W&B model source: {source}")

    ref = source[len(WANDB_SCHEME):].strip("/")
    if not ref:
        raise ValueError("W&B model source is missing the artifact name")

    version = None
    if ":" in ref:
        ref, version = ref.rsplit(":", 1)

    if "/" in ref:
        project, artifact_name = ref.rsplit("/", 1)
    else:
        project, artifact_name = os.getenv("WANDB_PROJECT", WANDB_PROJECT), ref

    return project, artifact_name, version or WANDB_ARTIFACT_VERSION


def download_model_from_wandb(
    artifact_name: str,
    artifact_version: Optional[str] = None,
    download_dir: Optional[Path] = None,
    project: Optional[str] = None
) -> Path:
    """Download model artifact from Weights & Biases.

    Args:
        artifact_name: Name of the W&B artifact
        artifact_version: Version of the artifact (e.g., "latest", "v1")
        download_dir: Directory to download the model to (default: MODEL_CACHE_DIR)
        project: W&B project name (default: from settings)

    Returns:
        Path to downloaded model file

    Raises:
        RuntimeError: If no API key is configured or the artifact has no checkpoint
    """
    if download_dir is None:
        download_dir = MODEL_CACHE_DIR
    download_dir = Path(download_dir)
    download_dir.mkdir(parents=True, exist_ok=True)

    if project is None:
        project = os.getenv("WANDB_PROJECT", WANDB_PROJECT)

    api_key = WANDB_API_KEY or os.getenv("WANDB_API_KEY")
    if not api_key:
        raise RuntimeError("WANDB_API_KEY not found. Cannot download model from W&B.")

    wandb.login(key=api_key)
    api = wandb.Api()

    artifact_version = artifact_version or WANDB_ARTIFACT_VERSION
    artifact_ref = f"{project}/{artifact_name}:{artifact_version}"

    logger.info(f"Downloading model artifact: {artifact_ref}")

    artifact = api.artifact(artifact_ref)
    artifact_dir = Path(artifact.download(root=str(download_dir / artifact_name)))

    # Prefer best_model.pth, otherwise any checkpoint in the artifact
    model_file = artifact_dir / "best_model.pth"
    if not model_file.exists():
        pth_files = sorted(artifact_dir.glob("*.pth")) + sorted(artifact_dir.glob("*.pt"))
        if not pth_files:
            raise RuntimeError(f"No checkpoint found in artifact directory: {artifact_dir}")
        model_file = pth_files[0]

    logger.info(f"Model downloaded successfully to: {model_file}")
    return model_file
