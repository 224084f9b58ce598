"""PyTorch CNN model for skin lesion classification."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

import torch
import torch.nn as nn
import torch.nn.functional as F

from src.config.settings import MODEL_SOURCE, MODEL_CACHE_DIR, MODEL_INPUT_SIZE
from src.config.wandb_utils import WANDB_SCHEME, parse_wandb_source, download_model_from_wandb

logger = logging.getLogger(__name__)


class LesionCNN(nn.Module):
    """Convolutional Neural Network for binary lesion classification.

    Architecture:
    - Input: channels-last batch (N, H, W, 3), values in [0, 1]
    - Output: (N, 1) probability of the positive class
    """

    def __init__(self, dropout_rate: float = 0.5):
        super(LesionCNN, self).__init__()

        # Convolutional layers
        self.conv1 = nn.Conv2d(3, 32, kernel_size=3, padding=1)
        self.bn1 = nn.BatchNorm2d(32)
        self.conv2 = nn.Conv2d(32, 64, kernel_size=3, padding=1)
        self.bn2 = nn.BatchNorm2d(64)
        self.conv3 = nn.Conv2d(64, 128, kernel_size=3, padding=1)
        self.bn3 = nn.BatchNorm2d(128)
        self.conv4 = nn.Conv2d(128, 256, kernel_size=3, padding=1)
        self.bn4 = nn.BatchNorm2d(256)

        # Pooling
        self.pool = nn.MaxPool2d(2, 2)
        self.global_pool = nn.AdaptiveAvgPool2d(1)

        # Dropout
        self.dropout = nn.Dropout(dropout_rate)

        # Fully connected layers
        self.fc1 = nn.Linear(256, 128)
        self.fc2 = nn.Linear(128, 1)

    def forward(self, x):
        # (N, H, W, C) -> (N, C, H, W)
        x = x.permute(0, 3, 1, 2)

        x = self.pool(F.relu(self.bn1(self.conv1(x))))
        x = self.pool(F.relu(self.bn2(self.conv2(x))))
        x = self.pool(F.relu(self.bn3(self.conv3(x))))
        x = self.pool(F.relu(self.bn4(self.conv4(x))))

        x = torch.flatten(self.global_pool(x), 1)

        x = F.relu(self.fc1(x))
        x = self.dropout(x)
        x = self.fc2(x)

        return torch.sigmoid(x)


@dataclass(frozen=True)
class ModelHandle:
    """A loaded classifier ready for inference.

    Built once by the loader and never mutated afterwards, so it can be
    shared by concurrent requests without locking.
    """
    model: nn.Module
    input_size: Tuple[int, int]  # Height, Width
    device: str = "cpu"
    source: Optional[str] = None


def get_device(preference: str = "auto") -> str:
    """Determine the device for inference.

    Priority for "auto": CUDA (NVIDIA) > MPS (Apple Silicon) > CPU
    """
    if preference != "auto":
        return preference
    if torch.cuda.is_available():
        return "cuda"
    elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return "mps"
    else:
        return "cpu"


def create_model() -> LesionCNN:
    """Create a new, untrained model instance."""
    return LesionCNN()


def resolve_model_source(source: Optional[str] = None, cache_dir: Optional[Path] = None) -> Path:
    """Turn a configured model source into a local checkpoint file.

    Args:
        source: Local path, http(s) URL, or W&B reference. Defaults to settings.
        cache_dir: Directory for downloaded checkpoints

    Returns:
        Path to a local checkpoint file
    """
    if source is None:
        source = MODEL_SOURCE
    cache_dir = Path(cache_dir or MODEL_CACHE_DIR)

    if source.startswith(WANDB_SCHEME):
        project, artifact_name, version = parse_wandb_source(source)
        return download_model_from_wandb(
            artifact_name,
            artifact_version=version,
            download_dir=cache_dir,
            project=project,
        )

    parsed = urlparse(source)
    if parsed.scheme in ("http", "https"):
        filename = Path(parsed.path).name or "model.pth"
        destination = cache_dir / filename
        if destination.exists():
            logger.info(f"Using cached model at {destination}")
            return destination
        cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading model from {source}")
        torch.hub.download_url_to_file(source, str(destination), progress=False)
        return destination

    model_path = Path(source).expanduser()
    if not model_path.exists():
        raise FileNotFoundError(f"Model file not found: {model_path}")
    return model_path


def load_model(source: Optional[str] = None, device: str = "cpu") -> ModelHandle:
    """Load a trained model from its configured source.

    Args:
        source: Model source. If None, uses default from settings.
        device: Device to load model on ("cpu", "cuda", "mps")

    Returns:
        Handle wrapping the model in evaluation mode
    """
    model_path = resolve_model_source(source)

    model = create_model()
    checkpoint = torch.load(model_path, map_location=device)

    input_size = MODEL_INPUT_SIZE

    # Handle different checkpoint formats
    if isinstance(checkpoint, dict) and "model_state_dict" in checkpoint:
        state_dict = checkpoint["model_state_dict"]
    elif isinstance(checkpoint, dict) and "state_dict" in checkpoint:
        state_dict = checkpoint["state_dict"]
    else:
        state_dict = checkpoint

    if isinstance(checkpoint, dict) and "input_size" in checkpoint:
        height, width = checkpoint["input_size"]
        input_size = (int(height), int(width))

    model.load_state_dict(state_dict)
    model.to(device)
    model.eval()

    return ModelHandle(model=model, input_size=input_size, device=device, source=str(model_path))


def save_checkpoint(model: nn.Module, path: Path, input_size: Tuple[int, int] = MODEL_INPUT_SIZE) -> Path:
    """Write a checkpoint in the format load_model reads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    torch.save(
        {"model_state_dict": model.state_dict(), "input_size": list(input_size)},
        path,
    )
    return path
