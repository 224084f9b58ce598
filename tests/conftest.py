"""Shared fixtures: tiny stand-in models, handles, managers and images."""
import io

import pytest
import torch
import torch.nn as nn
from fastapi.testclient import TestClient
from PIL import Image

from src.backend.lifecycle import ModelManager
from src.backend.main import create_app
from src.backend.models import ModelHandle

INPUT_SIZE = (32, 32)


class ConstantModel(nn.Module):
    """Returns the same probability for every image."""

    def __init__(self, value: float):
        super().__init__()
        self.value = value

    def forward(self, x):
        return torch.full((x.shape[0], 1), self.value)


class MeanIntensityModel(nn.Module):
    """Probability equals the mean pixel value, so bright images are positive."""

    def forward(self, x):
        return x.mean(dim=(1, 2, 3)).unsqueeze(1)


class FailingModel(nn.Module):

    def forward(self, x):
        raise RuntimeError("backend exploded")


def make_handle(model: nn.Module, input_size=INPUT_SIZE) -> ModelHandle:
    return ModelHandle(model=model.eval(), input_size=input_size, device="cpu")


def make_ready_manager(model: nn.Module, input_size=INPUT_SIZE) -> ModelManager:
    handle = make_handle(model, input_size)
    manager = ModelManager(lambda: handle)
    manager.load_sync()
    return manager


def image_bytes(mode="RGB", size=(64, 48), color=(10, 20, 30), fmt="JPEG") -> bytes:
    image = Image.new(mode, size, color=color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    return image_bytes()


@pytest.fixture
def dark_jpeg():
    return image_bytes(color=(5, 5, 5))


@pytest.fixture
def bright_jpeg():
    return image_bytes(color=(250, 250, 250))


@pytest.fixture
def mean_model_client():
    """Client whose model labels dark images Non-cancer and bright ones Cancer."""
    app = create_app(make_ready_manager(MeanIntensityModel()))
    with TestClient(app) as client:
        yield client
