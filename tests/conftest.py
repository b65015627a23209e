"""Shared fixtures for the image optimizer tests.

Images are generated with Pillow in memory. Every test gets its own artifact
directory under ``tmp_path`` and an application built from explicit settings,
so nothing depends on the environment of the machine running the tests.
"""

import io
import os

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

from image_optimizer.api import create_app
from image_optimizer.config import Settings

API_KEY = "test-api-key-0123456789"

BACKGROUNDS = {"RGB": (30, 120, 200), "RGBA": (30, 120, 200, 96), "L": 120}
FOREGROUNDS = {"RGB": (250, 200, 40), "RGBA": (250, 200, 40, 255), "L": 250}


def encode_test_image(fmt="JPEG", size=(64, 48), mode="RGB", **save_options):
    """Draw a small test picture (RGB, RGBA or L) and encode it with Pillow."""
    img = Image.new(mode, size, BACKGROUNDS[mode])
    draw = ImageDraw.Draw(img)
    width, height = size
    fill = FOREGROUNDS[mode]
    draw.ellipse([width // 8, height // 8, width * 5 // 8, height * 7 // 8], fill=fill)
    draw.rectangle([width // 2, height // 3, width - 2, height - 2], outline=fill, width=3)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_options)
    return buf.getvalue()


@pytest.fixture
def make_image():
    return encode_test_image


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        API_KEY=API_KEY,
        TEMP_DIR=str(tmp_path / "temp"),
        RATE_LIMIT_MAX_REQUESTS=100,
        RATE_LIMIT_WINDOW_SECONDS=900,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-API-Key": API_KEY}


@pytest.fixture
def temp_dir(settings):
    return os.path.abspath(settings.TEMP_DIR)
