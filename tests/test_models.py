"""Tests for request parameter parsing."""

import pytest

from image_optimizer.errors import InvalidParameter
from image_optimizer.models import OutputFormat, ResponseMode, TransformRequest


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("webp", OutputFormat.WEBP),
        ("avif", OutputFormat.AVIF),
        ("jpeg", OutputFormat.JPEG),
        ("jpg", OutputFormat.JPEG),
        ("png", OutputFormat.PNG),
        (" PNG ", OutputFormat.PNG),
        ("tiff", OutputFormat.PASSTHROUGH),
        ("", OutputFormat.PASSTHROUGH),
        (None, OutputFormat.PASSTHROUGH),
    ],
)
def test_output_format_parse(raw, expected):
    assert OutputFormat.parse(raw) is expected


def test_defaults_apply_when_parameters_are_missing():
    request = TransformRequest.from_query()
    assert request.quality == 75
    assert request.format is OutputFormat.WEBP
    assert request.max_width == 2000
    assert request.response_mode is ResponseMode.BINARY


def test_configured_defaults_are_used():
    request = TransformRequest.from_query(
        quality="", default_quality=60, default_format="png", default_max_width=800
    )
    assert (request.quality, request.format, request.max_width) == (60, OutputFormat.PNG, 800)


def test_query_values_are_parsed():
    request = TransformRequest.from_query(quality="80", format="jpg", max_width="1200", response_mode="URL")
    assert request.quality == 80
    assert request.format is OutputFormat.JPEG
    assert request.max_width == 1200
    assert request.response_mode is ResponseMode.URL


@pytest.mark.parametrize(
    "kwargs",
    [
        {"quality": "high"},
        {"quality": "0"},
        {"quality": "101"},
        {"max_width": "-5"},
        {"max_width": "0"},
        {"max_width": "12.5"},
        {"response_mode": "zip"},
    ],
)
def test_invalid_values_are_rejected(kwargs):
    with pytest.raises(InvalidParameter) as excinfo:
        TransformRequest.from_query(**kwargs)
    assert excinfo.value.status_code == 400
