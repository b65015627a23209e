"""End-to-end tests for the HTTP API using FastAPI's TestClient."""

import asyncio
import io
import os

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from image_optimizer.api import create_app
from image_optimizer.core.gate import MULTIPART_OVERHEAD, build_header_gate
from image_optimizer.core.lifecycle import RequestState
from image_optimizer.core.rate_limit import FixedWindowRateLimiter


def image_part(data, filename="photo.jpg", content_type="image/jpeg"):
    return {"image": (filename, data, content_type)}


CHUNK = 64 * 1024

PART_HEADER = (
    b"--xyz\r\n"
    b'Content-Disposition: form-data; name="image"; filename="big.png"\r\n'
    b"Content-Type: image/png\r\n\r\n"
)


def chunked_upload(total_bytes, disconnect=False):
    """Body messages for a multipart upload streamed without a Content-Length."""
    yield {"type": "http.request", "body": PART_HEADER, "more_body": True}
    for _ in range(total_bytes // CHUNK):
        yield {"type": "http.request", "body": b"\x89" * CHUNK, "more_body": True}
    if disconnect:
        yield {"type": "http.disconnect"}
    else:
        yield {"type": "http.request", "body": b"\r\n--xyz--\r\n", "more_body": False}


def stream_request(app, messages, headers):
    """
    Call the ASGI app directly, feeding it body messages one at a time.

    Returns the scope, the messages the app sent and the number of body bytes
    it pulled. Once the response has started the client reports a disconnect.
    """
    scope = {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.4"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/optimize",
        "raw_path": b"/optimize",
        "root_path": "",
        "query_string": b"",
        "headers": [(key.lower().encode(), value.encode()) for key, value in headers.items()],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
        "state": {},
    }
    sent = []
    consumed = [0]

    async def receive():
        if sent:
            return {"type": "http.disconnect"}
        message = next(messages, {"type": "http.disconnect"})
        consumed[0] += len(message.get("body", b""))
        return message

    async def send(message):
        sent.append(message)

    asyncio.run(app(scope, receive, send))
    return scope, sent, consumed[0]


def response_status(sent):
    return next(message["status"] for message in sent if message["type"] == "http.response.start")


@pytest.fixture
def stream_headers(auth_headers):
    headers = dict(auth_headers)
    headers["Content-Type"] = "multipart/form-data; boundary=xyz"
    return headers


@pytest.fixture
def jpeg(make_image):
    return make_image("JPEG", size=(2400, 1600), quality=95)


@pytest.fixture
def record_transforms(monkeypatch):
    """Replace the pipeline with a recorder that fails the test if called."""
    calls = []

    def fake_transform(*args, **kwargs):
        calls.append(args)
        raise AssertionError("transform must not run")

    monkeypatch.setattr("image_optimizer.api.optimize.transform", fake_transform)
    return calls


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_health_does_not_require_auth_or_count_against_rate_limit(settings):
    app = create_app(settings.model_copy(update={"RATE_LIMIT_MAX_REQUESTS": 1}))
    client = TestClient(app)
    for _ in range(3):
        assert client.get("/health").status_code == 200


def test_detailed_health(client):
    resp = client.get("/health/detailed")
    assert resp.status_code == 200
    body = resp.json()
    assert set(body["encoders"]) == {"webp", "avif", "jpeg", "png"}
    assert body["temp_directory"]["exists"] is True
    assert body["temp_directory"]["artifact_count"] == 0
    assert "cpu_usage" in body["system"]


@pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong-key"}])
def test_bad_api_key_is_rejected_before_any_work(client, jpeg, temp_dir, record_transforms, headers):
    resp = client.post("/optimize?return=url", files=image_part(jpeg), headers=headers)

    assert resp.status_code == 401
    body = resp.json()
    assert body["kind"] == "Unauthorized"
    assert body["error"] == "Unauthorized - Invalid API key"
    assert record_transforms == []
    assert os.listdir(temp_dir) == []


def test_binary_jpeg_to_webp(client, auth_headers, jpeg):
    resp = client.post(
        "/optimize?format=webp&quality=80&maxWidth=1200&return=binary",
        files=image_part(jpeg),
        headers=auth_headers,
    )

    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"] == "image/webp"
    assert int(resp.headers["content-length"]) == len(resp.content)
    assert int(resp.headers["X-Original-Size"]) == len(jpeg)
    assert int(resp.headers["X-Optimized-Size"]) == len(resp.content)

    savings = float(resp.headers["X-Savings-Percent"])
    assert 0 < savings < 100
    assert savings == round((len(jpeg) - len(resp.content)) / len(jpeg) * 100, 2)

    output = Image.open(io.BytesIO(resp.content))
    assert output.format == "WEBP"
    assert output.size == (1200, 800)


def test_binary_defaults(client, auth_headers, make_image):
    data = make_image("PNG", size=(320, 240))
    resp = client.post("/optimize", files=image_part(data, "pic.png", "image/png"), headers=auth_headers)

    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"] == "image/webp"
    assert Image.open(io.BytesIO(resp.content)).size == (320, 240)
    assert resp.headers["RateLimit-Limit"] == "100"
    assert resp.headers["RateLimit-Remaining"] == "99"


def test_identical_binary_requests_are_size_stable(client, auth_headers, make_image):
    data = make_image("JPEG", size=(640, 480))
    sizes = {
        len(client.post("/optimize?format=jpeg&quality=60", files=image_part(data), headers=auth_headers).content)
        for _ in range(2)
    }
    assert len(sizes) == 1


def test_url_mode_artifact_can_be_fetched(client, auth_headers, jpeg, temp_dir):
    resp = client.post(
        "/optimize?format=webp&quality=80&maxWidth=1200&return=url",
        files=image_part(jpeg),
        headers=auth_headers,
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["originalSize"] == len(jpeg)
    assert body["format"] == "webp"
    assert (body["width"], body["height"]) == (1200, 800)
    assert body["url"].startswith("/temp/") and body["url"].endswith(".webp")
    assert isinstance(body["savingsPercent"], float)

    fetched = client.get(body["url"])
    assert fetched.status_code == 200
    assert len(fetched.content) == body["optimizedSize"]
    assert Image.open(io.BytesIO(fetched.content)).size == (1200, 800)
    assert len(os.listdir(temp_dir)) == 1


def test_each_url_request_gets_its_own_artifact(client, auth_headers, make_image):
    data = make_image("PNG", size=(50, 50))
    urls = {
        client.post("/optimize?return=url&format=png", files=image_part(data, "a.png", "image/png"),
                    headers=auth_headers).json()["url"]
        for _ in range(3)
    }
    assert len(urls) == 3


def test_forged_jpeg_fails_to_decode_without_leaving_artifacts(client, auth_headers, temp_dir):
    resp = client.post(
        "/optimize?return=url",
        files=image_part(b"this is plain text pretending to be a jpeg"),
        headers=auth_headers,
    )

    assert resp.status_code == 500
    body = resp.json()
    assert body["kind"] == "DecodeFailed"
    assert body["error"] == "Image optimization failed"
    assert "decode" in body["message"].lower()
    assert os.listdir(temp_dir) == []


def test_svg_is_admitted_but_cannot_be_rasterized(client, auth_headers):
    svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="4" height="4"></svg>'
    resp = client.post("/optimize", files=image_part(svg, "icon.svg", "image/svg+xml"), headers=auth_headers)
    assert resp.status_code == 500
    assert resp.json()["kind"] == "DecodeFailed"


def test_artifact_write_failure_is_reported(client, auth_headers, make_image, temp_dir, monkeypatch):
    def fail_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(os, "replace", fail_replace)
    resp = client.post("/optimize?return=url", files=image_part(make_image("JPEG")), headers=auth_headers)

    assert resp.status_code == 500
    assert resp.json()["kind"] == "ArtifactWriteFailed"
    assert os.listdir(temp_dir) == []


def test_missing_file_is_rejected(client, auth_headers, jpeg):
    resp = client.post("/optimize", files={"photo": ("photo.jpg", jpeg, "image/jpeg")}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json() == {
        "error": "No image file provided",
        "kind": "MissingFile",
        "message": "No image file provided",
    }


def test_request_without_body_is_rejected(client, auth_headers):
    resp = client.post("/optimize", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "MissingFile"


def test_non_image_mime_type_is_rejected(client, auth_headers, record_transforms):
    resp = client.post(
        "/optimize", files=image_part(b"hello", "notes.txt", "text/plain"), headers=auth_headers
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "UnsupportedMediaType"
    assert record_transforms == []


def test_oversized_upload_is_rejected(settings, auth_headers, record_transforms):
    client = TestClient(create_app(settings.model_copy(update={"MAX_FILE_SIZE": 1024})))
    noise = Image.frombytes("RGB", (64, 64), os.urandom(64 * 64 * 3))
    buf = io.BytesIO()
    noise.save(buf, format="PNG")
    data = buf.getvalue()
    assert len(data) > 1024

    resp = client.post("/optimize", files=image_part(data, "big.png", "image/png"), headers=auth_headers)

    assert resp.status_code == 413
    body = resp.json()
    assert body["kind"] == "PayloadTooLarge"
    assert body["error"] == "File too large"
    assert record_transforms == []


def test_declared_content_length_over_limit_is_rejected_early(client, auth_headers, record_transforms):
    headers = dict(auth_headers)
    headers["Content-Type"] = "multipart/form-data; boundary=xyz"
    body = b"--xyz\r\n" + b"a" * (6 * 1024 * 1024) + b"\r\n--xyz--\r\n"
    resp = client.post("/optimize", content=body, headers=headers)
    assert resp.status_code == 413
    assert record_transforms == []


def test_chunked_upload_is_cut_off_at_the_size_limit(settings, stream_headers, record_transforms):
    app = create_app(settings.model_copy(update={"MAX_FILE_SIZE": 1024}))

    _, sent, consumed = stream_request(app, chunked_upload(50 * 1024 * 1024), stream_headers)

    assert response_status(sent) == 413
    assert consumed <= 1024 + MULTIPART_OVERHEAD + CHUNK + len(PART_HEADER)
    assert record_transforms == []


def test_client_disconnect_during_upload_aborts_before_decode(app, stream_headers, temp_dir, record_transforms):
    scope, sent, _ = stream_request(app, chunked_upload(2 * CHUNK, disconnect=True), stream_headers)

    assert response_status(sent) == 499
    assert record_transforms == []
    assert scope["state"]["lifecycle"].state is RequestState.ERRORED
    assert os.listdir(temp_dir) == []


def test_error_responses_carry_rate_limit_headers(client, auth_headers):
    resp = client.post("/optimize", headers=auth_headers)

    assert resp.status_code == 400
    assert resp.headers["RateLimit-Limit"] == "100"
    assert resp.headers["RateLimit-Remaining"] == "99"
    assert int(resp.headers["RateLimit-Reset"]) > 0


def test_unauthorized_responses_have_no_rate_limit_headers(client):
    resp = client.post("/optimize")
    assert resp.status_code == 401
    assert "RateLimit-Remaining" not in resp.headers


@pytest.mark.parametrize("query", ["quality=abc", "quality=150", "maxWidth=-1", "return=stream"])
def test_invalid_parameters_are_rejected(client, auth_headers, jpeg, query):
    resp = client.post(f"/optimize?{query}", files=image_part(jpeg), headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidParameter"


def test_unrecognized_format_passes_through(client, auth_headers, make_image):
    data = make_image("JPEG", size=(200, 100))
    resp = client.post("/optimize?format=bmp", files=image_part(data), headers=auth_headers)

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/jpeg"
    assert Image.open(io.BytesIO(resp.content)).format == "JPEG"


def test_jpg_alias_and_png_output(client, auth_headers, make_image):
    data = make_image("GIF", size=(80, 60))
    jpg = client.post("/optimize?format=jpg", files=image_part(data, "a.gif", "image/gif"), headers=auth_headers)
    png = client.post("/optimize?format=png&quality=10", files=image_part(data, "a.gif", "image/gif"),
                      headers=auth_headers)

    assert jpg.headers["content-type"] == "image/jpeg"
    assert png.headers["content-type"] == "image/png"
    assert Image.open(io.BytesIO(png.content)).size == (80, 60)


def test_rate_limit_rejects_requests_over_the_ceiling(settings, auth_headers):
    client = TestClient(create_app(settings.model_copy(update={"RATE_LIMIT_MAX_REQUESTS": 3})))

    statuses = [client.post("/optimize", headers=auth_headers).status_code for _ in range(4)]

    assert statuses == [400, 400, 400, 429]
    resp = client.post("/optimize", headers=auth_headers)
    assert resp.status_code == 429
    assert resp.json()["kind"] == "TooManyRequests"
    assert int(resp.headers["Retry-After"]) > 0


def test_rate_limit_window_rolls_over(app, settings, auth_headers, make_image):
    now = [0.0]
    limiter = FixedWindowRateLimiter(max_requests=100, window_seconds=900, clock=lambda: now[0])
    app.state.header_gate = build_header_gate(settings, limiter)
    client = TestClient(app)
    data = make_image("PNG", size=(8, 8))

    def post():
        return client.post("/optimize?format=png", files=image_part(data, "a.png", "image/png"),
                           headers=auth_headers)

    for _ in range(100):
        limiter.hit("testclient")
    assert post().status_code == 429

    now[0] += 900
    assert post().status_code == 200


def test_missing_artifact_is_not_found(client):
    resp = client.get("/temp/does-not-exist.webp")
    assert resp.status_code == 404


def test_startup_and_shutdown_manage_the_sweeper(app):
    with TestClient(app) as client:
        assert app.state.sweeper is not None
        assert client.get("/health").status_code == 200
    assert app.state.sweeper is None
