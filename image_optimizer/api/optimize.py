"""
Image optimization endpoint.
"""
import uuid
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from image_optimizer.core.gate import BodySizeLimit, GateContext
from image_optimizer.core.lifecycle import RequestLifecycle, RequestState
from image_optimizer.core.pipeline import transform
from image_optimizer.models import ErrorResponse, InboundImage, OptimizeUrlResponse, TransformRequest

# Set up logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["Optimization"])

UPLOAD_FIELD = "image"


def client_identity(request: Request, trust_forwarded_for: bool = False) -> str:
    """
    Identify the client for rate limiting.

    The socket peer address is used unless trust_forwarded_for is set, in which
    case the first X-Forwarded-For entry wins. Only enable that behind a proxy
    that overwrites the header.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


async def read_upload(field, max_bytes: int) -> Optional[InboundImage]:
    """
    Read the uploaded file part, reading at most one byte past max_bytes so
    oversized uploads are detected without buffering them whole.
    """
    if not isinstance(field, UploadFile):
        return None
    data = await field.read(max_bytes + 1)
    return InboundImage(
        data=data,
        size=len(data),
        content_type=field.content_type or "",
        filename=field.filename,
    )


@router.post(
    "/optimize",
    responses={
        200: {
            "content": {"image/webp": {}, "application/json": {"schema": OptimizeUrlResponse.model_json_schema()}},
            "description": "Optimized image bytes (return=binary) or a descriptor (return=url)",
        },
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def optimize_image(
    request: Request,
    quality: Optional[str] = Query(None, description="Encoder quality (1-100)"),
    format: Optional[str] = Query(None, description="webp, avif, jpeg or png"),
    max_width: Optional[str] = Query(None, alias="maxWidth", description="Maximum output width"),
    return_mode: Optional[str] = Query(None, alias="return", description="binary or url"),
) -> Response:
    """
    Optimize an uploaded image.

    - **image**: multipart file field holding a JPEG, PNG, GIF or SVG upload
    - **quality**: encoder quality (1-100)
    - **format**: target format; unrecognized values keep the source format
    - **maxWidth**: images wider than this are scaled down
    - **return**: `binary` for the image bytes, `url` for a JSON descriptor

    Requires the `X-API-Key` header.
    """
    state = request.app.state
    settings = state.settings
    lifecycle = RequestLifecycle(request_id=uuid.uuid4().hex[:8])
    request.state.lifecycle = lifecycle
    context = GateContext.from_headers(
        request.headers, client_identity(request, settings.TRUST_FORWARDED_FOR)
    )

    form = None
    try:
        state.header_gate.admit(context, lifecycle)

        params = TransformRequest.from_query(
            quality=quality,
            format=format,
            max_width=max_width,
            response_mode=return_mode,
            default_quality=settings.DEFAULT_QUALITY,
            default_format=settings.DEFAULT_FORMAT,
            default_max_width=settings.MAX_WIDTH,
        )

        upload_request = Request(request.scope, BodySizeLimit(request.receive, settings.MAX_FILE_SIZE))
        form = await upload_request.form(max_files=1)
        context.upload = await read_upload(form.get(UPLOAD_FIELD), settings.MAX_FILE_SIZE)
        state.upload_gate.admit(context, lifecycle)

        logger.info(
            f"[{lifecycle.request_id}] Optimizing {context.upload.filename or 'upload'} "
            f"({context.upload.size} bytes, {context.upload.content_type}) -> "
            f"{params.format.value} q={params.quality} maxWidth={params.max_width} "
            f"return={params.response_mode.value}"
        )

        result = await run_in_threadpool(transform, context.upload.data, params, lifecycle)
        response = await run_in_threadpool(state.responder.respond, result, params.response_mode)
        lifecycle.advance(RequestState.RESPONDED)
    except Exception as e:
        lifecycle.fail(e)
        raise
    finally:
        # Error handlers read the decision to add RateLimit-* headers
        request.state.rate_limit = context.rate_limit
        if form is not None:
            await form.close()

    if context.rate_limit is not None:
        response.headers.update(context.rate_limit.headers())
    return response
