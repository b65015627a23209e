"""
Request gate for /optimize.

The gate is an ordered list of small checks. Each check either returns
(admit) or raises an OptimizerError (reject), and the first rejection stops
the chain. Checks that only need headers run before the body is read so that
unauthorized, rate-limited or oversized requests never cost any decode work.
"""
import hmac
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Sequence

from starlette.types import Message, Receive

from image_optimizer.config import Settings
from image_optimizer.core.lifecycle import RequestLifecycle, RequestState
from image_optimizer.core.rate_limit import FixedWindowRateLimiter, RateLimitDecision
from image_optimizer.errors import (
    MissingFile,
    PayloadTooLarge,
    TooManyRequests,
    Unauthorized,
    UnsupportedMediaType,
)
from image_optimizer.models import InboundImage

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/svg+xml"})

# Room for multipart boundaries and part headers on top of the file itself
MULTIPART_OVERHEAD = 64 * 1024


@dataclass
class GateContext:
    """What the gate knows about a request"""
    headers: Dict[str, str] = field(default_factory=dict)
    client_id: str = "unknown"
    content_length: Optional[int] = None
    upload: Optional[InboundImage] = None
    rate_limit: Optional[RateLimitDecision] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], client_id: str) -> "GateContext":
        lowered = {key.lower(): value for key, value in headers.items()}
        content_length = None
        raw_length = lowered.get("content-length")
        if raw_length is not None:
            try:
                content_length = int(raw_length)
            except ValueError:
                content_length = None
        return cls(headers=lowered, client_id=client_id, content_length=content_length)

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


Gate = Callable[[GateContext], None]


def _size_limit_message(max_bytes: int) -> str:
    if max_bytes % (1024 * 1024) == 0:
        return f"Maximum file size is {max_bytes // (1024 * 1024)}MB"
    return f"Maximum file size is {max_bytes} bytes"


class ApiKeyGate:
    """Admit only requests carrying the configured shared secret"""
    reaches = RequestState.AUTHENTICATED

    def __init__(self, api_key: str, header: str = API_KEY_HEADER):
        self.api_key = api_key
        self.header = header

    def __call__(self, context: GateContext) -> None:
        provided = context.header(self.header)
        if not provided or not self.api_key:
            raise Unauthorized(f"Missing {self.header} header")
        if not hmac.compare_digest(provided.encode("utf-8"), self.api_key.encode("utf-8")):
            raise Unauthorized()


class RateLimitGate:
    """Count the request against the client's window"""
    reaches = RequestState.RATE_CHECKED

    def __init__(self, limiter: FixedWindowRateLimiter):
        self.limiter = limiter

    def __call__(self, context: GateContext) -> None:
        decision = self.limiter.hit(context.client_id)
        context.rate_limit = decision
        if not decision.allowed:
            raise TooManyRequests(retry_after=decision.reset_after)


class ContentLengthGate:
    """Reject bodies whose declared length cannot hold an acceptable upload"""

    def __init__(self, max_bytes: int, overhead: int = MULTIPART_OVERHEAD):
        self.max_bytes = max_bytes
        self.overhead = overhead

    def __call__(self, context: GateContext) -> None:
        if context.content_length is not None and context.content_length > self.max_bytes + self.overhead:
            raise PayloadTooLarge(_size_limit_message(self.max_bytes))


class BodySizeLimit:
    """
    Receive channel wrapper that stops reading once the body outgrows the limit.

    ContentLengthGate only sees what the client declares. Chunked uploads carry
    no length, so their body is counted as it streams in instead.
    """

    def __init__(self, receive: Receive, max_bytes: int, overhead: int = MULTIPART_OVERHEAD):
        self.receive = receive
        self.max_bytes = max_bytes
        self.limit = max_bytes + overhead
        self.received = 0

    async def __call__(self) -> Message:
        message = await self.receive()
        if message["type"] == "http.request":
            self.received += len(message.get("body", b""))
            if self.received > self.limit:
                logger.warning(f"Request body passed {self.limit} bytes, aborting upload")
                raise PayloadTooLarge(_size_limit_message(self.max_bytes))
        return message


def check_upload_present(context: GateContext) -> None:
    if context.upload is None or context.upload.size == 0:
        raise MissingFile()


class MimeTypeGate:
    """Admit only the image types the service accepts"""

    def __init__(self, allowed: frozenset = ALLOWED_MIME_TYPES):
        self.allowed = allowed

    def __call__(self, context: GateContext) -> None:
        declared = (context.upload.content_type or "").split(";")[0].strip().lower()
        if declared not in self.allowed:
            raise UnsupportedMediaType(f"Only image files are allowed, got '{declared or 'unknown'}'")


class UploadSizeGate:
    """Reject uploads larger than the configured maximum"""
    reaches = RequestState.VALIDATED

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    def __call__(self, context: GateContext) -> None:
        if context.upload.size > self.max_bytes:
            raise PayloadTooLarge(_size_limit_message(self.max_bytes))


class RequestGate:
    """
    Runs gates in order, stopping at the first rejection.

    Gates with a ``reaches`` attribute advance the request lifecycle to that
    state once they admit the request.
    """

    def __init__(self, gates: Sequence[Gate]):
        self.gates = list(gates)

    def admit(self, context: GateContext, lifecycle: Optional[RequestLifecycle] = None) -> None:
        for gate in self.gates:
            gate(context)
            state = getattr(gate, "reaches", None)
            if lifecycle is not None and state is not None:
                lifecycle.advance(state)


def build_header_gate(settings: Settings, limiter: FixedWindowRateLimiter) -> RequestGate:
    """Gates that run before the request body is read."""
    return RequestGate([
        ApiKeyGate(settings.API_KEY),
        RateLimitGate(limiter),
        ContentLengthGate(settings.MAX_FILE_SIZE),
    ])


def build_upload_gate(settings: Settings) -> RequestGate:
    """Gates that run once the multipart upload has been parsed."""
    return RequestGate([
        check_upload_present,
        MimeTypeGate(),
        UploadSizeGate(settings.MAX_FILE_SIZE),
    ])
