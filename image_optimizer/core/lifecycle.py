"""
Per-request state tracking for /optimize.

A request moves strictly forward through the states below and ends in either
RESPONDED or ERRORED:

    RECEIVED -> AUTHENTICATED -> RATE_CHECKED -> VALIDATED -> DECODED
             -> [RESIZED] -> ENCODED -> RESPONDED
"""
import logging
from enum import Enum
from typing import List, Optional

from image_optimizer.errors import InternalError, OptimizerError

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    RATE_CHECKED = "rate_checked"
    VALIDATED = "validated"
    DECODED = "decoded"
    RESIZED = "resized"
    ENCODED = "encoded"
    RESPONDED = "responded"
    ERRORED = "errored"


TERMINAL_STATES = frozenset({RequestState.RESPONDED, RequestState.ERRORED})

ALLOWED_TRANSITIONS = {
    RequestState.RECEIVED: {RequestState.AUTHENTICATED},
    RequestState.AUTHENTICATED: {RequestState.RATE_CHECKED},
    RequestState.RATE_CHECKED: {RequestState.VALIDATED},
    RequestState.VALIDATED: {RequestState.DECODED},
    RequestState.DECODED: {RequestState.RESIZED, RequestState.ENCODED},
    RequestState.RESIZED: {RequestState.ENCODED},
    RequestState.ENCODED: {RequestState.RESPONDED},
}


class RequestLifecycle:
    """Records the state history of a single request"""

    def __init__(self, request_id: str = "-"):
        self.request_id = request_id
        self.state = RequestState.RECEIVED
        self.history: List[RequestState] = [RequestState.RECEIVED]
        self.error_kind: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: RequestState) -> None:
        """
        Move to the next state.

        Raises:
            InternalError: if the transition skips or revisits a state
        """
        if state not in ALLOWED_TRANSITIONS.get(self.state, ()):
            raise InternalError(f"Illegal request state transition {self.state.value} -> {state.value}")
        logger.debug(f"[{self.request_id}] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: Exception) -> None:
        """Move to ERRORED, recording the error kind. No-op once finished."""
        if self.finished:
            return
        self.error_kind = error.kind if isinstance(error, OptimizerError) else InternalError.kind
        logger.debug(f"[{self.request_id}] {self.state.value} -> errored ({self.error_kind})")
        self.state = RequestState.ERRORED
        self.history.append(RequestState.ERRORED)
