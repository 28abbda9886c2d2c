import logging
import os
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi.concurrency import run_in_threadpool

from app.models.analysis_result import AnalysisResult
from app.models.session_state import (
    Analyzing,
    AppState,
    Error,
    Idle,
    ImageInfo,
    ImageSlot,
    Phase,
    SessionSnapshot,
    Success,
)
from app.services.errors import GENERIC_ANALYSIS_ERROR, InvalidTransition
from app.services.gemini_service import GeminiService
from app.utils.image_loader import encode_image, resolve_mime_type

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 32
DEFAULT_IDLE_TIMEOUT = 1800.0  # seconds


@dataclass(frozen=True)
class Preview:
    data: bytes
    mime_type: str


class PreviewRegistry:
    """
    Handle -> image bytes for the /previews route. A handle lives exactly as
    long as the image assignment that created it.
    """

    def __init__(self):
        self._items: Dict[str, Preview] = {}

    def create(self, data: bytes, mime_type: str) -> str:
        handle = uuid.uuid4().hex
        self._items[handle] = Preview(data=data, mime_type=mime_type)
        return handle

    def get(self, handle: str) -> Optional[Preview]:
        return self._items.get(handle)

    def revoke(self, handle: str) -> None:
        self._items.pop(handle, None)

    def __len__(self) -> int:
        return len(self._items)


@dataclass(frozen=True)
class SelectedImage:
    data: bytes
    mime_type: str
    filename: Optional[str]
    preview: str

    @property
    def preview_url(self) -> str:
        return f"/previews/{self.preview}"


class ComparisonSession:
    """
    Controller for one browser session.

    Idle -> Analyzing -> Success | Error; Success/Error -> Idle via reset;
    Error -> Analyzing for a direct retry. All mutation happens on the event
    loop, so no locking is needed.
    """

    def __init__(self, session_id: str, previews: PreviewRegistry):
        self.session_id = session_id
        self.previews = previews
        self.phase: Phase = Idle()
        self.images: Dict[ImageSlot, Optional[SelectedImage]] = {
            ImageSlot.ORIGINAL: None,
            ImageSlot.MODIFIED: None,
        }
        self.hovered_id: Optional[str] = None
        self.hover_seq = 0
        self._attempts = 0
        self.closed = False

    @property
    def state(self) -> AppState:
        return self.phase.state

    @property
    def result(self) -> Optional[AnalysisResult]:
        return self.phase.result if isinstance(self.phase, Success) else None

    @property
    def error(self) -> Optional[str]:
        return self.phase.message if isinstance(self.phase, Error) else None

    @property
    def has_both_images(self) -> bool:
        return all(img is not None for img in self.images.values())

    @property
    def can_compare(self) -> bool:
        return self.has_both_images and isinstance(self.phase, (Idle, Error))

    @property
    def can_reset(self) -> bool:
        return isinstance(self.phase, (Success, Error))

    # ---------- images ----------

    def _check_editable(self):
        if isinstance(self.phase, Analyzing):
            raise InvalidTransition("Images cannot change while an analysis is running.")
        if isinstance(self.phase, Success):
            raise InvalidTransition("Reset before selecting new images.")

    def assign_image(self, slot: ImageSlot, data: bytes, mime_type: Optional[str] = None,
                     filename: Optional[str] = None) -> SelectedImage:
        self._check_editable()
        mime_type = resolve_mime_type(data, mime_type)
        self._release(slot)
        image = SelectedImage(
            data=data,
            mime_type=mime_type,
            filename=filename,
            preview=self.previews.create(data, mime_type),
        )
        self.images[slot] = image
        return image

    def remove_image(self, slot: ImageSlot) -> None:
        self._check_editable()
        self._release(slot)

    def _release(self, slot: ImageSlot) -> None:
        previous = self.images[slot]
        if previous is not None:
            self.previews.revoke(previous.preview)
        self.images[slot] = None

    # ---------- analysis ----------

    def begin_analysis(self) -> Tuple[int, SelectedImage, SelectedImage]:
        if isinstance(self.phase, Analyzing):
            raise InvalidTransition("An analysis is already running.")
        if isinstance(self.phase, Success):
            raise InvalidTransition("Reset before comparing again.")
        if not self.has_both_images:
            raise InvalidTransition("Both images must be selected before comparing.")

        self._attempts += 1
        self.phase = Analyzing(attempt=self._attempts)
        self.hovered_id = None
        logger.info("[Session %s] analysis #%d started", self.session_id, self._attempts)
        return self._attempts, self.images[ImageSlot.ORIGINAL], self.images[ImageSlot.MODIFIED]

    def _is_current(self, attempt: int) -> bool:
        return (not self.closed
                and isinstance(self.phase, Analyzing)
                and self.phase.attempt == attempt)

    def complete_analysis(self, attempt: int, result: AnalysisResult) -> bool:
        if not self._is_current(attempt):
            logger.info("[Session %s] dropping stale result of analysis #%d", self.session_id, attempt)
            return False
        self.phase = Success(result=result)
        logger.info("[Session %s] analysis #%d found %d differences",
                    self.session_id, attempt, len(result.differences))
        return True

    def fail_analysis(self, attempt: int, message: str = GENERIC_ANALYSIS_ERROR) -> bool:
        if not self._is_current(attempt):
            logger.info("[Session %s] dropping stale failure of analysis #%d", self.session_id, attempt)
            return False
        self.phase = Error(message=message)
        return True

    # ---------- hover / reset / teardown ----------

    def set_hovered(self, diff_id: Optional[str], seq: Optional[int] = None) -> Optional[str]:
        """
        Single shared hover id; only meaningful while a result is shown.
        An update whose seq is not newer than the last applied one arrived
        out of order and is ignored.
        """
        if seq is not None:
            if seq <= self.hover_seq:
                return self.hovered_id
            self.hover_seq = seq
        self.hovered_id = diff_id if isinstance(self.phase, Success) else None
        return self.hovered_id

    def reset(self) -> None:
        for slot in self.images:
            self._release(slot)
        self.phase = Idle()
        self.hovered_id = None
        self.hover_seq = 0
        logger.info("[Session %s] reset", self.session_id)

    def close(self) -> None:
        self.reset()
        self.closed = True

    def snapshot(self) -> SessionSnapshot:
        images = [
            ImageInfo(
                slot=slot,
                filename=img.filename,
                mime_type=img.mime_type,
                size=len(img.data),
                preview_url=img.preview_url,
            )
            for slot, img in self.images.items()
            if img is not None
        ]
        return SessionSnapshot(
            state=self.state,
            images=images,
            result=self.result,
            error=self.error,
            hovered_id=self.hovered_id,
            hover_seq=self.hover_seq,
            can_compare=self.can_compare,
            can_reset=self.can_reset,
        )


def _analyze(service: GeminiService, original: SelectedImage, modified: SelectedImage) -> AnalysisResult:
    image_a = encode_image(original.data, original.mime_type)
    image_b = encode_image(modified.data, modified.mime_type)
    return service.analyze(image_a, image_b)


async def run_comparison(session: ComparisonSession, service: GeminiService) -> ComparisonSession:
    """
    One user-initiated compare: exactly one inference attempt. Any failure
    becomes the generic error; selected images are kept for a retry.
    """
    attempt, original, modified = session.begin_analysis()
    try:
        result = await run_in_threadpool(_analyze, service, original, modified)
    except Exception:
        logger.exception("[Session %s] analysis #%d failed", session.session_id, attempt)
        session.fail_analysis(attempt, GENERIC_ANALYSIS_ERROR)
    else:
        session.complete_analysis(attempt, result)
    return session


class SessionStore:
    """
    In-process sessions keyed by the session cookie.

    Sessions idle for longer than `idle_timeout` seconds are dropped, and once
    `max_sessions` are live the least recently used one is evicted. Dropping a
    session revokes its previews.
    """

    def __init__(self, previews: Optional[PreviewRegistry] = None,
                 max_sessions: int = DEFAULT_MAX_SESSIONS,
                 idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        self.previews = previews or PreviewRegistry()
        self.max_sessions = max_sessions
        self.idle_timeout = idle_timeout
        self._clock = clock
        # least recently used first
        self._sessions: "OrderedDict[str, ComparisonSession]" = OrderedDict()
        self._last_seen: Dict[str, float] = {}

    @classmethod
    def from_env(cls) -> "SessionStore":
        return cls(
            max_sessions=int(os.environ.get("MAX_SESSIONS", DEFAULT_MAX_SESSIONS)),
            idle_timeout=float(os.environ.get("SESSION_IDLE_TIMEOUT", DEFAULT_IDLE_TIMEOUT)),
        )

    def get(self, session_id: Optional[str]) -> Optional[ComparisonSession]:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def _touch(self, session: ComparisonSession) -> None:
        self._last_seen[session.session_id] = self._clock()
        self._sessions.move_to_end(session.session_id)

    def prune(self) -> int:
        """Drop sessions idle past the timeout; returns how many were dropped."""
        now = self._clock()
        expired = [
            session_id for session_id, seen in self._last_seen.items()
            if now - seen > self.idle_timeout
        ]
        for session_id in expired:
            logger.info("[SessionStore] session %s expired", session_id)
            self.drop(session_id)
        return len(expired)

    def create(self) -> ComparisonSession:
        while self._sessions and len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("[SessionStore] evicting session %s (limit %d)", oldest, self.max_sessions)
            self.drop(oldest)
        session = ComparisonSession(uuid.uuid4().hex, self.previews)
        self._sessions[session.session_id] = session
        self._touch(session)
        return session

    def get_or_create(self, session_id: Optional[str]) -> ComparisonSession:
        self.prune()
        session = self.get(session_id)
        if session is None:
            return self.create()
        self._touch(session)
        return session

    def drop(self, session_id: str) -> None:
        self._last_seen.pop(session_id, None)
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def clear(self) -> None:
        for session_id in list(self._sessions):
            self.drop(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
