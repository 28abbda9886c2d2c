from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, List, Optional, Union

from pydantic import BaseModel

from app.models.analysis_result import AnalysisResult


class AppState(str, Enum):
    IDLE = "IDLE"
    ANALYZING = "ANALYZING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class ImageSlot(str, Enum):
    ORIGINAL = "original"
    MODIFIED = "modified"


# Each phase carries only the data valid in it, so e.g. "analyzing with a
# result" cannot be represented.
@dataclass(frozen=True)
class Idle:
    state: ClassVar[AppState] = AppState.IDLE


@dataclass(frozen=True)
class Analyzing:
    attempt: int
    state: ClassVar[AppState] = AppState.ANALYZING


@dataclass(frozen=True)
class Success:
    result: AnalysisResult
    state: ClassVar[AppState] = AppState.SUCCESS


@dataclass(frozen=True)
class Error:
    message: str
    state: ClassVar[AppState] = AppState.ERROR


Phase = Union[Idle, Analyzing, Success, Error]


class ImageInfo(BaseModel):
    slot: ImageSlot
    filename: Optional[str] = None
    mime_type: str
    size: int
    preview_url: str


class SessionSnapshot(BaseModel):
    state: AppState
    images: List[ImageInfo]
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    hovered_id: Optional[str] = None
    hover_seq: int = 0
    can_compare: bool
    can_reset: bool


class HoverRequest(BaseModel):
    id: Optional[str] = None
    seq: Optional[int] = None
