from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.models.analysis_result import AnalysisResult

# box_2d coordinates are on a 0..1000 grid; one percent is 10 units
BOX_SCALE = 10

EMPTY_STATE_MESSAGE = "No differences were found. The two images appear to be identical."


@dataclass(frozen=True)
class OverlayRect:
    """Percent-of-container offsets for one box."""
    top: float
    left: float
    height: float
    width: float

    def css(self) -> str:
        return (
            f"top: {self.top:g}%; left: {self.left:g}%; "
            f"height: {self.height:g}%; width: {self.width:g}%;"
        )


@dataclass(frozen=True)
class OverlayBox:
    id: str
    description: str
    rect: OverlayRect
    highlighted: bool


def box_to_rect(box_2d: Sequence[int]) -> OverlayRect:
    """
    Map [ymin, xmin, ymax, xmax] to percentages. Inverted boxes are not
    corrected: they yield zero or negative sizes.
    """
    ymin, xmin, ymax, xmax = box_2d
    return OverlayRect(
        top=ymin / BOX_SCALE,
        left=xmin / BOX_SCALE,
        height=(ymax - ymin) / BOX_SCALE,
        width=(xmax - xmin) / BOX_SCALE,
    )


def build_overlay(result: AnalysisResult, hovered_id: Optional[str] = None) -> List[OverlayBox]:
    """One box per difference, in result order. Both panes and the list share this."""
    return [
        OverlayBox(
            id=diff.id,
            description=diff.description,
            rect=box_to_rect(diff.box_2d),
            highlighted=hovered_id is not None and diff.id == hovered_id,
        )
        for diff in result.differences
    ]
