import base64
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class DifferenceItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    # [ymin, xmin, ymax, xmax] on a 0..1000 scale
    box_2d: List[int] = Field(..., min_length=4, max_length=4)


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    differences: List[DifferenceItem]


class EncodedImage(BaseModel):
    data: str  # base64
    mime_type: str

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)
