import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app.dependencies import get_gemini_service
from app.main import app
from app.models.analysis_result import AnalysisResult, DifferenceItem
from app.services.session_service import SessionStore


def make_png(color="white", size=(8, 6)) -> bytes:
    buff = io.BytesIO()
    Image.new("RGB", size, color).save(buff, format="PNG")
    return buff.getvalue()


SAMPLE_RESULT = AnalysisResult(
    summary="Two dimensions changed.",
    differences=[
        DifferenceItem(id="1", description="Hole diameter changed", box_2d=[100, 200, 300, 500]),
        DifferenceItem(id="2", description="Title block revised", box_2d=[800, 700, 950, 990]),
    ],
)


class FakeGeminiService:
    """Stands in for GeminiService; records calls and returns or raises."""

    def __init__(self, result=SAMPLE_RESULT, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def analyze(self, image_a, image_b):
        self.calls.append((image_a, image_b))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def png_a():
    return make_png("white")


@pytest.fixture
def png_b():
    return make_png("black")


@pytest.fixture
def fake_gemini():
    return FakeGeminiService()


@pytest.fixture
def client(fake_gemini):
    app.state.sessions = SessionStore()
    app.dependency_overrides[get_gemini_service] = lambda: fake_gemini
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def upload_both(client, png_a, png_b):
    def _upload():
        client.put("/api/session/images/original", files={"file": ("a.png", png_a, "image/png")})
        return client.put("/api/session/images/modified", files={"file": ("b.png", png_b, "image/png")})
    return _upload
