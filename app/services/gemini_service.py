import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import httpx
from google import genai
from google.genai import errors, types
from pydantic import ValidationError

from app.models.analysis_result import AnalysisResult, EncodedImage
from app.services.errors import InferenceError

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "gemini-2.5-flash"

# Persona (system instruction)
SYSTEM_INSTRUCTION = (
    "You are an expert in comparing technical images such as drawings, blueprints and "
    "circuit diagrams. You find even the smallest differences between two images precisely "
    "and explain them in {language}."
)


def build_prompt(language: str) -> str:
    return (
        "Compare the two provided images precisely.\n"
        'The first image is the "Original" and the second image is the "Modified" version.\n\n'
        "Identify every visual difference between the two images (added elements, removed "
        "elements, colour changes, structural changes, and so on).\n\n"
        "For each difference:\n"
        f"1. Describe clearly and concisely in {language} what the difference is.\n"
        "2. Produce a 2D bounding box [ymin, xmin, ymax, xmax] on a 0-1000 scale marking "
        "where the difference is.\n\n"
        f"Finally, write an overall summary of all detected changes in {language}."
    )


@dataclass
class GeminiSettings:
    api_key: Optional[str]
    model_id: str
    api_base: Optional[str]
    language: str
    timeout: float

    @classmethod
    def from_env(cls) -> "GeminiSettings":
        api_base = os.environ.get("GEMINI_API_BASE")
        return cls(
            api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"),
            model_id=os.environ.get("MODEL_ID", DEFAULT_MODEL_ID),
            api_base=api_base.rstrip("/") if api_base else None,
            language=os.environ.get("RESPONSE_LANGUAGE", "Korean"),
            timeout=float(os.environ.get("REQUEST_TIMEOUT", "120")),
        )


class GeminiService:
    """
    Gemini client built on the google-genai SDK.
    Sends two images with a fixed prompt and AnalysisResult as the response
    schema and returns the parsed result. Every failure surfaces as InferenceError.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self.settings = settings or GeminiSettings.from_env()

    def _client(self) -> genai.Client:
        http_options = types.HttpOptions(
            base_url=self.settings.api_base,
            timeout=int(self.settings.timeout * 1000),  # milliseconds
        )
        return genai.Client(api_key=self.settings.api_key, http_options=http_options)

    def build_contents(self, image_a: EncodedImage, image_b: EncodedImage) -> List[types.Content]:
        parts = [
            types.Part.from_bytes(data=image_a.to_bytes(), mime_type=image_a.mime_type),  # original
            types.Part.from_bytes(data=image_b.to_bytes(), mime_type=image_b.mime_type),  # modified
            types.Part.from_text(text=build_prompt(self.settings.language)),
        ]
        return [types.Content(role="user", parts=parts)]

    def build_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION.format(language=self.settings.language),
            response_mime_type="application/json",
            response_schema=AnalysisResult,
        )

    def analyze(self, image_a: EncodedImage, image_b: EncodedImage) -> AnalysisResult:
        if not self.settings.api_key:
            raise InferenceError("GEMINI_API_KEY (or API_KEY) environment variable is not set.")

        logger.info("[GeminiService] Requesting comparison from %s", self.settings.model_id)
        try:
            response = self._client().models.generate_content(
                model=self.settings.model_id,
                contents=self.build_contents(image_a, image_b),
                config=self.build_config(),
            )
        except (errors.APIError, httpx.HTTPError) as e:
            raise InferenceError(f"Gemini request failed: {e}") from e

        if not response.text:
            raise InferenceError("No response text from Gemini")
        return self.parse_result(response.text)

    @staticmethod
    def parse_result(text: str) -> AnalysisResult:
        try:
            return AnalysisResult.model_validate_json(text)
        except ValidationError as e:
            raise InferenceError(f"Malformed analysis payload: {e}") from e
