import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool

from app.dependencies import get_gemini_service
from app.models.analysis_result import AnalysisResult
from app.services.errors import GENERIC_ANALYSIS_ERROR, ImageEncodingError, InferenceError
from app.services.gemini_service import GeminiService
from app.utils.image_loader import encode_upload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/compare-images", response_model=AnalysisResult)
async def compare_images(
    image1: UploadFile = File(...),
    image2: UploadFile = File(...),
    gemini: GeminiService = Depends(get_gemini_service),
):
    """
    Stateless comparison: image1 is the original, image2 the modified drawing.
    """
    try:
        encoded1 = await encode_upload(image1)
        encoded2 = await encode_upload(image2)
        return await run_in_threadpool(gemini.analyze, encoded1, encoded2)
    except (ImageEncodingError, InferenceError):
        logger.exception("[compare-images] analysis failed")
        raise HTTPException(status_code=502, detail=GENERIC_ANALYSIS_ERROR)
