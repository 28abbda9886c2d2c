import logging

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile

from app.dependencies import get_gemini_service, get_session, get_session_store
from app.models.session_state import HoverRequest, ImageSlot, SessionSnapshot
from app.services.errors import GENERIC_ANALYSIS_ERROR, ImageEncodingError
from app.services.gemini_service import GeminiService
from app.services.session_service import ComparisonSession, SessionStore, run_comparison
from app.utils.image_loader import read_upload

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=SessionSnapshot)
def get_state(session: ComparisonSession = Depends(get_session)):
    return session.snapshot()


@router.put("/images/{slot}", response_model=SessionSnapshot)
async def put_image(
    slot: ImageSlot,
    file: UploadFile = File(...),
    session: ComparisonSession = Depends(get_session),
):
    """Assign or replace the image in a slot; the old preview is revoked."""
    try:
        contents = await read_upload(file)
    except ImageEncodingError:
        logger.exception("[session] could not read upload for %s", slot.value)
        raise HTTPException(status_code=400, detail=GENERIC_ANALYSIS_ERROR)
    session.assign_image(slot, contents, file.content_type, file.filename)
    return session.snapshot()


@router.delete("/images/{slot}", response_model=SessionSnapshot)
def delete_image(slot: ImageSlot, session: ComparisonSession = Depends(get_session)):
    session.remove_image(slot)
    return session.snapshot()


@router.post("/compare", response_model=SessionSnapshot)
async def compare(
    session: ComparisonSession = Depends(get_session),
    gemini: GeminiService = Depends(get_gemini_service),
):
    """
    Runs one analysis. A failed analysis is not an HTTP error: the
    snapshot comes back in the ERROR state with the generic message.
    """
    await run_comparison(session, gemini)
    return session.snapshot()


@router.post("/reset", response_model=SessionSnapshot)
def reset(session: ComparisonSession = Depends(get_session)):
    session.reset()
    return session.snapshot()


@router.put("/hover", response_model=SessionSnapshot)
def hover(body: HoverRequest, session: ComparisonSession = Depends(get_session)):
    session.set_hovered(body.id, body.seq)
    return session.snapshot()


preview_router = APIRouter()


@preview_router.get("/previews/{handle}")
def get_preview(handle: str, store: SessionStore = Depends(get_session_store)):
    preview = store.previews.get(handle)
    if preview is None:
        raise HTTPException(status_code=404, detail="Preview not found")
    return Response(content=preview.data, media_type=preview.mime_type)
