from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.dependencies import get_session, set_session_cookie
from app.models.session_state import AppState, ImageSlot
from app.services.overlay_service import EMPTY_STATE_MESSAGE, build_overlay
from app.services.session_service import ComparisonSession

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

router = APIRouter()

SLOT_LABELS = {
    ImageSlot.ORIGINAL: "Original",
    ImageSlot.MODIFIED: "Modified",
}


@router.get("/", response_class=HTMLResponse)
def index(request: Request, session: ComparisonSession = Depends(get_session)):
    result = session.result
    boxes = build_overlay(result, session.hovered_id) if result is not None else []
    response = templates.TemplateResponse(
        request,
        "index.html",
        {
            "session": session,
            "states": AppState,
            "slots": [(slot, SLOT_LABELS[slot], session.images[slot]) for slot in ImageSlot],
            "result": result,
            "boxes": boxes,
            "empty_message": EMPTY_STATE_MESSAGE,
        },
    )
    set_session_cookie(response, session)
    return response
