import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.routers import compare, session, ui
from app.services.errors import InvalidTransition
from app.services.gemini_service import GeminiService
from app.services.session_service import SessionStore

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # release every session, and with it every preview, on shutdown
    app.state.sessions.clear()


app = FastAPI(
    lifespan=lifespan,
    title="Drawing Diff Viewer",
    version="1.0",
    description="Gemini-based visual diff of two technical drawings."
)

app.state.gemini = GeminiService()
app.state.sessions = SessionStore.from_env()


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.get("/api/status")
def status():
    settings = app.state.gemini.settings
    return {
        "status": "running",
        "model": settings.model_id,
        "api_key_configured": bool(settings.api_key),
    }


app.include_router(compare.router, prefix="/api")
app.include_router(session.router, prefix="/api/session")
app.include_router(session.preview_router)
app.include_router(ui.router)
app.mount("/static", StaticFiles(directory=str(Path(__file__).resolve().parent / "static")), name="static")
