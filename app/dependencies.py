from fastapi import Request, Response

from app.services.gemini_service import GeminiService
from app.services.session_service import ComparisonSession, SessionStore

SESSION_COOKIE = "session_id"


def get_gemini_service(request: Request) -> GeminiService:
    return request.app.state.gemini


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def set_session_cookie(response: Response, session: ComparisonSession) -> None:
    response.set_cookie(SESSION_COOKIE, session.session_id, httponly=True, samesite="lax")


def get_session(request: Request, response: Response) -> ComparisonSession:
    """
    The caller's session, created on first contact.
    """
    store = get_session_store(request)
    session = store.get_or_create(request.cookies.get(SESSION_COOKIE))
    set_session_cookie(response, session)
    return session
