from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import List, Optional
from urllib.parse import unquote

import requests
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from companion_backend.api_client import (
    ApiResult,
    ControlAction,
    NewModule,
    OrganizerApiClient,
    ParticipantApiClient,
    ReactionType,
)
from companion_backend.config import (
    CODE_LENGTH,
    MAX_PARTICIPANTS,
    ORGANIZER_TOKEN_COOKIE,
    ROUTE_HOME,
    ROUTE_ORGANIZER_DASHBOARD,
    ROUTE_ORGANIZER_LOGIN,
    load_settings,
    workshop_session_route,
)
from companion_backend.logger import get_logger, setup_logging
from companion_backend.security import (
    is_valid_workshop_code,
    normalize_email,
    normalize_participant_name,
    normalize_workshop_code,
)
from companion_backend.session import ParticipantSessionManager
from companion_backend.storage import CookieStore
from companion_backend.utils import format_timestamp
from companion_backend.visibility import ManualVisibilitySource, PollController, VisibilityObserver


settings = load_settings()
setup_logging(settings.log_level)
logger = get_logger(__name__)

_http = requests.Session()
participant_api = ParticipantApiClient(settings.api_url, http=_http)


def _organizer_client(token: Optional[str]) -> OrganizerApiClient:
    return OrganizerApiClient(settings.api_url, token=token, http=_http)


class JoinRequest(BaseModel):
    name: str
    email: Optional[str] = None


class SessionUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ReactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: ReactionType
    module_id: Optional[str] = Field(default=None, alias="moduleId")


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)


class CreateWorkshopRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    modules: List[NewModule] = []


class ControlRequest(BaseModel):
    action: ControlAction


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Workshop companion starting (env=%s, api=%s)", settings.env, settings.api_url)
    try:
        yield
    finally:
        _http.close()


app = FastAPI(lifespan=lifespan)

# The browser app sends the participant cookie, so only its own origin may call us.
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _no_store_api_responses(request: Request, call_next):
    response = await call_next(request)
    # Session and live workshop data must never be served from a cache.
    if (request.url.path or "").startswith("/api/"):
        response.headers["Cache-Control"] = "no-store"
    return response


def _workshop_code(code: str) -> str:
    try:
        return normalize_workshop_code(code)
    except ValueError:
        raise HTTPException(status_code=404, detail="Workshop not found")


def _session_manager(code: str, request: Request, response: Response) -> ParticipantSessionManager:
    store = CookieStore(request.cookies, response, secure=settings.is_production)
    return ParticipantSessionManager(code, store, ttl=settings.session_ttl)


def _unwrap(result: ApiResult):
    if result.ok:
        return result.data
    status = result.error.status if result.error.status >= 400 else 502
    raise HTTPException(status_code=status, detail=result.error.message)


def _poll_interval(request: Request) -> int:
    hidden = request.headers.get("X-Page-Visibility", "").strip().lower() == "hidden"
    controller = PollController(VisibilityObserver(ManualVisibilitySource(hidden=hidden)))
    return controller.effective_interval(settings.polling_interval_ms)


def _require_organizer(request: Request) -> str:
    token = unquote(request.cookies.get(ORGANIZER_TOKEN_COOKIE) or "")
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    return token


@app.get("/api/config")
async def client_config() -> dict:
    return {
        "polling_interval_ms": settings.polling_interval_ms,
        "code_length": CODE_LENGTH,
        "max_participants": MAX_PARTICIPANTS,
        "session_ttl_seconds": int(settings.session_ttl.total_seconds()),
    }


# ---- Participant ----


@app.post("/api/s/{code}/join")
def join_workshop(code: str, payload: JoinRequest, request: Request, response: Response) -> dict:
    code = _workshop_code(code)
    try:
        name = normalize_participant_name(payload.name)
        email = normalize_email(payload.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    joined = _unwrap(participant_api.join_workshop(code, name, email))
    session = _session_manager(code, request, response).set(name, email)
    logger.info("Participant joined workshop %s", code)
    return {"session": session.to_dict(), "workshop": joined.workshop.model_dump()}


@app.get("/api/s/{code}/session")
async def get_session(code: str, request: Request, response: Response) -> dict:
    session = _session_manager(_workshop_code(code), request, response).get()
    if session is None:
        raise HTTPException(status_code=404, detail="No session")
    return {"session": session.to_dict()}


@app.patch("/api/s/{code}/session")
async def update_session(code: str, payload: SessionUpdateRequest, request: Request, response: Response) -> dict:
    manager = _session_manager(_workshop_code(code), request, response)
    changes = {field: getattr(payload, field) for field in payload.model_fields_set}
    try:
        session = manager.update(**changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if session is None:
        raise HTTPException(status_code=404, detail="No session")
    return {"session": session.to_dict()}


@app.post("/api/s/{code}/leave")
async def leave_workshop(code: str, request: Request, response: Response) -> dict:
    # Idempotent: leaving without a session is still success.
    _session_manager(_workshop_code(code), request, response).clear()
    return {"ok": True}


@app.get("/api/s/{code}/state")
def workshop_state(code: str, request: Request) -> dict:
    state = _unwrap(participant_api.get_workshop_state(_workshop_code(code)))
    return {"state": state.model_dump(by_alias=True), "poll_interval_ms": _poll_interval(request)}


@app.get("/api/s/{code}/modules")
def workshop_modules(code: str, request: Request) -> dict:
    modules = _unwrap(participant_api.get_workshop_modules(_workshop_code(code)))
    return {
        "modules": [m.model_dump(by_alias=True) for m in modules.modules],
        "poll_interval_ms": _poll_interval(request),
    }


@app.post("/api/s/{code}/react")
def react(code: str, payload: ReactionRequest, request: Request, response: Response) -> dict:
    code = _workshop_code(code)
    if _session_manager(code, request, response).get() is None:
        raise HTTPException(status_code=401, detail="Join the workshop first")
    result = _unwrap(participant_api.submit_reaction(code, payload.type, payload.module_id))
    return {"success": result.success, "message": result.message}


# ---- Organizer ----


@app.post("/api/o/login")
def organizer_login(payload: LoginRequest, request: Request, response: Response) -> dict:
    client = _organizer_client(None)
    login = _unwrap(client.login(payload.email, payload.password))
    store = CookieStore(request.cookies, response, secure=settings.is_production)
    store.write(ORGANIZER_TOKEN_COOKIE, login.token, settings.session_ttl)
    return {"organizer": login.organizer.model_dump()}


@app.post("/api/o/logout")
async def organizer_logout(request: Request, response: Response) -> dict:
    CookieStore(request.cookies, response, secure=settings.is_production).remove(ORGANIZER_TOKEN_COOKIE)
    return {"ok": True}


@app.get("/api/o/workshops")
def list_workshops(request: Request) -> dict:
    client = _organizer_client(_require_organizer(request))
    workshops = _unwrap(client.get_workshops())
    return {"workshops": [w.model_dump(by_alias=True) for w in workshops]}


@app.post("/api/o/workshops")
def create_workshop(payload: CreateWorkshopRequest, request: Request) -> dict:
    client = _organizer_client(_require_organizer(request))
    workshop = _unwrap(client.create_workshop(payload.title, payload.description, payload.modules))
    return {"workshop": workshop.model_dump(by_alias=True)}


@app.post("/api/o/workshops/{workshop_id}/control")
def control_workshop(workshop_id: str, payload: ControlRequest, request: Request) -> dict:
    client = _organizer_client(_require_organizer(request))
    result = _unwrap(client.control_workshop(workshop_id, payload.action))
    return {"success": result.success}


@app.get("/api/o/workshops/{workshop_id}/analytics")
def workshop_analytics(workshop_id: str, request: Request) -> dict:
    client = _organizer_client(_require_organizer(request))
    return {"analytics": _unwrap(client.get_analytics(workshop_id)).model_dump()}


# ---- Pages ----


@app.get(ROUTE_HOME)
async def home_page() -> dict:
    return {"route": "home", "join_path": workshop_session_route("{code}")}


@app.get(ROUTE_ORGANIZER_LOGIN)
async def organizer_login_page() -> dict:
    return {"route": "organizer_login"}


@app.get(ROUTE_ORGANIZER_DASHBOARD)
async def organizer_dashboard_page(request: Request):
    if not request.cookies.get(ORGANIZER_TOKEN_COOKIE):
        return RedirectResponse(ROUTE_ORGANIZER_LOGIN, status_code=307)
    return {"route": "organizer_dashboard"}


@app.get("/s/{code}")
async def workshop_session_page(code: str, request: Request, response: Response):
    if not is_valid_workshop_code(code):
        return RedirectResponse(ROUTE_HOME, status_code=307)
    code = code.upper()
    session = _session_manager(code, request, response).get()
    joined_at = None
    if session is not None:
        try:
            joined_at = format_timestamp(session.joined_at)
        except ValueError:
            logger.warning("Unreadable join time in session for workshop %s", code)
    return {
        "route": "workshop_session",
        "code": code,
        "joined": session is not None,
        "joined_at": joined_at,
        "session": session.to_dict() if session else None,
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", "8010"))
    uvicorn.run("server:app", host="127.0.0.1", port=port, reload=False)
