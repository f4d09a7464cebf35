"""Typed clients for the workshop backend API.

One method per backend capability. Nothing here raises on HTTP or network
failure: every call returns an ApiResult carrying either the parsed response
model or an ApiError. Transport failures use status 0.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, List, Literal, Optional, Type, TypeVar
from urllib.parse import quote

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import API_TIMEOUT_SECONDS
from .logger import get_logger
from .security import normalize_workshop_code


logger = get_logger(__name__)

T = TypeVar("T")

ReactionType = Literal["thumbs_up", "thumbs_down", "confused"]
ControlAction = Literal["start", "pause", "stop", "next_module", "prev_module"]


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class JoinedParticipant(_ApiModel):
    id: str
    name: str
    workshop_code: str = Field(alias="workshopCode")


class JoinedWorkshop(_ApiModel):
    title: str
    description: str = ""


class JoinResponse(_ApiModel):
    success: bool
    participant: JoinedParticipant
    workshop: JoinedWorkshop


class StateResponse(_ApiModel):
    current_module: int = Field(alias="currentModule")
    total_modules: int = Field(alias="totalModules")
    is_active: bool = Field(alias="isActive")
    last_updated: str = Field(alias="lastUpdated")


class ModuleContent(_ApiModel):
    id: str
    title: str
    content: str
    order: int
    is_visible: bool = Field(alias="isVisible")


class ModulesResponse(_ApiModel):
    modules: List[ModuleContent] = []


class ReactionResponse(_ApiModel):
    success: bool
    message: str = ""


class Organizer(_ApiModel):
    id: str
    name: str
    email: str


class LoginResponse(_ApiModel):
    success: bool
    organizer: Organizer
    token: str


class Workshop(_ApiModel):
    id: str
    title: str
    description: str = ""
    code: str
    is_active: bool = Field(alias="isActive")
    participant_count: int = Field(default=0, alias="participantCount")
    created_at: str = Field(alias="createdAt")


class NewModule(_ApiModel):
    title: str
    content: str
    order: int


class ControlResponse(_ApiModel):
    success: bool


class Analytics(_ApiModel):
    """Analytics are computed by the backend; their shape is passed through."""


@dataclass(frozen=True)
class ApiError:
    status: int
    message: str


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    data: Optional[T] = None
    error: Optional[ApiError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _path_id(value: str) -> str:
    return quote(str(value), safe="")


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for field in ("error", "detail", "message"):
            if isinstance(body.get(field), str) and body[field]:
                return body[field]
    return response.reason or f"HTTP {response.status_code}"


class _ApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = API_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http or requests.Session()

    def _headers(self) -> dict:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def _request(self, method: str, path: str, model: Type[BaseModel], body: Any = None) -> ApiResult:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, json=body, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            return ApiResult(error=ApiError(status=0, message=str(e) or "Network error"))

        if not response.ok:
            logger.warning("%s %s returned %d", method, path, response.status_code)
            return ApiResult(error=ApiError(status=response.status_code, message=_error_message(response)))

        try:
            payload = response.json()
            if isinstance(payload, list):
                data = [model.model_validate(item) for item in payload]
            else:
                data = model.model_validate(payload)
        except (ValueError, ValidationError) as e:
            logger.warning("%s %s returned an unexpected body: %s", method, path, e)
            return ApiResult(error=ApiError(status=response.status_code, message="Malformed response"))
        return ApiResult(data=data)


class ParticipantApiClient(_ApiClient):
    """Participant-side calls: join, state, modules, reactions."""

    def join_workshop(self, code: str, name: str, email: Optional[str] = None) -> ApiResult[JoinResponse]:
        body = {"code": normalize_workshop_code(code), "name": name}
        if email:
            body["email"] = email
        return self._request("POST", "/join", JoinResponse, body)

    def get_workshop_state(self, code: str) -> ApiResult[StateResponse]:
        return self._request("GET", f"/w/{normalize_workshop_code(code)}/state", StateResponse)

    def get_workshop_modules(self, code: str) -> ApiResult[ModulesResponse]:
        return self._request("GET", f"/w/{normalize_workshop_code(code)}/modules", ModulesResponse)

    def submit_reaction(
        self, code: str, reaction: ReactionType, module_id: Optional[str] = None
    ) -> ApiResult[ReactionResponse]:
        body = {"type": reaction}
        if module_id:
            body["moduleId"] = module_id
        return self._request("POST", f"/w/{normalize_workshop_code(code)}/react", ReactionResponse, body)


class OrganizerApiClient(_ApiClient):
    """Organizer-side calls. login() stores the bearer token for later calls."""

    def __init__(self, base_url: str, token: Optional[str] = None, **kwargs) -> None:
        super().__init__(base_url, **kwargs)
        self.token = token

    def _headers(self) -> dict:
        headers = super()._headers()
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def login(self, email: str, password: str) -> ApiResult[LoginResponse]:
        result = self._request("POST", "/organizer/login", LoginResponse, {"email": email, "password": password})
        if result.ok:
            self.token = result.data.token
        return result

    def get_workshops(self) -> ApiResult[List[Workshop]]:
        return self._request("GET", "/organizer/workshops", Workshop)

    def create_workshop(self, title: str, description: str, modules: List[NewModule]) -> ApiResult[Workshop]:
        body = {
            "title": title,
            "description": description,
            "modules": [m.model_dump() for m in modules],
        }
        return self._request("POST", "/organizer/workshops", Workshop, body)

    def control_workshop(self, workshop_id: str, action: ControlAction) -> ApiResult[ControlResponse]:
        path = f"/organizer/workshops/{_path_id(workshop_id)}/control"
        return self._request("POST", path, ControlResponse, {"action": action})

    def get_analytics(self, workshop_id: str) -> ApiResult[Analytics]:
        return self._request("GET", f"/organizer/workshops/{_path_id(workshop_id)}/analytics", Analytics)
