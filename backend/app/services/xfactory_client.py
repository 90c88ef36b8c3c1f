"""
Async client for the upstream incubator API: team roadmap (admin overrides),
concept card existence, questionnaire structure and saved answers.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from app.config import settings
from app.utils.retry import retry_external_api

logger = logging.getLogger(__name__)


class UpstreamError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def roadmap_path(team_id: int) -> str:
    return f"/ideation/teams/{team_id}/roadmap-completion/"


def concept_card_path(team_id: int) -> str:
    return f"/ideation/teams/{team_id}/concept-card/"


QUESTIONNAIRE_STRUCTURE_PATH = "/ideation/questionnaire-structure/"
STRUCTURED_INPUT_PATH = "/ideation/structured-idea-input/"

# Caller identity for saved input; the upstream scopes no-team records by it.
USER_HEADER = "X-User-Id"


def _user_headers(user_id: Optional[str]) -> Optional[Dict[str, str]]:
    return {USER_HEADER: user_id} if user_id else None


class XFactoryClient:
    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token = (token if token is not None else settings.XFACTORY_API_TOKEN) or ""
        self._timeout_s = timeout_s or settings.REQUEST_TIMEOUT_SECONDS
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers: Dict[str, str] = {"Content-Type": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout_s),
                transport=self._transport,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        resp = await self._get_client().request(method, path, **kwargs)
        if resp.status_code >= 400:
            raise UpstreamError(
                f"{method} {path} failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {resp.request.url.path}", status_code=resp.status_code) from e

    async def get_team_roadmap(self, team_id: int) -> Dict[str, Any]:
        resp = await self._request("GET", roadmap_path(team_id))
        data = self._json(resp)
        return data if isinstance(data, dict) else {}

    async def update_team_roadmap(self, team_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._request("PUT", roadmap_path(team_id), json=payload)
        data = self._json(resp)
        return data if isinstance(data, dict) else {}

    async def concept_card_exists(self, team_id: int) -> bool:
        """True only for a 2xx response carrying a concept card body."""
        try:
            resp = await self._request("GET", concept_card_path(team_id))
        except UpstreamError as e:
            if e.status_code == 404:
                return False
            raise
        return bool(self._json(resp))

    @retry_external_api
    async def get_questionnaire_structure(self) -> Dict[str, Any]:
        resp = await self._request("GET", QUESTIONNAIRE_STRUCTURE_PATH)
        data = self._json(resp)
        if not isinstance(data, dict):
            raise UpstreamError("Questionnaire structure is not an object", status_code=resp.status_code)
        return data

    async def get_saved_answers(
        self, team_id: Optional[int] = None, *, user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Saved structured input for the team, or for the authenticated user when no team exists."""
        path = f"{STRUCTURED_INPUT_PATH}{team_id}/" if team_id else STRUCTURED_INPUT_PATH
        try:
            resp = await self._request("GET", path, headers=_user_headers(user_id))
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        data = self._json(resp)
        return data if isinstance(data, dict) else None

    async def save_answers(self, payload: Dict[str, Any], *, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Partial autosave and full submit share one endpoint."""
        resp = await self._request(
            "POST", STRUCTURED_INPUT_PATH, json=payload, headers=_user_headers(user_id)
        )
        data = self._json(resp)
        return data if isinstance(data, dict) else {}

    @retry_external_api
    async def submit_answers(self, payload: Dict[str, Any], *, user_id: Optional[str] = None) -> Dict[str, Any]:
        return await self.save_answers(payload, user_id=user_id)
