"""
Team-membership authority.

Teams themselves are owned by an external authority (a better-auth server
with the organization plugin). The Team Service only talks to it through
``TeamAuthority``. Two implementations are provided:

* ``HttpTeamAuthority`` - better-auth organization endpoints over httpx.
* ``JsonTeamAuthority`` - a local ``config/teams.json`` file, used when no
  authority URL is configured.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx

from analysis_worker.config import settings
from analysis_worker.core.files import read_json, write_json_atomic
from analysis_worker.core.logging import get_logger
from analysis_worker.teams.models import Team

logger = get_logger(__name__)

TEAMS_FILE_NAME = "teams.json"

# Team fields the authority accepts on update, mapped to its column names
UPDATE_FIELD_MAPPING = {
    "name": "name",
    "color": "color",
    "order_index": "order_index",
}


class TeamAuthorityError(Exception):
    """The authority rejected a request or could not be reached."""

    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _team_from_payload(payload: dict[str, Any], organization_id: str) -> Team:
    order_index = payload.get("order_index", payload.get("orderIndex"))
    is_system = payload.get("is_system", payload.get("isSystem"))
    return Team(
        id=str(payload["id"]),
        name=str(payload.get("name", "")),
        organization_id=str(payload.get("organizationId") or organization_id),
        color=payload.get("color") or settings.default_team_color,
        order_index=int(order_index or 0),
        is_system=bool(is_system),
        created_at=payload.get("createdAt") or _utc_now(),
    )


class TeamAuthority(ABC):
    @abstractmethod
    async def get_organization_id(self, slug: str) -> str | None:
        """Return the id of the organization with ``slug``, or None."""

    @abstractmethod
    async def list_teams(self, organization_id: str) -> list[Team]: ...

    @abstractmethod
    async def create_team(
        self,
        organization_id: str,
        *,
        name: str,
        color: str,
        order_index: int,
        is_system: bool = False,
        team_id: str | None = None,
    ) -> Team: ...

    @abstractmethod
    async def update_team(
        self,
        organization_id: str,
        team_id: str,
        fields: dict[str, Any],
    ) -> Team | None:
        """Apply ``fields`` (keys of ``UPDATE_FIELD_MAPPING``). None if missing."""

    @abstractmethod
    async def remove_team(self, organization_id: str, team_id: str) -> None: ...


class JsonTeamAuthority(TeamAuthority):
    """Organizations and teams kept in ``<storage>/config/teams.json``."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path or Path(settings.storage_path) / "config" / TEAMS_FILE_NAME

    def _load_sync(self) -> dict[str, Any]:
        try:
            payload = read_json(self.path)
        except FileNotFoundError:
            payload = {}
        payload.setdefault("organizations", [])
        payload.setdefault("teams", [])
        return payload

    def _save_sync(self, payload: dict[str, Any]) -> None:
        write_json_atomic(self.path, payload)

    async def ensure_organization(self, slug: str, name: str | None = None) -> str:
        async with self._lock:
            payload = await asyncio.to_thread(self._load_sync)
            for organization in payload["organizations"]:
                if organization.get("slug") == slug:
                    return organization["id"]
            organization_id = str(uuid4())
            payload["organizations"].append(
                {
                    "id": organization_id,
                    "slug": slug,
                    "name": name or slug,
                    "createdAt": _utc_now().isoformat(),
                }
            )
            await asyncio.to_thread(self._save_sync, payload)
            logger.info("Created organization '%s' (%s)", slug, organization_id)
            return organization_id

    async def get_organization_id(self, slug: str) -> str | None:
        payload = await asyncio.to_thread(self._load_sync)
        for organization in payload["organizations"]:
            if organization.get("slug") == slug:
                return organization["id"]
        return None

    async def list_teams(self, organization_id: str) -> list[Team]:
        payload = await asyncio.to_thread(self._load_sync)
        return [
            Team.model_validate(team)
            for team in payload["teams"]
            if team.get("organizationId") == organization_id
        ]

    async def create_team(
        self,
        organization_id: str,
        *,
        name: str,
        color: str,
        order_index: int,
        is_system: bool = False,
        team_id: str | None = None,
    ) -> Team:
        async with self._lock:
            payload = await asyncio.to_thread(self._load_sync)
            if not any(o.get("id") == organization_id for o in payload["organizations"]):
                raise TeamAuthorityError(f"Organization {organization_id} not found")
            if team_id and any(t.get("id") == team_id for t in payload["teams"]):
                raise TeamAuthorityError(f"Team {team_id} already exists")
            team = Team(
                id=team_id or str(uuid4()),
                name=name,
                organization_id=organization_id,
                color=color,
                order_index=order_index,
                is_system=is_system,
                created_at=_utc_now(),
            )
            payload["teams"].append(team.to_json_dict())
            await asyncio.to_thread(self._save_sync, payload)
            return team

    async def update_team(
        self,
        organization_id: str,
        team_id: str,
        fields: dict[str, Any],
    ) -> Team | None:
        async with self._lock:
            payload = await asyncio.to_thread(self._load_sync)
            for index, raw in enumerate(payload["teams"]):
                if raw.get("id") != team_id or raw.get("organizationId") != organization_id:
                    continue
                team = Team.model_validate(raw)
                updated = team.model_copy(
                    update={
                        key: value
                        for key, value in fields.items()
                        if key in UPDATE_FIELD_MAPPING
                    }
                )
                payload["teams"][index] = updated.to_json_dict()
                await asyncio.to_thread(self._save_sync, payload)
                return updated
            return None

    async def remove_team(self, organization_id: str, team_id: str) -> None:
        async with self._lock:
            payload = await asyncio.to_thread(self._load_sync)
            remaining = [
                team
                for team in payload["teams"]
                if not (
                    team.get("id") == team_id
                    and team.get("organizationId") == organization_id
                )
            ]
            if len(remaining) == len(payload["teams"]):
                raise TeamAuthorityError(f"Team {team_id} not found")
            payload["teams"] = remaining
            await asyncio.to_thread(self._save_sync, payload)


class HttpTeamAuthority(TeamAuthority):
    """better-auth organization plugin endpoints.

    Calls are single request/response; failures are not retried.
    """

    API_PREFIX = "/api/auth/organization"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers: dict[str, str] = {}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json_payload: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        url = f"{self._base_url}{self.API_PREFIX}/{endpoint.lstrip('/')}"
        timeout = httpx.Timeout(self._timeout_seconds)
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json_payload,
                    headers=self._headers,
                )
            except httpx.HTTPError as exc:
                exc_type = exc.__class__.__name__
                exc_message = str(exc).strip()
                detail = f"Team authority unavailable ({exc_type})"
                if exc_message:
                    detail = f"{detail}: {exc_message}"
                raise TeamAuthorityError(detail) from exc

        if allow_not_found and response.status_code == 404:
            return None

        if response.status_code >= 400:
            message = response.text[:256]
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = str(body["message"])
            except ValueError:
                pass
            raise TeamAuthorityError(
                f"Team authority request failed ({response.status_code}): {message}"
            )

        if not response.content:
            return None
        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise TeamAuthorityError(message or "Unknown team authority error")
        return data

    async def get_organization_id(self, slug: str) -> str | None:
        data = await self._request(
            "GET",
            "get-full-organization",
            params={"organizationSlug": slug},
            allow_not_found=True,
        )
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])
        return None

    async def list_teams(self, organization_id: str) -> list[Team]:
        data = await self._request(
            "GET",
            "list-teams",
            params={"organizationId": organization_id},
        )
        if not isinstance(data, list):
            return []
        return [_team_from_payload(item, organization_id) for item in data]

    async def create_team(
        self,
        organization_id: str,
        *,
        name: str,
        color: str,
        order_index: int,
        is_system: bool = False,
        team_id: str | None = None,
    ) -> Team:
        data = await self._request(
            "POST",
            "create-team",
            json_payload={
                "name": name,
                "organizationId": organization_id,
                "color": color,
                "order_index": order_index,
                "is_system": is_system,
                **({"id": team_id} if team_id else {}),
            },
        )
        if not isinstance(data, dict) or not data.get("id"):
            raise TeamAuthorityError("Team authority returned no team")
        return _team_from_payload(data, organization_id)

    async def update_team(
        self,
        organization_id: str,
        team_id: str,
        fields: dict[str, Any],
    ) -> Team | None:
        data = await self._request(
            "POST",
            "update-team",
            json_payload={
                "teamId": team_id,
                "data": {
                    UPDATE_FIELD_MAPPING[key]: value
                    for key, value in fields.items()
                    if key in UPDATE_FIELD_MAPPING
                },
            },
            allow_not_found=True,
        )
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return _team_from_payload(data, organization_id)

    async def remove_team(self, organization_id: str, team_id: str) -> None:
        await self._request(
            "POST",
            "remove-team",
            json_payload={"teamId": team_id, "organizationId": organization_id},
        )


def build_team_authority() -> TeamAuthority:
    """Pick the authority implementation from settings."""
    url = settings.team_authority_url.strip()
    if url.startswith("http://") or url.startswith("https://"):
        logger.info("Using better-auth team authority at %s", url)
        return HttpTeamAuthority(
            url,
            token=settings.team_authority_token,
            timeout_seconds=settings.team_authority_timeout_seconds,
        )
    return JsonTeamAuthority()
