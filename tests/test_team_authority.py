import json

import httpx
import pytest

from analysis_worker.config import settings
from analysis_worker.teams.authority import (
    HttpTeamAuthority,
    JsonTeamAuthority,
    TeamAuthorityError,
    build_team_authority,
)


def _authority(handler, token="secret"):
    return HttpTeamAuthority(
        "http://auth.local/",
        token=token,
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# HTTP authority
# ---------------------------------------------------------------------------


async def test_get_organization_id():
    def handler(request):
        assert request.url.path == "/api/auth/organization/get-full-organization"
        assert request.url.params["organizationSlug"] == "main"
        assert request.headers["Authorization"] == "Bearer secret"
        return httpx.Response(200, json={"id": "org-1", "slug": "main"})

    assert await _authority(handler).get_organization_id("main") == "org-1"


async def test_get_organization_id_not_found():
    def handler(request):
        return httpx.Response(404, json={"message": "not found"})

    assert await _authority(handler).get_organization_id("main") is None


async def test_list_teams_accepts_both_key_styles():
    def handler(request):
        assert request.url.params["organizationId"] == "org-1"
        return httpx.Response(
            200,
            json=[
                {"id": "t1", "name": "Ops", "order_index": 2, "is_system": False},
                {"id": "uncategorized", "name": "Uncategorized", "orderIndex": 0, "isSystem": True},
            ],
        )

    teams = await _authority(handler).list_teams("org-1")

    assert [team.id for team in teams] == ["t1", "uncategorized"]
    assert teams[0].order_index == 2
    assert teams[0].organization_id == "org-1"
    assert teams[0].color == "#3B82F6"
    assert teams[1].is_system is True


async def test_create_team_sends_payload():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "t9", **captured["body"]})

    team = await _authority(handler).create_team(
        "org-1", name="Ops", color="#111111", order_index=3
    )

    assert captured["path"] == "/api/auth/organization/create-team"
    assert captured["body"] == {
        "name": "Ops",
        "organizationId": "org-1",
        "color": "#111111",
        "order_index": 3,
        "is_system": False,
    }
    assert team.id == "t9"
    assert team.order_index == 3


async def test_update_team_maps_fields():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "t1", "name": "Renamed", "order_index": 4})

    team = await _authority(handler).update_team(
        "org-1", "t1", {"name": "Renamed", "order_index": 4, "bogus": 1}
    )

    assert captured["body"] == {"teamId": "t1", "data": {"name": "Renamed", "order_index": 4}}
    assert team.name == "Renamed"


async def test_update_missing_team_returns_none():
    def handler(request):
        return httpx.Response(404)

    assert await _authority(handler).update_team("org-1", "t1", {"name": "x"}) is None


async def test_http_error_status():
    def handler(request):
        return httpx.Response(500, json={"message": "database down"})

    with pytest.raises(TeamAuthorityError, match=r"\(500\): database down"):
        await _authority(handler).remove_team("org-1", "t1")


async def test_error_body():
    def handler(request):
        return httpx.Response(200, json={"error": {"message": "Team not allowed"}})

    with pytest.raises(TeamAuthorityError, match="Team not allowed"):
        await _authority(handler).list_teams("org-1")


async def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TeamAuthorityError, match=r"unavailable \(ConnectError\)"):
        await _authority(handler).list_teams("org-1")


async def test_no_token_sends_no_authorization_header():
    def handler(request):
        assert "Authorization" not in request.headers
        return httpx.Response(200, json=[])

    assert await _authority(handler, token="").list_teams("org-1") == []


def test_build_team_authority(monkeypatch, storage):
    assert isinstance(build_team_authority(), JsonTeamAuthority)

    monkeypatch.setattr(settings, "team_authority_url", "https://auth.example.com")
    assert isinstance(build_team_authority(), HttpTeamAuthority)


# ---------------------------------------------------------------------------
# JSON authority
# ---------------------------------------------------------------------------


@pytest.fixture
def json_authority(storage):
    return JsonTeamAuthority(storage / "config" / "teams.json")


async def test_ensure_organization_is_idempotent(json_authority):
    first = await json_authority.ensure_organization("main")
    second = await json_authority.ensure_organization("main")

    assert first == second
    assert await json_authority.get_organization_id("main") == first
    assert await json_authority.get_organization_id("other") is None


async def test_json_team_lifecycle(json_authority):
    org_id = await json_authority.ensure_organization("main")
    other_org = await json_authority.ensure_organization("other")

    team = await json_authority.create_team(org_id, name="Ops", color="#000", order_index=1)
    await json_authority.create_team(other_org, name="Elsewhere", color="#000", order_index=0)

    assert [t.name for t in await json_authority.list_teams(org_id)] == ["Ops"]

    updated = await json_authority.update_team(org_id, team.id, {"order_index": 5})
    assert updated.order_index == 5
    assert updated.name == "Ops"
    assert await json_authority.update_team(other_org, team.id, {"name": "x"}) is None

    await json_authority.remove_team(org_id, team.id)
    assert await json_authority.list_teams(org_id) == []
    with pytest.raises(TeamAuthorityError):
        await json_authority.remove_team(org_id, team.id)


async def test_json_create_team_with_fixed_id(json_authority):
    org_id = await json_authority.ensure_organization("main")

    team = await json_authority.create_team(
        org_id, name="Uncategorized", color="#000", order_index=0, team_id="uncategorized"
    )

    assert team.id == "uncategorized"
    with pytest.raises(TeamAuthorityError):
        await json_authority.create_team(
            org_id, name="Again", color="#000", order_index=0, team_id="uncategorized"
        )


async def test_json_create_team_for_unknown_organization(json_authority):
    with pytest.raises(TeamAuthorityError):
        await json_authority.create_team("ghost", name="Ops", color="#000", order_index=0)
